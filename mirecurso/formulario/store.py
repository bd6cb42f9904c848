from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from mirecurso.core import calculos
from mirecurso.core.models import (
    DatosContribuciones,
    DatosEconomicos,
    DatosPersonales,
    DatosPropiedad,
    ProcedimientoPrevio,
    RecursoCaso,
    ValidacionesCaso,
)
from mirecurso.core.referencia import ReferenceData, Umbrales, benefit_tier_for_annual_income
from mirecurso.core.validations import (
    ValidationResult,
    validate_datos_contribuciones,
    validate_datos_economicos,
    validate_datos_personales,
    validate_datos_propiedad,
    validate_procedimiento_previo,
)
from mirecurso.formulario.persistence import WizardPersistence

logger = logging.getLogger(__name__)

STEP_COUNT = 7
REVIEW_STEP = 6
OUTPUT_STEP = 7
STEP_DOMAINS: dict[int, str] = {
    1: "personal",
    2: "propiedad",
    3: "economico",
    4: "contribuciones",
    5: "procedimiento",
}
DOMAINS = tuple(STEP_DOMAINS.values())
DATA_STEPS = tuple(STEP_DOMAINS.keys())


class StepNotAccessibleError(ValueError):
    def __init__(self, step: int, redirect_to: int):
        super().__init__(f"El paso {step} no esta disponible todavia")
        self.step = step
        self.redirect_to = redirect_to


def _empty_datos() -> dict[str, dict[str, Any]]:
    return {dominio: {} for dominio in DOMAINS}


@dataclass
class WizardState:
    current_step: int = 1
    completed_steps: set[int] = field(default_factory=set)
    datos: dict[str, dict[str, Any]] = field(default_factory=_empty_datos)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step,
            "completed_steps": sorted(self.completed_steps),
            "datos": {dominio: dict(self.datos.get(dominio, {})) for dominio in DOMAINS},
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WizardState":
        current = raw.get("current_step", 1)
        if not isinstance(current, int) or isinstance(current, bool) or not 1 <= current <= STEP_COUNT:
            raise ValueError(f"Paso actual invalido: {current!r}")
        completed_raw = raw.get("completed_steps", [])
        if not isinstance(completed_raw, list):
            raise ValueError("Lista de pasos completados invalida")
        completed: set[int] = set()
        for step in completed_raw:
            if not isinstance(step, int) or isinstance(step, bool) or not 1 <= step <= STEP_COUNT:
                raise ValueError(f"Paso completado invalido: {step!r}")
            completed.add(step)
        datos_raw = raw.get("datos", {})
        if not isinstance(datos_raw, dict):
            raise ValueError("Datos del formulario invalidos")
        datos = _empty_datos()
        for dominio in DOMAINS:
            values = datos_raw.get(dominio, {})
            if not isinstance(values, dict):
                raise ValueError(f"Datos invalidos para {dominio}")
            datos[dominio] = dict(values)
        return cls(current_step=current, completed_steps=completed, datos=datos)


def derive_case_validations(
    personal: DatosPersonales | None,
    propiedad: DatosPropiedad | None,
    economico: DatosEconomicos | None,
    contribuciones: DatosContribuciones | None,
    procedimiento: ProcedimientoPrevio | None,
    umbrales: Umbrales,
    *,
    edad_minima: int,
    umbral_desproporcion: float,
    plazo_dias: int,
    hoy: date,
) -> ValidacionesCaso:
    ingreso_anual = economico.ingreso_anual if economico else None
    porcentaje = 0.0
    if economico and contribuciones:
        porcentaje = calculos.income_percentage(contribuciones.contribucion_anual, economico.ingreso_anual)

    dentro_del_plazo = True
    if procedimiento and procedimiento.recibio_denegatoria and procedimiento.fecha_resolucion:
        dentro_del_plazo = calculos.within_days(procedimiento.fecha_resolucion, plazo_dias, hoy)

    return ValidacionesCaso(
        cumple_edad=bool(personal and calculos.age(personal.fecha_nacimiento, hoy) >= edad_minima),
        cumple_ingresos_100=ingreso_anual is not None and ingreso_anual <= umbrales.ingreso_maximo_total,
        cumple_ingresos_50=ingreso_anual is not None and ingreso_anual <= umbrales.ingreso_maximo_parcial,
        es_habitacional=bool(propiedad and propiedad.destino_habitacional),
        excede_tope_avaluo=bool(propiedad and calculos.exceeds_cap(propiedad.avaluo_fiscal, umbrales.tope_avaluo)),
        porcentaje_desproporcionado=calculos.is_disproportionate(porcentaje, umbral_desproporcion),
        dentro_del_plazo=dentro_del_plazo,
    )


class WizardStore:
    """Single source of truth for one in-progress case.

    Built per session, hydrated once from persistence and flushed at most
    once per request (``flush``). Mutations mark the store dirty instead of
    writing through, so several field commits coalesce into one write.
    """

    def __init__(
        self,
        referencia: ReferenceData,
        persistence: WizardPersistence | None = None,
        *,
        edad_minima: int = 60,
        umbral_desproporcion: float = 10.0,
        umbral_favorable: float = 25.0,
        plazo_dias: int = 30,
        hoy: Callable[[], date] = date.today,
    ):
        self.referencia = referencia
        self.persistence = persistence
        self.edad_minima = edad_minima
        self.umbral_desproporcion = umbral_desproporcion
        self.umbral_favorable = umbral_favorable
        self.plazo_dias = plazo_dias
        self._hoy = hoy
        self.state = WizardState()
        self.hydrated = False
        self.dirty = False

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        referencia: ReferenceData,
        persistence: WizardPersistence | None = None,
        hoy: Callable[[], date] = date.today,
    ) -> "WizardStore":
        return cls(
            referencia,
            persistence,
            edad_minima=int(config.get("MINIMUM_AGE", 60)),
            umbral_desproporcion=float(config.get("DISPROPORTION_THRESHOLD_PCT", 10.0)),
            umbral_favorable=float(config.get("FAVORABLE_THRESHOLD_PCT", 25.0)),
            plazo_dias=int(config.get("FILING_WINDOW_DAYS", 30)),
            hoy=hoy,
        )

    # persistence

    def hydrate(self) -> bool:
        """Load persisted state once. Returns True when saved data was found."""
        found = False
        if self.persistence is not None:
            raw = self.persistence.load()
            if raw is not None:
                try:
                    self.state = WizardState.from_dict(raw)
                    found = True
                except ValueError as exc:
                    logger.warning("Estado guardado descartado: %s", exc)
                    self.persistence.discard()
                    self.state = WizardState()
        self.hydrated = True
        return found

    def persist(self) -> bool:
        self.dirty = False
        if self.persistence is None:
            return False
        return self.persistence.save(self.state.to_dict())

    def fits_storage(self) -> bool:
        return self.persistence is None or self.persistence.fits(self.state.to_dict())

    def reopen_step(self, step: int) -> None:
        self._check_step(step)
        self.state.completed_steps.discard(step)
        self._touch()

    def flush(self) -> bool:
        if not self.dirty:
            return False
        return self.persist()

    def _touch(self) -> None:
        self.dirty = True

    # data

    @property
    def current_step(self) -> int:
        return self.state.current_step

    @property
    def completed_steps(self) -> frozenset[int]:
        return frozenset(self.state.completed_steps)

    def hoy(self) -> date:
        return self._hoy()

    def datos(self, dominio: str) -> dict[str, Any]:
        self._check_domain(dominio)
        return dict(self.state.datos[dominio])

    def update_domain(self, dominio: str, valores: Mapping[str, Any]) -> None:
        self._check_domain(dominio)
        self._replace_domain(dominio, {**self.state.datos[dominio], **valores})

    def commit_field(self, dominio: str, campo: str, valor: Any) -> str | None:
        """Store one draft value and return its field-scoped error, if any."""
        self._check_domain(dominio)
        self._replace_domain(dominio, {**self.state.datos[dominio], campo: valor})
        result = self.validate_domain(dominio, self.state.datos[dominio], campos=[campo])
        return result.errores.get(campo)

    def validate_domain(
        self,
        dominio: str,
        data: Mapping[str, Any] | None = None,
        campos: Iterable[str] | None = None,
    ) -> ValidationResult:
        self._check_domain(dominio)
        data = self.state.datos[dominio] if data is None else data
        hoy = self.hoy()
        if dominio == "personal":
            return validate_datos_personales(
                data, campos, hoy=hoy, edad_minima=self.edad_minima, referencia=self.referencia
            )
        if dominio == "propiedad":
            return validate_datos_propiedad(data, campos, hoy=hoy, referencia=self.referencia)
        if dominio == "economico":
            return validate_datos_economicos(data, campos)
        if dominio == "contribuciones":
            return validate_datos_contribuciones(data, campos, hoy=hoy, ingreso_anual=self.ingreso_anual())
        return validate_procedimiento_previo(data, campos, hoy=hoy)

    def ingreso_anual(self) -> int:
        result = validate_datos_economicos(self.state.datos["economico"], campos=["ingreso_mensual"])
        mensual = result.valores.get("ingreso_mensual")
        if not result.ok or mensual is None:
            return 0
        return calculos.annual_from_monthly(mensual)

    def _replace_domain(self, dominio: str, datos: dict[str, Any]) -> None:
        # A confirmed review only covers the data it was shown.
        antes = self.validate_domain(dominio).valores
        self.state.datos[dominio] = datos
        if self.validate_domain(dominio).valores != antes:
            self._reopen_review()
        self._touch()

    def _reopen_review(self) -> None:
        confirmados = self.state.completed_steps & {REVIEW_STEP, OUTPUT_STEP}
        if confirmados:
            logger.info("Datos modificados despues de la revision; se requiere confirmar de nuevo")
            self.state.completed_steps -= confirmados

    def _check_domain(self, dominio: str) -> None:
        if dominio not in DOMAINS:
            raise ValueError(f"Dominio desconocido: {dominio}")

    # navigation

    def complete_step(self, step: int, datos: Mapping[str, Any] | None = None) -> None:
        self._check_step(step)
        dominio = STEP_DOMAINS.get(step)
        if datos is not None and dominio is not None:
            self._replace_domain(dominio, dict(datos))
        self.state.completed_steps.add(step)
        self._touch()

    def is_step_accessible(self, step: int) -> bool:
        if not 1 <= step <= STEP_COUNT:
            return False
        return step == 1 or (step - 1) in self.state.completed_steps

    def furthest_accessible_step(self) -> int:
        step = 1
        while step < STEP_COUNT and step in self.state.completed_steps:
            step += 1
        return step

    def go_to_step(self, step: int) -> None:
        if not self.is_step_accessible(step):
            raise StepNotAccessibleError(step, self.furthest_accessible_step())
        if self.state.current_step != step:
            self.state.current_step = step
            self._touch()

    def reset(self) -> None:
        self.state = WizardState()
        self.dirty = False
        if self.persistence is not None:
            self.persistence.clear()
        logger.info("Formulario reiniciado")

    def _check_step(self, step: int) -> None:
        if not 1 <= step <= STEP_COUNT:
            raise ValueError(f"Paso fuera de rango: {step}")

    # derived

    def porcentaje_completado(self) -> int:
        done = len(self.state.completed_steps.intersection(DATA_STEPS))
        return round(done / len(DATA_STEPS) * 100)

    def has_saved_progress(self) -> bool:
        datos = self.state.datos
        return bool(
            str(datos["personal"].get("nombre_completo") or "").strip()
            or str(datos["propiedad"].get("direccion") or "").strip()
            or self.state.completed_steps
        )

    def _validated(self) -> dict[str, Any]:
        return {dominio: self.validate_domain(dominio).valor for dominio in DOMAINS}

    def umbrales(self) -> Umbrales:
        return self.referencia.thresholds_for(self.hoy())

    def validaciones(self) -> ValidacionesCaso:
        """Case validations over whatever domains currently validate, computed fresh."""
        typed = self._validated()
        return derive_case_validations(
            typed["personal"],
            typed["propiedad"],
            typed["economico"],
            typed["contribuciones"],
            typed["procedimiento"],
            self.umbrales(),
            edad_minima=self.edad_minima,
            umbral_desproporcion=self.umbral_desproporcion,
            plazo_dias=self.plazo_dias,
            hoy=self.hoy(),
        )

    def es_muy_favorable(self, porcentaje: float) -> bool:
        return porcentaje >= self.umbral_favorable

    def assemble_case_record(self) -> RecursoCaso | None:
        missing = [step for step in DATA_STEPS if step not in self.state.completed_steps]
        if missing:
            return None
        typed = self._validated()
        invalid = [dominio for dominio, valor in typed.items() if valor is None]
        if invalid:
            logger.warning("Datos guardados no validan para %s; no se genera el recurso", ", ".join(invalid))
            return None

        hoy = self.hoy()
        umbrales = self.referencia.thresholds_for(hoy)
        personal: DatosPersonales = typed["personal"]
        propiedad: DatosPropiedad = typed["propiedad"]
        economico: DatosEconomicos = typed["economico"]
        return RecursoCaso(
            datos_personales=personal,
            datos_propiedad=propiedad,
            datos_economicos=economico,
            datos_contribuciones=typed["contribuciones"],
            procedimiento_previo=typed["procedimiento"],
            validaciones=derive_case_validations(
                personal,
                propiedad,
                economico,
                typed["contribuciones"],
                typed["procedimiento"],
                umbrales,
                edad_minima=self.edad_minima,
                umbral_desproporcion=self.umbral_desproporcion,
                plazo_dias=self.plazo_dias,
                hoy=hoy,
            ),
            corte=self.referencia.court_for_region(propiedad.region),
            tipo_rebaja=benefit_tier_for_annual_income(economico.ingreso_anual, umbrales),
            version_umbrales=umbrales.version,
            tope_avaluo=umbrales.tope_avaluo,
            fecha_referencia=hoy,
        )
