from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from mirecurso.core import calculos
from mirecurso.core.models import (
    BENEFICIO_TEXTO,
    FUENTE_INGRESO_TEXTO,
    TIPO_PROPIETARIO_TEXTO,
    EstadoCivil,
    RecursoCaso,
    TramoRSH,
)
from mirecurso.core.rut import rut_sin_puntos
from mirecurso.formulario.store import OUTPUT_STEP, REVIEW_STEP, STEP_DOMAINS, WizardStore

SI_NO = (("si", "Sí"), ("no", "No"))

ESTADO_CIVIL_OPCIONES = (
    (EstadoCivil.SOLTERO.value, "Soltero/a"),
    (EstadoCivil.CASADO.value, "Casado/a"),
    (EstadoCivil.VIUDO.value, "Viudo/a"),
    (EstadoCivil.DIVORCIADO.value, "Divorciado/a"),
    (EstadoCivil.CONVIVIENTE_CIVIL.value, "Conviviente civil"),
)
RSH_OPCIONES = (("si", "Sí, estoy inscrito"), ("no", "No estoy inscrito"), ("no_se", "No sé"))
TRAMO_OPCIONES = tuple((tramo.value, f"Tramo {tramo.value}%") for tramo in TramoRSH)

ESPACIO_INSUFICIENTE = "Los datos ingresados son demasiado extensos para guardarlos. Acorte los textos o reduzca la cantidad de giros."

_GIRO_FIELD_RE = re.compile(r"^giros-(\d+)-(numero|fecha|monto)$")


@dataclass(frozen=True)
class Campo:
    nombre: str
    etiqueta: str
    tipo: str = "texto"
    opciones: tuple[tuple[str, str], ...] = ()
    ayuda: str = ""
    requerido: bool = True


@dataclass(frozen=True)
class SubPaso:
    titulo: str
    campos: tuple[Campo, ...]
    # Sub-steps with a condition are skipped when it is false for the current data.
    condicion: Callable[[Mapping[str, Any]], bool] | None = None

    @property
    def nombres(self) -> list[str]:
        return [campo.nombre for campo in self.campos]

    def visible(self, datos: Mapping[str, Any]) -> bool:
        return self.condicion is None or self.condicion(datos)


@dataclass
class StepOutcome:
    paso: int
    sub_paso: int = 0
    errores: dict[str, str] = field(default_factory=dict)
    redirect: bool = False
    completado: bool = False

    @property
    def ok(self) -> bool:
        return not self.errores


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "on", "true", "si", "sí", "yes"}


def _form_value(raw: Mapping[str, Any], campo: Campo) -> Any:
    if campo.tipo == "multiple":
        if hasattr(raw, "getlist"):
            return raw.getlist(campo.nombre)
        return raw.get(campo.nombre) or []
    if campo.tipo == "checkbox":
        return _truthy(raw.get(campo.nombre))
    return raw.get(campo.nombre)


def parse_giros_form(raw: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Collect ``giros-<i>-<campo>`` inputs into rows, dropping fully blank rows."""
    value = raw.get("giros")
    if isinstance(value, list):
        return [dict(item) for item in value if isinstance(item, Mapping)]
    rows: dict[int, dict[str, Any]] = {}
    for key in raw.keys():
        match = _GIRO_FIELD_RE.match(key)
        if match:
            rows.setdefault(int(match.group(1)), {})[match.group(2)] = raw.get(key)
    giros = []
    for index in sorted(rows):
        row = {name: rows[index].get(name, "") for name in ("numero", "fecha", "monto")}
        if any(str(item or "").strip() for item in row.values()):
            giros.append(row)
    return giros


class StepController:
    """Drives one wizard step: access check, sub-step cursor and validation."""

    numero: int = 0
    titulo: str = ""
    sub_pasos: tuple[SubPaso, ...] = ()

    def __init__(self, store: WizardStore):
        self.store = store

    @property
    def dominio(self) -> str | None:
        return STEP_DOMAINS.get(self.numero)

    def datos(self) -> dict[str, Any]:
        return self.store.datos(self.dominio) if self.dominio else {}

    def enter(self) -> StepOutcome:
        if not self.store.is_step_accessible(self.numero):
            return StepOutcome(paso=self.store.furthest_accessible_step(), redirect=True)
        self.store.go_to_step(self.numero)
        return StepOutcome(paso=self.numero)

    def clamp_sub_paso(self, value: Any) -> int:
        try:
            index = int(value)
        except (TypeError, ValueError):
            index = 0
        last = max(len(self.sub_pasos) - 1, 0)
        if index < 0:
            index = last
        index = min(index, last)
        datos = self.datos()
        while index > 0 and not self.sub_pasos[index].visible(datos):
            index -= 1
        return index

    def _next_visible(self, index: int) -> int | None:
        datos = self.datos()
        for candidate in range(index + 1, len(self.sub_pasos)):
            if self.sub_pasos[candidate].visible(datos):
                return candidate
        return None

    def _previous_visible(self, index: int) -> int | None:
        datos = self.datos()
        for candidate in range(index - 1, -1, -1):
            if self.sub_pasos[candidate].visible(datos):
                return candidate
        return None

    def prepare(self, raw: Mapping[str, Any], sub_paso: SubPaso) -> dict[str, Any]:
        valores: dict[str, Any] = {}
        for campo in sub_paso.campos:
            if campo.tipo == "giros":
                valores[campo.nombre] = parse_giros_form(raw)
            else:
                valores[campo.nombre] = _form_value(raw, campo)
        return valores

    def advance(self, raw: Mapping[str, Any], sub_paso: Any = 0) -> StepOutcome:
        entry = self.enter()
        if entry.redirect:
            return entry
        index = self.clamp_sub_paso(sub_paso)
        actual = self.sub_pasos[index]
        self.store.update_domain(self.dominio, self.prepare(raw, actual))

        partial = self.store.validate_domain(self.dominio, campos=actual.nombres)
        if not partial.ok:
            return StepOutcome(paso=self.numero, sub_paso=index, errores=partial.errores)

        siguiente = self._next_visible(index)
        if siguiente is not None:
            return StepOutcome(paso=self.numero, sub_paso=siguiente)

        full = self.store.validate_domain(self.dominio)
        if not full.ok:
            return StepOutcome(paso=self.numero, sub_paso=self._first_sub_paso_with_error(full.errores), errores=full.errores)
        self.store.complete_step(self.numero, full.valores)
        if not self.store.fits_storage():
            self.store.reopen_step(self.numero)
            return StepOutcome(paso=self.numero, sub_paso=index, errores={actual.nombres[0]: ESPACIO_INSUFICIENTE})
        self.store.go_to_step(self.numero + 1)
        return StepOutcome(paso=self.numero + 1, redirect=True, completado=True)

    def back(self, sub_paso: Any = 0) -> StepOutcome:
        entry = self.enter()
        if entry.redirect:
            return entry
        index = self.clamp_sub_paso(sub_paso)
        anterior = self._previous_visible(index)
        if anterior is not None:
            return StepOutcome(paso=self.numero, sub_paso=anterior)
        if self.numero > 1:
            self.store.go_to_step(self.numero - 1)
            return StepOutcome(paso=self.numero - 1, sub_paso=-1, redirect=True)
        return StepOutcome(paso=self.numero)

    def _first_sub_paso_with_error(self, errores: Mapping[str, str]) -> int:
        for index, sub in enumerate(self.sub_pasos):
            for nombre in sub.nombres:
                if any(key == nombre or key.startswith(f"{nombre}.") for key in errores):
                    return index
        return 0


class PersonalStep(StepController):
    numero = 1
    titulo = "Datos personales"
    sub_pasos = (
        SubPaso(
            "Identificación",
            (
                Campo("nombre_completo", "Nombre completo", ayuda="Tal como aparece en su cédula de identidad"),
                Campo("rut", "RUT", "rut", ayuda="Ejemplo: 12.345.678-9"),
            ),
        ),
        SubPaso("Fecha de nacimiento", (Campo("fecha_nacimiento", "Fecha de nacimiento", "fecha"),)),
        SubPaso(
            "Estado civil y profesión",
            (
                Campo("estado_civil", "Estado civil", "seleccion", ESTADO_CIVIL_OPCIONES),
                Campo("profesion", "Profesión u ocupación", ayuda="Por ejemplo: jubilado/a, dueña de casa"),
            ),
        ),
        SubPaso(
            "Domicilio",
            (
                Campo("domicilio", "Dirección (calle y número)"),
                Campo("region", "Región", "region"),
                Campo("comuna", "Comuna", "comuna"),
            ),
        ),
        SubPaso(
            "Contacto",
            (
                Campo("telefono", "Teléfono", "telefono", requerido=False),
                Campo("email", "Correo electrónico", "email", requerido=False),
            ),
        ),
    )


class PropertyStep(StepController):
    numero = 2
    titulo = "Datos de la propiedad"
    sub_pasos = (
        SubPaso(
            "Dirección de la propiedad",
            (
                Campo("mismo_que_domicilio", "La propiedad es mi domicilio", "checkbox", requerido=False),
                Campo("direccion", "Dirección de la propiedad"),
                Campo("region", "Región", "region"),
                Campo("comuna", "Comuna", "comuna"),
            ),
        ),
        SubPaso(
            "Datos del SII",
            (
                Campo("rol_avaluo", "Rol de avalúo", ayuda="Aparece en su boleta de contribuciones (ej: 00372-00010)"),
                Campo("avaluo_fiscal", "Avalúo fiscal vigente", "monto"),
            ),
        ),
        SubPaso(
            "Tipo de propiedad",
            (
                Campo(
                    "tipo_propietario",
                    "¿Cómo es dueño de la propiedad?",
                    "seleccion",
                    tuple((tipo.value, texto.capitalize()) for tipo, texto in TIPO_PROPIETARIO_TEXTO.items()),
                ),
                Campo("destino_habitacional", "¿Vive en esta propiedad?", "si_no", SI_NO),
                Campo("conoce_inscripcion", "Conozco la inscripción en el Conservador", "checkbox", requerido=False),
                Campo("inscripcion_fojas", "Fojas", "numero", requerido=False),
                Campo("inscripcion_numero", "Número", "numero", requerido=False),
                Campo("inscripcion_anio", "Año", "numero", requerido=False),
                Campo("conservador", "Conservador de Bienes Raíces", requerido=False),
            ),
        ),
    )

    def prepare(self, raw: Mapping[str, Any], sub_paso: SubPaso) -> dict[str, Any]:
        valores = super().prepare(raw, sub_paso)
        if valores.get("mismo_que_domicilio"):
            personal = self.store.datos("personal")
            valores.update(
                {
                    "direccion": personal.get("domicilio", ""),
                    "region": personal.get("region", ""),
                    "comuna": personal.get("comuna", ""),
                }
            )
        return valores


class EconomicStep(StepController):
    numero = 3
    titulo = "Situación económica"
    sub_pasos = (
        SubPaso(
            "Ingresos",
            (
                Campo("ingreso_mensual", "Ingreso mensual total", "monto"),
                Campo(
                    "fuentes_ingreso",
                    "¿De dónde provienen sus ingresos?",
                    "multiple",
                    tuple((fuente.value, texto[:1].upper() + texto[1:]) for fuente, texto in FUENTE_INGRESO_TEXTO.items()),
                ),
                Campo("fuente_ingreso_otros", "Otros ingresos", requerido=False),
            ),
        ),
        SubPaso(
            "Registro Social de Hogares",
            (
                Campo("esta_en_rsh", "¿Está inscrito en el Registro Social de Hogares?", "seleccion", RSH_OPCIONES),
                Campo("tramo_rsh", "Tramo", "seleccion", TRAMO_OPCIONES, requerido=False),
            ),
        ),
        SubPaso(
            "Otras propiedades",
            (Campo("tiene_otras_propiedades", "¿Tiene otras propiedades?", "si_no", SI_NO),),
        ),
        SubPaso(
            "Beneficio actual",
            (
                Campo(
                    "beneficio_actual",
                    "¿Tiene actualmente algún beneficio en contribuciones?",
                    "seleccion",
                    tuple((beneficio.value, texto) for beneficio, texto in BENEFICIO_TEXTO.items()),
                ),
            ),
        ),
    )


class ContributionsStep(StepController):
    numero = 4
    titulo = "Contribuciones"
    sub_pasos = (
        SubPaso(
            "Contribución trimestral",
            (
                Campo(
                    "contribucion_trimestral",
                    "Monto de cada cuota trimestral",
                    "monto",
                    ayuda="Se pagan 4 cuotas al año: abril, junio, septiembre y noviembre",
                ),
            ),
        ),
        SubPaso(
            "Giros pendientes",
            (
                Campo("tiene_giros_pendientes", "¿Tiene giros específicos que quiera impugnar?", "si_no", SI_NO),
                Campo("giros", "Giros", "giros", requerido=False),
            ),
        ),
    )

    def resumen(self) -> dict[str, Any]:
        """Burden figures shown while the user enters the contribution."""
        result = self.store.validate_domain("contribuciones", campos=["contribucion_trimestral"])
        trimestral = result.valores.get("contribucion_trimestral") or 0
        anual = calculos.annual_from_quarterly(trimestral)
        porcentaje = calculos.income_percentage(anual, self.store.ingreso_anual())
        return {
            "contribucion_anual": anual,
            "ingreso_anual": self.store.ingreso_anual(),
            "porcentaje": porcentaje,
            "desproporcionado": calculos.is_disproportionate(porcentaje, self.store.umbral_desproporcion),
            "muy_favorable": self.store.es_muy_favorable(porcentaje),
        }


class ProceedingStep(StepController):
    numero = 5
    titulo = "Procedimiento previo"
    sub_pasos = (
        SubPaso(
            "Solicitud al SII",
            (
                Campo("presento_solicitud", "¿Presentó una solicitud al SII pidiendo la rebaja?", "si_no", SI_NO),
                Campo("fecha_solicitud", "Fecha de la solicitud", "fecha", requerido=False),
            ),
        ),
        SubPaso(
            "Resolución denegatoria",
            (
                Campo("recibio_denegatoria", "¿Recibió una resolución que le negó la rebaja?", "si_no", SI_NO),
                Campo("numero_resolucion", "Número de resolución", requerido=False),
                Campo("fecha_resolucion", "Fecha de la resolución", "fecha", requerido=False),
            ),
            condicion=lambda datos: _truthy(datos.get("presento_solicitud")),
        ),
    )


class ReviewStep(StepController):
    numero = REVIEW_STEP
    titulo = "Revisión"
    sub_pasos = (
        SubPaso(
            "Confirmación",
            (Campo("confirmacion", "Confirmo que revisé mis datos y que son correctos", "checkbox"),),
        ),
    )

    def datos(self) -> dict[str, Any]:
        return {}

    def resumen(self) -> dict[str, Any] | None:
        """Derived figures recomputed for display; None while data is incomplete."""
        caso = self.store.assemble_case_record()
        if caso is None:
            return None
        porcentaje = caso.datos_contribuciones.porcentaje_ingresos
        return {
            "caso": caso,
            "edad": caso.datos_personales.edad,
            "ingreso_anual": caso.datos_economicos.ingreso_anual,
            "contribucion_anual": caso.datos_contribuciones.contribucion_anual,
            "porcentaje": porcentaje,
            "muy_favorable": self.store.es_muy_favorable(porcentaje),
            "corte": caso.corte,
            "validaciones": caso.validaciones,
            "precedente": self.store.referencia.precedente,
            "porcentaje_completado": self.store.porcentaje_completado(),
            "edad_minima": self.store.edad_minima,
            "plazo_dias": self.store.plazo_dias,
        }

    def advance(self, raw: Mapping[str, Any], sub_paso: Any = 0) -> StepOutcome:
        entry = self.enter()
        if entry.redirect:
            return entry
        if self.store.assemble_case_record() is None:
            return StepOutcome(paso=self.store.furthest_accessible_step(), redirect=True)
        if not _truthy(raw.get("confirmacion")):
            return StepOutcome(
                paso=self.numero,
                errores={"confirmacion": "Debe confirmar que revisó sus datos antes de continuar"},
            )
        self.store.complete_step(self.numero)
        self.store.go_to_step(OUTPUT_STEP)
        return StepOutcome(paso=OUTPUT_STEP, redirect=True, completado=True)


class OutputStep(StepController):
    numero = OUTPUT_STEP
    titulo = "Descargar recurso"
    sub_pasos = (SubPaso("Descarga", ()),)

    def datos(self) -> dict[str, Any]:
        return {}

    def advance(self, raw: Mapping[str, Any], sub_paso: Any = 0) -> StepOutcome:
        return self.enter()

    def caso(self) -> RecursoCaso | None:
        if not self.store.is_step_accessible(self.numero):
            return None
        return self.store.assemble_case_record()


def nombre_archivo(caso: RecursoCaso, extension: str = "pdf") -> str:
    return f"recurso-proteccion-{rut_sin_puntos(caso.datos_personales.rut)}.{extension}"


CONTROLLERS: dict[int, type[StepController]] = {
    controller.numero: controller
    for controller in (PersonalStep, PropertyStep, EconomicStep, ContributionsStep, ProceedingStep, ReviewStep, OutputStep)
}


def controller_for(numero: int, store: WizardStore) -> StepController:
    try:
        return CONTROLLERS[numero](store)
    except KeyError as exc:
        raise ValueError(f"Paso desconocido: {numero}") from exc
