from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import lru_cache
from pathlib import Path

from mirecurso.core.config import DEFAULT_REFERENCE_DATA_DIR

logger = logging.getLogger(__name__)


class TipoRebaja(str, Enum):
    TOTAL = "total"
    PARCIAL = "parcial"
    NINGUNA = "ninguna"


@dataclass(frozen=True)
class Corte:
    nombre: str
    direccion: str
    ciudad: str

    @property
    def direccion_completa(self) -> str:
        return f"{self.direccion}, {self.ciudad}"


@dataclass(frozen=True)
class Umbrales:
    version: str
    vigencia_desde: date
    vigencia_hasta: date
    tope_avaluo: int
    valor_uta: int
    uta_rebaja_total: float
    uta_rebaja_parcial: float

    @property
    def ingreso_maximo_total(self) -> float:
        return self.uta_rebaja_total * self.valor_uta

    @property
    def ingreso_maximo_parcial(self) -> float:
        return self.uta_rebaja_parcial * self.valor_uta

    def vigente_en(self, as_of: date) -> bool:
        return self.vigencia_desde <= as_of <= self.vigencia_hasta


@dataclass(frozen=True)
class Recurrido:
    nombre: str
    sigla: str
    rut: str
    director: str
    domicilio: str
    comuna: str
    region: str


@dataclass(frozen=True)
class Precedente:
    rol: str
    tribunal: str
    tribunal_corto: str
    fecha: date
    caratula: str
    resultado: str
    argumento_clave: str
    sentencia_firme: bool


@dataclass(frozen=True)
class ReferenceData:
    cortes: dict[str, Corte]
    region_por_defecto: str
    comunas: dict[str, tuple[str, ...]]
    umbrales: tuple[Umbrales, ...]
    norma: str
    recurrido: Recurrido
    precedente: Precedente

    @property
    def regiones(self) -> list[str]:
        return list(self.comunas.keys())

    def court_for_region(self, region: str | None) -> Corte:
        corte = self.cortes.get((region or "").strip())
        if corte is None:
            return self.cortes[self.region_por_defecto]
        return corte

    def communes_for_region(self, region: str | None) -> list[str]:
        return list(self.comunas.get((region or "").strip(), ()))

    def thresholds_for(self, as_of: date | None = None) -> Umbrales:
        as_of = as_of or date.today()
        for tabla in self.umbrales:
            if tabla.vigente_en(as_of):
                return tabla
        latest = max(self.umbrales, key=lambda tabla: tabla.vigencia_hasta)
        logger.warning(
            "Umbrales %s vencidos (vigentes hasta %s); se usan sin actualizar para %s",
            latest.version,
            latest.vigencia_hasta.isoformat(),
            as_of.isoformat(),
        )
        return latest


def benefit_tier_for_annual_income(ingreso_anual: float, umbrales: Umbrales) -> TipoRebaja:
    if ingreso_anual <= umbrales.ingreso_maximo_total:
        return TipoRebaja.TOTAL
    if ingreso_anual <= umbrales.ingreso_maximo_parcial:
        return TipoRebaja.PARCIAL
    return TipoRebaja.NINGUNA


def _read_json(base: Path, name: str) -> dict:
    with (base / name).open(encoding="utf-8") as handle:
        return json.load(handle)


def _parse_umbrales(raw: dict) -> Umbrales:
    return Umbrales(
        version=str(raw["version"]),
        vigencia_desde=date.fromisoformat(raw["vigencia_desde"]),
        vigencia_hasta=date.fromisoformat(raw["vigencia_hasta"]),
        tope_avaluo=int(raw["tope_avaluo"]),
        valor_uta=int(raw["valor_uta"]),
        uta_rebaja_total=float(raw["uta_rebaja_total"]),
        uta_rebaja_parcial=float(raw["uta_rebaja_parcial"]),
    )


@lru_cache(maxsize=8)
def load_reference_data(directory: str | None = None) -> ReferenceData:
    base = Path(directory) if directory else DEFAULT_REFERENCE_DATA_DIR
    cortes_raw = _read_json(base, "cortes.json")
    umbrales_raw = _read_json(base, "umbrales.json")
    precedente_raw = _read_json(base, "precedente.json")

    cortes = {region: Corte(**values) for region, values in cortes_raw["cortes"].items()}
    default_region = cortes_raw.get("default_region", "Metropolitana")
    if default_region not in cortes:
        raise ValueError(f"Region por defecto sin corte: {default_region}")
    tablas = tuple(_parse_umbrales(tabla) for tabla in umbrales_raw["tablas"])
    if not tablas:
        raise ValueError("No hay tablas de umbrales configuradas")

    return ReferenceData(
        cortes=cortes,
        region_por_defecto=default_region,
        comunas={region: tuple(items) for region, items in _read_json(base, "comunas.json").items()},
        umbrales=tablas,
        norma=umbrales_raw.get("norma", ""),
        recurrido=Recurrido(**_read_json(base, "recurrido.json")),
        precedente=Precedente(
            rol=precedente_raw["rol"],
            tribunal=precedente_raw["tribunal"],
            tribunal_corto=precedente_raw["tribunal_corto"],
            fecha=date.fromisoformat(precedente_raw["fecha"]),
            caratula=precedente_raw["caratula"],
            resultado=precedente_raw["resultado"],
            argumento_clave=precedente_raw["argumento_clave"],
            sentencia_firme=bool(precedente_raw.get("sentencia_firme", False)),
        ),
    )
