from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum

from mirecurso.core.referencia import Corte, TipoRebaja


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EstadoCivil(str, Enum):
    SOLTERO = "soltero"
    CASADO = "casado"
    VIUDO = "viudo"
    DIVORCIADO = "divorciado"
    CONVIVIENTE_CIVIL = "conviviente_civil"


class FuenteIngreso(str, Enum):
    PGU = "pgu"
    PENSION_AFP = "pension_afp"
    PENSION_SOBREVIVENCIA = "pension_sobrevivencia"
    ARRIENDOS = "arriendos"
    OTROS = "otros"


class TipoPropietario(str, Enum):
    UNICO = "unico"
    CON_CONYUGE = "con_conyuge"
    CON_HIJOS = "con_hijos"
    OTRO = "otro"


class RespuestaRSH(str, Enum):
    SI = "si"
    NO = "no"
    NO_SE = "no_se"


class TramoRSH(str, Enum):
    T40 = "40"
    T50 = "50"
    T60 = "60"
    T70 = "70"
    T80 = "80"
    T90 = "90"


class BeneficioActual(str, Enum):
    NINGUNO = "ninguno"
    PARCIAL_50 = "parcial_50"
    TOTAL_100 = "total_100"


ESTADO_CIVIL_TEXTO: dict[EstadoCivil, str] = {
    EstadoCivil.SOLTERO: "soltero",
    EstadoCivil.CASADO: "casado",
    EstadoCivil.VIUDO: "viudo",
    EstadoCivil.DIVORCIADO: "divorciado",
    EstadoCivil.CONVIVIENTE_CIVIL: "conviviente civil",
}

FUENTE_INGRESO_TEXTO: dict[FuenteIngreso, str] = {
    FuenteIngreso.PGU: "Pensión Garantizada Universal (PGU)",
    FuenteIngreso.PENSION_AFP: "pensión de AFP",
    FuenteIngreso.PENSION_SOBREVIVENCIA: "pensión de sobrevivencia",
    FuenteIngreso.ARRIENDOS: "arriendos",
    FuenteIngreso.OTROS: "otros ingresos",
}

TIPO_PROPIETARIO_TEXTO: dict[TipoPropietario, str] = {
    TipoPropietario.UNICO: "único propietario",
    TipoPropietario.CON_CONYUGE: "propietario junto con mi cónyuge",
    TipoPropietario.CON_HIJOS: "propietario junto con mis hijos",
    TipoPropietario.OTRO: "copropietario",
}

BENEFICIO_TEXTO: dict[BeneficioActual, str] = {
    BeneficioActual.NINGUNO: "No tiene beneficio",
    BeneficioActual.PARCIAL_50: "Rebaja del 50%",
    BeneficioActual.TOTAL_100: "Rebaja del 100%",
}


@dataclass(frozen=True)
class DatosPersonales:
    nombre_completo: str
    rut: str
    fecha_nacimiento: date
    edad: int
    estado_civil: EstadoCivil
    profesion: str
    domicilio: str
    region: str
    comuna: str
    nacionalidad: str = "chilena"
    telefono: str = ""
    email: str = ""


@dataclass(frozen=True)
class InscripcionConservador:
    fojas: int | None = None
    numero: int | None = None
    anio: int | None = None
    conservador: str = ""


@dataclass(frozen=True)
class DatosPropiedad:
    direccion: str
    region: str
    comuna: str
    rol_avaluo: str
    avaluo_fiscal: int
    tipo_propietario: TipoPropietario
    destino_habitacional: bool
    inscripcion: InscripcionConservador | None = None


@dataclass(frozen=True)
class DatosEconomicos:
    ingreso_mensual: int
    ingreso_anual: int
    fuentes_ingreso: tuple[FuenteIngreso, ...]
    fuente_ingreso_otros: str
    esta_en_rsh: RespuestaRSH
    tramo_rsh: TramoRSH | None
    tiene_otras_propiedades: bool
    beneficio_actual: BeneficioActual


@dataclass(frozen=True)
class Giro:
    numero: str
    fecha: date
    monto: int


@dataclass(frozen=True)
class DatosContribuciones:
    contribucion_trimestral: int
    contribucion_anual: int
    porcentaje_ingresos: float
    tiene_giros_pendientes: bool
    giros: tuple[Giro, ...] = ()


@dataclass(frozen=True)
class ProcedimientoPrevio:
    presento_solicitud: bool
    fecha_solicitud: date | None
    recibio_denegatoria: bool
    numero_resolucion: str
    fecha_resolucion: date | None


@dataclass(frozen=True)
class ValidacionesCaso:
    cumple_edad: bool
    cumple_ingresos_100: bool
    cumple_ingresos_50: bool
    es_habitacional: bool
    excede_tope_avaluo: bool
    porcentaje_desproporcionado: bool
    dentro_del_plazo: bool


@dataclass(frozen=True)
class RecursoCaso:
    """Frozen snapshot of a finished wizard, ready for document generation."""

    datos_personales: DatosPersonales
    datos_propiedad: DatosPropiedad
    datos_economicos: DatosEconomicos
    datos_contribuciones: DatosContribuciones
    procedimiento_previo: ProcedimientoPrevio
    validaciones: ValidacionesCaso
    corte: Corte
    tipo_rebaja: TipoRebaja
    version_umbrales: str
    tope_avaluo: int
    fecha_referencia: date
    generado_en: datetime = field(default_factory=utcnow, compare=False)
