from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from mirecurso.core import calculos
from mirecurso.core.models import (
    BeneficioActual,
    DatosContribuciones,
    DatosEconomicos,
    DatosPersonales,
    DatosPropiedad,
    EstadoCivil,
    FuenteIngreso,
    Giro,
    InscripcionConservador,
    ProcedimientoPrevio,
    RespuestaRSH,
    TipoPropietario,
    TramoRSH,
)
from mirecurso.core.referencia import ReferenceData
from mirecurso.core.rut import formatear_rut, limpiar_rut, validar_rut

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

ROL_AVALUO_RE = re.compile(r"^\d{1,5}-\d{1,5}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MONTO_MAXIMO = 10_000_000_000
INGRESO_MAXIMO = 100_000_000
MAX_GIROS = 10

TRUE_VALUES = {"1", "on", "true", "si", "sí", "yes"}
FALSE_VALUES = {"0", "off", "false", "no"}


@dataclass
class ValidationResult(Generic[T]):
    valores: dict[str, Any] = field(default_factory=dict)
    errores: dict[str, str] = field(default_factory=dict)
    valor: T | None = None

    @property
    def ok(self) -> bool:
        return not self.errores

    def restricted_to(self, campos: Iterable[str]) -> "ValidationResult[T]":
        names = tuple(campos)
        errores = {
            key: message
            for key, message in self.errores.items()
            if any(key == name or key.startswith(f"{name}.") for name in names)
        }
        return ValidationResult(valores=self.valores, errores=errores, valor=None)


class _Checker:
    def __init__(self, data: Mapping[str, Any] | None):
        self.data = dict(data or {})
        self.valores: dict[str, Any] = {}
        self.errores: dict[str, str] = {}

    def raw(self, campo: str) -> Any:
        return self.data.get(campo)

    def check(self, campo: str, parser: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            value = parser(self.data.get(campo), *args, **kwargs)
        except ValueError as exc:
            self.errores[campo] = str(exc)
            return None
        self.valores[campo] = _jsonable(value)
        return value

    def fail(self, campo: str, message: str) -> None:
        self.errores.setdefault(campo, message)

    def result(self, campos: Iterable[str] | None, build: Callable[[], T]) -> ValidationResult[T]:
        result: ValidationResult[T] = ValidationResult(valores=self.valores, errores=self.errores)
        if campos is not None:
            return result.restricted_to(campos)
        if result.ok:
            result.valor = build()
        return result


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _text(value: Any, message: str, min_len: int = 1, max_len: int = 200, too_long: str = "") -> str:
    raw = str(value or "").strip()
    if len(raw) < min_len:
        raise ValueError(message)
    if len(raw) > max_len:
        raise ValueError(too_long or "El texto es demasiado largo")
    return raw


def _optional_text(value: Any, max_len: int = 200, too_long: str = "") -> str:
    raw = str(value or "").strip()
    if len(raw) > max_len:
        raise ValueError(too_long or "El texto es demasiado largo")
    return raw


def _parse_monto(
    value: Any,
    missing: str,
    minimum: int = 0,
    maximum: int = MONTO_MAXIMO,
    too_low: str = "El monto no puede ser negativo",
    too_high: str = "El monto parece demasiado alto",
) -> int:
    if isinstance(value, bool) or not isinstance(value, (str, int, float, type(None))):
        raise ValueError("Ingrese un monto válido")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("Ingrese un monto válido")
    if isinstance(value, (int, float)):
        amount = int(round(value))
    else:
        raw = str(value or "").strip()
        if not raw:
            raise ValueError(missing)
        if raw.startswith("-"):
            raise ValueError(too_low)
        digits = re.sub(r"\D", "", raw.split(",")[0])
        if not digits:
            raise ValueError("Ingrese un monto válido")
        if len(digits) > 15:
            raise ValueError(too_high)
        amount = int(digits)
    if amount < minimum:
        raise ValueError(too_low)
    if amount > maximum:
        raise ValueError(too_high)
    return amount


def _parse_optional_int(value: Any, message: str, minimum: int = 1, maximum: int | None = None) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(message) from exc
    if number < minimum or (maximum is not None and number > maximum):
        raise ValueError(message)
    return number


def _parse_bool(value: Any, missing: str = "", required: bool = False, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    raw = str(value if value is not None else "").strip().lower()
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    if not raw and not required:
        return default
    raise ValueError(missing or "Seleccione una opción")


def _parse_enum(value: Any, enum_type: type[E], message: str) -> E:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value or "").strip())
    except ValueError as exc:
        raise ValueError(message) from exc


def _parse_enum_list(value: Any, enum_type: type[E], message: str) -> tuple[E, ...]:
    if isinstance(value, str):
        items = [item for item in value.split(",") if item.strip()]
    else:
        items = list(value) if isinstance(value, (list, tuple, set)) else ([value] if value else [])
    parsed: list[E] = []
    for item in items:
        member = _parse_enum(item, enum_type, message)
        if member not in parsed:
            parsed.append(member)
    if not parsed:
        raise ValueError(message)
    return tuple(parsed)


def parse_fecha(value: Any, missing: str = "Ingrese la fecha") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise ValueError(missing)
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    raise ValueError("La fecha no es válida")


def _parse_fecha_pasada(value: Any, hoy: date, missing: str = "Ingrese la fecha") -> date:
    parsed = parse_fecha(value, missing)
    if parsed > hoy:
        raise ValueError("La fecha no puede ser futura")
    return parsed


def _parse_fecha_nacimiento(value: Any, hoy: date, edad_minima: int) -> date:
    parsed = _parse_fecha_pasada(value, hoy, "Ingrese la fecha de nacimiento")
    if calculos.age(parsed, hoy) < edad_minima:
        raise ValueError(f"Debe tener al menos {edad_minima} años para usar este servicio")
    return parsed


def _parse_rut(value: Any) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise ValueError("Ingrese su RUT")
    cleaned = limpiar_rut(raw)
    if len(cleaned) < 8:
        raise ValueError("RUT incompleto (formato: 12.345.678-9)")
    if len(cleaned) > 9:
        raise ValueError("RUT demasiado largo")
    if not validar_rut(cleaned):
        raise ValueError("El RUT ingresado no es válido")
    return formatear_rut(cleaned)


def _parse_email(value: Any) -> str:
    email = str(value or "").strip()
    if email and not EMAIL_RE.match(email):
        raise ValueError("El email no es válido")
    return email


def _parse_rol(value: Any) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise ValueError("Ingrese el rol de avalúo")
    if not ROL_AVALUO_RE.match(raw):
        raise ValueError("El rol debe tener formato XXXXX-XXXXX (ej: 00372-00010)")
    return raw


def _check_region_comuna(
    checker: _Checker,
    region: str | None,
    comuna: str | None,
    referencia: ReferenceData | None,
    region_field: str = "region",
    comuna_field: str = "comuna",
) -> None:
    if referencia is None or not region:
        return
    if region not in referencia.comunas:
        checker.fail(region_field, "Seleccione una región válida")
        return
    if comuna and comuna not in referencia.communes_for_region(region):
        checker.fail(comuna_field, "La comuna no pertenece a la región seleccionada")


def validate_datos_personales(
    data: Mapping[str, Any] | None,
    campos: Iterable[str] | None = None,
    *,
    hoy: date | None = None,
    edad_minima: int = 60,
    referencia: ReferenceData | None = None,
) -> ValidationResult[DatosPersonales]:
    hoy = hoy or date.today()
    checker = _Checker(data)
    nombre = checker.check(
        "nombre_completo",
        _text,
        "El nombre debe tener al menos 5 caracteres",
        5,
        100,
        "El nombre es demasiado largo",
    )
    rut = checker.check("rut", _parse_rut)
    nacimiento = checker.check("fecha_nacimiento", _parse_fecha_nacimiento, hoy, edad_minima)
    estado_civil = checker.check("estado_civil", _parse_enum, EstadoCivil, "Seleccione su estado civil")
    profesion = checker.check(
        "profesion",
        _text,
        "Ingrese su profesión u ocupación",
        2,
        100,
        "La profesión es demasiado larga",
    )
    domicilio = checker.check(
        "domicilio",
        _text,
        "Ingrese la dirección completa",
        10,
        200,
        "La dirección es demasiado larga",
    )
    region = checker.check("region", _text, "Seleccione una región")
    comuna = checker.check("comuna", _text, "Seleccione una comuna")
    telefono = checker.check("telefono", _optional_text, 30, "El teléfono es demasiado largo")
    email = checker.check("email", _parse_email)
    _check_region_comuna(checker, region, comuna, referencia)
    nacionalidad = str(checker.raw("nacionalidad") or "chilena").strip()
    checker.valores["nacionalidad"] = nacionalidad

    return checker.result(
        campos,
        lambda: DatosPersonales(
            nombre_completo=nombre,
            rut=rut,
            fecha_nacimiento=nacimiento,
            edad=calculos.age(nacimiento, hoy),
            estado_civil=estado_civil,
            profesion=profesion,
            domicilio=domicilio,
            region=region,
            comuna=comuna,
            nacionalidad=nacionalidad,
            telefono=telefono or "",
            email=email or "",
        ),
    )


def validate_datos_propiedad(
    data: Mapping[str, Any] | None,
    campos: Iterable[str] | None = None,
    *,
    hoy: date | None = None,
    referencia: ReferenceData | None = None,
) -> ValidationResult[DatosPropiedad]:
    hoy = hoy or date.today()
    checker = _Checker(data)
    checker.check("mismo_que_domicilio", _parse_bool)
    direccion = checker.check(
        "direccion",
        _text,
        "Ingrese la dirección completa de la propiedad",
        10,
        200,
        "La dirección es demasiado larga",
    )
    region = checker.check("region", _text, "Seleccione la región de la propiedad")
    comuna = checker.check("comuna", _text, "Seleccione la comuna de la propiedad")
    rol = checker.check("rol_avaluo", _parse_rol)
    avaluo = checker.check(
        "avaluo_fiscal",
        _parse_monto,
        "Ingrese el avalúo fiscal",
        1,
        MONTO_MAXIMO,
        "El avalúo fiscal debe ser mayor que cero",
        "El avalúo fiscal parece demasiado alto",
    )
    conoce = checker.check("conoce_inscripcion", _parse_bool)
    inscripcion = None
    if conoce:
        fojas = checker.check("inscripcion_fojas", _parse_optional_int, "Ingrese un número de fojas válido")
        numero = checker.check("inscripcion_numero", _parse_optional_int, "Ingrese un número de inscripción válido")
        anio = checker.check(
            "inscripcion_anio",
            _parse_optional_int,
            f"El año debe estar entre 1900 y {hoy.year}",
            1900,
            hoy.year,
        )
        conservador = checker.check(
            "conservador", _optional_text, 100, "El nombre del conservador es demasiado largo"
        )
        inscripcion = InscripcionConservador(fojas=fojas, numero=numero, anio=anio, conservador=conservador or "")
    tipo = checker.check(
        "tipo_propietario", _parse_enum, TipoPropietario, "Seleccione el tipo de propiedad"
    )
    habitacional = checker.check("destino_habitacional", _parse_bool, "", False, True)
    _check_region_comuna(checker, region, comuna, referencia)

    return checker.result(
        campos,
        lambda: DatosPropiedad(
            direccion=direccion,
            region=region,
            comuna=comuna,
            rol_avaluo=rol,
            avaluo_fiscal=avaluo,
            tipo_propietario=tipo,
            destino_habitacional=habitacional,
            inscripcion=inscripcion,
        ),
    )


def validate_datos_economicos(
    data: Mapping[str, Any] | None,
    campos: Iterable[str] | None = None,
) -> ValidationResult[DatosEconomicos]:
    checker = _Checker(data)
    ingreso = checker.check(
        "ingreso_mensual",
        _parse_monto,
        "Ingrese su ingreso mensual",
        0,
        INGRESO_MAXIMO,
        "El ingreso no puede ser negativo",
        "El ingreso parece demasiado alto",
    )
    fuentes = checker.check(
        "fuentes_ingreso", _parse_enum_list, FuenteIngreso, "Seleccione al menos una fuente de ingresos"
    )
    otros = checker.check("fuente_ingreso_otros", _optional_text, 200)
    if fuentes and FuenteIngreso.OTROS in fuentes and not otros:
        checker.fail("fuente_ingreso_otros", "Especifique cuáles son sus otros ingresos")
    rsh = checker.check(
        "esta_en_rsh",
        _parse_enum,
        RespuestaRSH,
        "Indique si está inscrito en el Registro Social de Hogares",
    )
    tramo = None
    if rsh == RespuestaRSH.SI:
        tramo = checker.check(
            "tramo_rsh", _parse_enum, TramoRSH, "Si está inscrito en el RSH, debe indicar en qué tramo"
        )
    else:
        checker.valores["tramo_rsh"] = None
    otras = checker.check(
        "tiene_otras_propiedades", _parse_bool, "Indique si tiene otras propiedades", True
    )
    beneficio = checker.check(
        "beneficio_actual",
        _parse_enum,
        BeneficioActual,
        "Indique si tiene algún beneficio actualmente",
    )

    return checker.result(
        campos,
        lambda: DatosEconomicos(
            ingreso_mensual=ingreso,
            ingreso_anual=calculos.annual_from_monthly(ingreso),
            fuentes_ingreso=fuentes,
            fuente_ingreso_otros=otros if FuenteIngreso.OTROS in fuentes else "",
            esta_en_rsh=rsh,
            tramo_rsh=tramo,
            tiene_otras_propiedades=otras,
            beneficio_actual=beneficio,
        ),
    )


def _giros_raw(value: Any) -> list[Mapping[str, Any]]:
    if not value:
        return []
    if isinstance(value, Mapping):
        return [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def validate_giro(data: Mapping[str, Any], *, hoy: date | None = None) -> ValidationResult[Giro]:
    hoy = hoy or date.today()
    checker = _Checker(data)
    numero = checker.check("numero", _text, "Ingrese el número de giro", 1, 30, "El número de giro es demasiado largo")
    fecha = checker.check("fecha", _parse_fecha_pasada, hoy, "Ingrese la fecha del giro")
    monto = checker.check(
        "monto",
        _parse_monto,
        "Ingrese el monto del giro",
        1,
        INGRESO_MAXIMO,
        "Ingrese el monto del giro",
        "El monto parece demasiado alto",
    )
    return checker.result(None, lambda: Giro(numero=numero, fecha=fecha, monto=monto))


def validate_datos_contribuciones(
    data: Mapping[str, Any] | None,
    campos: Iterable[str] | None = None,
    *,
    hoy: date | None = None,
    ingreso_anual: int | float = 0,
) -> ValidationResult[DatosContribuciones]:
    hoy = hoy or date.today()
    checker = _Checker(data)
    trimestral = checker.check(
        "contribucion_trimestral",
        _parse_monto,
        "Ingrese el monto de la contribución trimestral",
        1,
        INGRESO_MAXIMO,
        "Ingrese el monto de la contribución trimestral",
        "El monto parece demasiado alto",
    )
    pendientes = checker.check("tiene_giros_pendientes", _parse_bool, "Indique si tiene giros pendientes", True)

    giros: list[Giro] = []
    giros_valores: list[dict[str, Any]] = []
    if pendientes:
        filas = _giros_raw(checker.raw("giros"))
        if len(filas) > MAX_GIROS:
            checker.fail("giros", f"Puede impugnar hasta {MAX_GIROS} giros en un mismo recurso")
            filas = filas[:MAX_GIROS]
        for index, raw_giro in enumerate(filas):
            giro_result = validate_giro(raw_giro, hoy=hoy)
            giros_valores.append(giro_result.valores)
            for campo, message in giro_result.errores.items():
                checker.errores[f"giros.{index}.{campo}"] = message
            if giro_result.valor is not None:
                giros.append(giro_result.valor)
        if not giros_valores:
            checker.fail("giros", "Debe agregar al menos un giro para impugnar")
    checker.valores["giros"] = giros_valores

    def build() -> DatosContribuciones:
        anual = calculos.annual_from_quarterly(trimestral)
        return DatosContribuciones(
            contribucion_trimestral=trimestral,
            contribucion_anual=anual,
            porcentaje_ingresos=calculos.income_percentage(anual, ingreso_anual),
            tiene_giros_pendientes=pendientes,
            giros=tuple(giros),
        )

    return checker.result(campos, build)


def validate_procedimiento_previo(
    data: Mapping[str, Any] | None,
    campos: Iterable[str] | None = None,
    *,
    hoy: date | None = None,
) -> ValidationResult[ProcedimientoPrevio]:
    hoy = hoy or date.today()
    checker = _Checker(data)
    presento = checker.check(
        "presento_solicitud", _parse_bool, "Indique si presentó una solicitud al SII", True
    )
    fecha_solicitud = None
    denegatoria = False
    numero = ""
    fecha_resolucion = None
    if presento:
        fecha_solicitud = checker.check(
            "fecha_solicitud",
            _parse_fecha_pasada,
            hoy,
            "Indique la fecha en que presentó la solicitud",
        )
        denegatoria = checker.check(
            "recibio_denegatoria", _parse_bool, "Indique si recibió una resolución denegatoria", True
        )
    else:
        checker.valores.update(
            {"fecha_solicitud": None, "recibio_denegatoria": False, "numero_resolucion": "", "fecha_resolucion": None}
        )
    if denegatoria:
        numero = checker.check(
            "numero_resolucion",
            _text,
            "Indique el número de la resolución denegatoria",
            1,
            50,
            "El número de resolución es demasiado largo",
        )
        fecha_resolucion = checker.check(
            "fecha_resolucion",
            _parse_fecha_pasada,
            hoy,
            "Indique la fecha de la resolución denegatoria",
        )
        if fecha_solicitud and fecha_resolucion and fecha_resolucion < fecha_solicitud:
            checker.fail("fecha_resolucion", "La resolución no puede ser anterior a la solicitud")
    elif presento:
        checker.valores.update({"numero_resolucion": "", "fecha_resolucion": None})

    return checker.result(
        campos,
        lambda: ProcedimientoPrevio(
            presento_solicitud=presento,
            fecha_solicitud=fecha_solicitud,
            recibio_denegatoria=bool(denegatoria),
            numero_resolucion=numero or "",
            fecha_resolucion=fecha_resolucion,
        ),
    )
