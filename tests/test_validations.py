from __future__ import annotations

from datetime import date

import pytest

from mirecurso.core.models import EstadoCivil, FuenteIngreso, TramoRSH
from mirecurso.core.validations import (
    MAX_GIROS,
    validate_datos_contribuciones,
    validate_datos_economicos,
    validate_datos_personales,
    validate_datos_propiedad,
    validate_procedimiento_previo,
)

from conftest import CONTRIBUCIONES, ECONOMICO, HOY, PERSONAL, PROCEDIMIENTO, PROPIEDAD


def test_personal_data_normalizes_and_builds_value(referencia):
    result = validate_datos_personales({**PERSONAL, "rut": "123456785"}, hoy=HOY, referencia=referencia)
    assert result.ok
    assert result.valores["rut"] == "12.345.678-5"
    assert result.valores["fecha_nacimiento"] == "1950-05-10"
    assert result.valor.edad == 75
    assert result.valor.estado_civil == EstadoCivil.VIUDO


def test_turning_sixty_today_passes_and_one_day_short_fails():
    ok = validate_datos_personales({**PERSONAL, "fecha_nacimiento": "2-3-1966"}, hoy=HOY)
    assert ok.ok
    assert ok.valor.edad == 60

    young = validate_datos_personales({**PERSONAL, "fecha_nacimiento": "1966-03-03"}, hoy=HOY)
    assert young.errores["fecha_nacimiento"] == "Debe tener al menos 60 años para usar este servicio"
    assert young.valor is None


def test_personal_field_errors():
    result = validate_datos_personales(
        {**PERSONAL, "rut": "12.345.678-9", "nombre_completo": "Ana", "domicilio": "corta", "email": "x@"},
        hoy=HOY,
    )
    assert result.errores["rut"] == "El RUT ingresado no es válido"
    assert "5 caracteres" in result.errores["nombre_completo"]
    assert "domicilio" in result.errores
    assert result.errores["email"] == "El email no es válido"


def test_future_birth_date_rejected():
    result = validate_datos_personales({**PERSONAL, "fecha_nacimiento": "2027-01-01"}, hoy=HOY)
    assert result.errores["fecha_nacimiento"] == "La fecha no puede ser futura"


def test_commune_must_belong_to_region(referencia):
    result = validate_datos_personales({**PERSONAL, "comuna": "Temuco"}, hoy=HOY, referencia=referencia)
    assert result.errores["comuna"] == "La comuna no pertenece a la región seleccionada"


def test_partial_validation_only_reports_requested_fields():
    result = validate_datos_personales({"nombre_completo": "María Pérez", "rut": "bad"}, ["nombre_completo"], hoy=HOY)
    assert result.ok
    assert result.valor is None

    result = validate_datos_personales({"nombre_completo": "María Pérez", "rut": "bad"}, ["nombre_completo", "rut"], hoy=HOY)
    assert list(result.errores) == ["rut"]


def test_property_roll_pattern_and_money_parsing():
    result = validate_datos_propiedad({**PROPIEDAD, "avaluo_fiscal": "$ 300.000.000"}, hoy=HOY)
    assert result.ok
    assert result.valor.avaluo_fiscal == 300_000_000
    assert result.valor.destino_habitacional is True

    bad = validate_datos_propiedad({**PROPIEDAD, "rol_avaluo": "372/10", "avaluo_fiscal": "0"}, hoy=HOY)
    assert bad.errores["rol_avaluo"] == "El rol debe tener formato XXXXX-XXXXX (ej: 00372-00010)"
    assert "avaluo_fiscal" in bad.errores


def test_property_registry_details_are_optional_but_checked():
    result = validate_datos_propiedad(
        {
            **PROPIEDAD,
            "conoce_inscripcion": "on",
            "inscripcion_fojas": "1234",
            "inscripcion_anio": "1985",
            "conservador": "Santiago",
        },
        hoy=HOY,
    )
    assert result.ok
    assert result.valor.inscripcion.fojas == 1234
    assert result.valor.inscripcion.numero is None

    bad = validate_datos_propiedad({**PROPIEDAD, "conoce_inscripcion": "on", "inscripcion_anio": "2099"}, hoy=HOY)
    assert "inscripcion_anio" in bad.errores


def test_economic_cross_field_rules():
    otros = validate_datos_economicos({**ECONOMICO, "fuentes_ingreso": ["otros"]})
    assert otros.errores["fuente_ingreso_otros"] == "Especifique cuáles son sus otros ingresos"

    rsh = validate_datos_economicos({**ECONOMICO, "esta_en_rsh": "si"})
    assert rsh.errores["tramo_rsh"] == "Si está inscrito en el RSH, debe indicar en qué tramo"

    ok = validate_datos_economicos({**ECONOMICO, "esta_en_rsh": "si", "tramo_rsh": "40"})
    assert ok.valor.tramo_rsh == TramoRSH.T40
    assert ok.valor.ingreso_anual == 10_200_000
    assert ok.valor.fuentes_ingreso == (FuenteIngreso.PGU, FuenteIngreso.PENSION_AFP)


def test_economic_requires_at_least_one_source_and_allows_zero_income():
    result = validate_datos_economicos({**ECONOMICO, "fuentes_ingreso": [], "ingreso_mensual": "0"})
    assert "fuentes_ingreso" in result.errores
    assert "ingreso_mensual" not in result.errores


def test_pending_charges_need_at_least_one_entry():
    result = validate_datos_contribuciones({**CONTRIBUCIONES, "tiene_giros_pendientes": "si"}, hoy=HOY)
    assert result.errores["giros"] == "Debe agregar al menos un giro para impugnar"


def test_charge_entries_are_validated_individually():
    result = validate_datos_contribuciones(
        {
            **CONTRIBUCIONES,
            "tiene_giros_pendientes": "si",
            "giros": [
                {"numero": "123", "fecha": "2025-11-30", "monto": "150.000"},
                {"numero": "456", "fecha": "2026-12-01", "monto": "0"},
            ],
        },
        hoy=HOY,
    )
    assert result.errores["giros.1.fecha"] == "La fecha no puede ser futura"
    assert "giros.1.monto" in result.errores
    assert "giros.0.fecha" not in result.errores


def test_charge_count_is_capped():
    giro = {"numero": "9988", "fecha": "2025-11-30", "monto": "150.000"}
    result = validate_datos_contribuciones(
        {**CONTRIBUCIONES, "tiene_giros_pendientes": "si", "giros": [dict(giro) for _ in range(MAX_GIROS + 1)]},
        hoy=HOY,
    )
    assert result.errores["giros"] == f"Puede impugnar hasta {MAX_GIROS} giros en un mismo recurso"
    assert len(result.valores["giros"]) == MAX_GIROS

    result = validate_datos_contribuciones(
        {**CONTRIBUCIONES, "tiene_giros_pendientes": "si", "giros": [dict(giro) for _ in range(MAX_GIROS)]},
        hoy=HOY,
    )
    assert result.ok


def test_contributions_compute_annual_and_percentage():
    result = validate_datos_contribuciones(CONTRIBUCIONES, hoy=HOY, ingreso_anual=10_200_000)
    assert result.valor.contribucion_anual == 600_000
    assert round(result.valor.porcentaje_ingresos, 1) == 5.9
    assert result.valor.giros == ()


def test_prior_proceeding_requirements():
    missing_date = validate_procedimiento_previo({"presento_solicitud": "si", "recibio_denegatoria": "no"}, hoy=HOY)
    assert missing_date.errores["fecha_solicitud"] == "Indique la fecha en que presentó la solicitud"

    denial = validate_procedimiento_previo(
        {"presento_solicitud": "si", "fecha_solicitud": "2026-01-05", "recibio_denegatoria": "si"}, hoy=HOY
    )
    assert "numero_resolucion" in denial.errores
    assert "fecha_resolucion" in denial.errores

    backwards = validate_procedimiento_previo(
        {
            "presento_solicitud": "si",
            "fecha_solicitud": "2026-01-05",
            "recibio_denegatoria": "si",
            "numero_resolucion": "213555",
            "fecha_resolucion": "2026-01-02",
        },
        hoy=HOY,
    )
    assert backwards.errores["fecha_resolucion"] == "La resolución no puede ser anterior a la solicitud"


def test_no_prior_request_clears_denial_fields():
    result = validate_procedimiento_previo(
        {**PROCEDIMIENTO, "recibio_denegatoria": "si", "numero_resolucion": "1"}, hoy=HOY
    )
    assert result.ok
    assert result.valor.recibio_denegatoria is False
    assert result.valores["numero_resolucion"] == ""
    assert result.valor.fecha_solicitud is None


def test_validators_report_errors_instead_of_raising():
    assert not validate_datos_economicos({"ingreso_mensual": object(), "fuentes_ingreso": 5}).ok
    assert not validate_datos_contribuciones({"contribucion_trimestral": [], "tiene_giros_pendientes": "si", "giros": 7}).ok
    assert not validate_datos_personales(None, hoy=date(2026, 1, 1)).ok
    assert not validate_procedimiento_previo({"presento_solicitud": "quizas"}, hoy=HOY).ok


@pytest.mark.parametrize("valor", [float("inf"), float("-inf"), float("nan"), 1e400, "9" * 5000])
def test_unrepresentable_amounts_are_rejected(valor):
    result = validate_datos_economicos({**ECONOMICO, "ingreso_mensual": valor}, campos=["ingreso_mensual"])
    assert "ingreso_mensual" in result.errores
