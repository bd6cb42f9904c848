from __future__ import annotations

import json
from datetime import timedelta

import pytest

from mirecurso.core.referencia import TipoRebaja
from mirecurso.formulario.persistence import MemoryStorage
from mirecurso.formulario.store import StepNotAccessibleError

from conftest import HOY, LEGACY_KEY, STORAGE_KEY


def _saved(storage: MemoryStorage) -> dict:
    return json.loads(storage.items[STORAGE_KEY])


def test_fresh_store_starts_at_step_one(store):
    assert store.hydrated
    assert store.current_step == 1
    assert store.completed_steps == frozenset()
    assert store.furthest_accessible_step() == 1
    assert not store.has_saved_progress()
    assert store.porcentaje_completado() == 0


def test_steps_unlock_in_order(store):
    assert store.is_step_accessible(1)
    assert not store.is_step_accessible(2)

    with pytest.raises(StepNotAccessibleError) as excinfo:
        store.go_to_step(4)
    assert excinfo.value.step == 4
    assert excinfo.value.redirect_to == 1

    store.complete_step(1)
    store.go_to_step(2)
    assert store.current_step == 2
    assert not store.is_step_accessible(3)
    assert not store.is_step_accessible(8)


def test_furthest_step_follows_contiguous_completions(store):
    store.complete_step(1)
    store.complete_step(2)
    store.complete_step(4)
    assert store.furthest_accessible_step() == 3
    assert store.is_step_accessible(5)


def test_complete_step_rejects_out_of_range(store):
    with pytest.raises(ValueError):
        store.complete_step(0)


def test_progress_percentage_counts_data_steps(store, fill_store):
    store.complete_step(1)
    store.complete_step(2)
    assert store.porcentaje_completado() == 40
    fill_store(store)
    store.complete_step(6)
    assert store.porcentaje_completado() == 100


def test_saved_progress_detects_name_or_address(store):
    store.update_domain("propiedad", {"direccion": "  "})
    assert not store.has_saved_progress()
    store.update_domain("propiedad", {"direccion": "Calle Uno 123"})
    assert store.has_saved_progress()


def test_commit_field_returns_only_its_own_error(store):
    assert store.commit_field("personal", "rut", "12.345.678-9") == "El RUT ingresado no es válido"
    assert store.commit_field("personal", "nombre_completo", "María Pérez") is None
    assert store.datos("personal")["rut"] == "12.345.678-9"
    with pytest.raises(ValueError):
        store.commit_field("otro", "campo", 1)


def test_field_commits_coalesce_into_one_write(store, storage):
    store.commit_field("personal", "nombre_completo", "María Pérez")
    store.commit_field("personal", "profesion", "Jubilada")
    store.commit_field("personal", "telefono", "+56 9 1234 5678")
    assert storage.writes == 0
    assert store.flush() is True
    assert storage.writes == 1
    assert store.flush() is False
    assert storage.writes == 1


def test_state_round_trips_through_persistence(store, storage, make_store, fill_store):
    fill_store(store)
    store.go_to_step(6)
    store.flush()

    envelope = _saved(storage)
    assert envelope["version"] == 2
    assert envelope["state"]["current_step"] == 6

    reloaded = make_store()
    assert reloaded.hydrate() is True
    assert reloaded.current_step == 6
    assert reloaded.completed_steps == store.completed_steps
    assert reloaded.datos("personal") == store.datos("personal")
    assert reloaded.assemble_case_record() == store.assemble_case_record()


def test_reset_clears_state_and_storage(store, storage, make_store, fill_store):
    fill_store(store)
    store.flush()
    storage.items[LEGACY_KEY] = "{}"

    store.reset()
    assert store.assemble_case_record() is None
    assert store.current_step == 1
    assert store.completed_steps == frozenset()
    assert STORAGE_KEY not in storage.items
    assert LEGACY_KEY not in storage.items

    reloaded = make_store()
    assert reloaded.hydrate() is False
    assert not reloaded.has_saved_progress()


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        json.dumps({"version": 3, "state": {}}),
        json.dumps({"version": 2, "state": "x"}),
        json.dumps({"version": 2, "state": {"current_step": 12}}),
        json.dumps({"version": 2, "state": {"completed_steps": "1,2"}}),
    ],
)
def test_unusable_records_are_purged(make_store, raw, caplog):
    backend = MemoryStorage({STORAGE_KEY: raw})
    wizard = make_store(backend=backend)
    with caplog.at_level("WARNING"):
        assert wizard.hydrate() is False
    assert wizard.hydrated
    assert wizard.current_step == 1
    assert STORAGE_KEY not in backend.items
    assert caplog.records


def test_v1_record_is_migrated(make_store):
    legacy = {
        "state": {
            "currentStep": 4,
            "datosPersonales": {"nombreCompleto": "María Pérez", "rut": "12.345.678-5", "estadoCivil": "viudo"},
            "datosPropiedad": {"direccionPropiedad": "Av. Los Leones 1234", "rolAvaluo": "00372-00010"},
            "datosTributarios": {
                "ingresoMensual": 850000,
                "tieneBeneficioActual": False,
                "montoContribucionTrimestral": 150000,
            },
        },
        "version": 0,
    }
    backend = MemoryStorage({LEGACY_KEY: json.dumps(legacy)})
    wizard = make_store(backend=backend)

    assert wizard.hydrate() is True
    assert wizard.current_step == 1
    assert wizard.completed_steps == frozenset()
    assert wizard.datos("personal")["nombre_completo"] == "María Pérez"
    assert wizard.datos("propiedad")["rol_avaluo"] == "00372-00010"
    assert wizard.datos("economico") == {"ingreso_mensual": 850000, "beneficio_actual": "ninguno"}
    assert wizard.datos("contribuciones") == {"contribucion_trimestral": 150000}
    assert LEGACY_KEY not in backend.items
    assert _saved(backend)["version"] == 2


def test_quota_failure_keeps_state_in_memory(make_store, caplog):
    backend = MemoryStorage(max_bytes=10)
    wizard = make_store(backend=backend)
    wizard.hydrate()
    wizard.commit_field("personal", "nombre_completo", "María Pérez")
    with caplog.at_level("WARNING"):
        assert wizard.flush() is False
    assert "cuota" in caplog.text
    assert wizard.datos("personal")["nombre_completo"] == "María Pérez"
    assert STORAGE_KEY not in backend.items


def test_case_record_requires_all_data_steps(store, fill_store):
    assert store.assemble_case_record() is None
    fill_store(store)
    store.state.completed_steps.discard(3)
    assert store.assemble_case_record() is None


def test_case_record_is_idempotent(store, fill_store):
    fill_store(store)
    first = store.assemble_case_record()
    second = store.assemble_case_record()
    assert first == second
    assert first is not second


def test_case_record_with_invalid_stored_data_is_refused(store, fill_store, caplog):
    fill_store(store)
    store.update_domain("personal", {"rut": "11.111.111-2"})
    with caplog.at_level("WARNING"):
        assert store.assemble_case_record() is None
    assert "personal" in caplog.text


def test_case_record_derives_values(store, fill_store):
    caso = fill_store(store).assemble_case_record()
    assert caso.datos_personales.edad == 75
    assert caso.datos_economicos.ingreso_anual == 10_200_000
    assert caso.datos_contribuciones.contribucion_anual == 600_000
    assert round(caso.datos_contribuciones.porcentaje_ingresos, 1) == 5.9
    assert caso.tipo_rebaja == TipoRebaja.TOTAL
    assert caso.corte.nombre == "Corte de Apelaciones de Santiago"
    assert caso.fecha_referencia == HOY

    validaciones = caso.validaciones
    assert validaciones.cumple_edad
    assert validaciones.cumple_ingresos_100
    assert validaciones.es_habitacional
    assert not validaciones.excede_tope_avaluo
    assert not validaciones.porcentaje_desproporcionado
    assert validaciones.dentro_del_plazo


def test_appraisal_cap_and_disproportion_flags(store, fill_store):
    fill_store(
        store,
        propiedad={"avaluo_fiscal": "300.000.000"},
        economico={"ingreso_mensual": "350000"},
        contribuciones={"contribucion_trimestral": "420000"},
    )
    caso = store.assemble_case_record()
    assert caso.validaciones.excede_tope_avaluo
    assert caso.validaciones.porcentaje_desproporcionado
    assert round(caso.datos_contribuciones.porcentaje_ingresos, 1) == 40.0
    assert store.es_muy_favorable(caso.datos_contribuciones.porcentaje_ingresos)


@pytest.mark.parametrize("dias, dentro", [(10, True), (30, True), (45, False)])
def test_filing_window_after_denial(store, fill_store, dias, dentro):
    fill_store(
        store,
        procedimiento={
            "presento_solicitud": "si",
            "fecha_solicitud": "2026-01-05",
            "recibio_denegatoria": "si",
            "numero_resolucion": "213555",
            "fecha_resolucion": (HOY - timedelta(days=dias)).isoformat(),
        },
    )
    assert store.assemble_case_record().validaciones.dentro_del_plazo is dentro


def test_filing_window_uses_configured_days(make_store, fill_store):
    wizard = make_store()
    wizard.plazo_dias = 60
    fill_store(
        wizard,
        procedimiento={
            "presento_solicitud": "si",
            "fecha_solicitud": "2026-01-05",
            "recibio_denegatoria": "si",
            "numero_resolucion": "213555",
            "fecha_resolucion": (HOY - timedelta(days=45)).isoformat(),
        },
    )
    assert wizard.validaciones().dentro_del_plazo


def test_validations_reflect_partial_data(store):
    store.update_domain("personal", {"fecha_nacimiento": "1950-05-10"})
    validaciones = store.validaciones()
    assert not validaciones.cumple_edad
    assert not validaciones.cumple_ingresos_100
    assert validaciones.dentro_del_plazo


def test_infinite_amount_commit_reports_field_error(store):
    assert store.commit_field("economico", "ingreso_mensual", float("inf")) == "Ingrese un monto válido"
    assert store.commit_field("economico", "ingreso_mensual", 1e400) == "Ingrese un monto válido"
    assert not store.validate_domain("economico").ok


def test_changing_reviewed_data_requires_new_confirmation(store, fill_store):
    fill_store(store)
    store.complete_step(6)
    store.complete_step(7)

    store.complete_step(2, store.validate_domain("propiedad").valores)
    assert store.is_step_accessible(7)

    store.update_domain("propiedad", {"avaluo_fiscal": "300.000.000"})
    assert 6 not in store.completed_steps
    assert 7 not in store.completed_steps
    assert not store.is_step_accessible(7)


def test_field_commit_after_review_reopens_it(store, fill_store):
    fill_store(store)
    store.complete_step(6)
    store.commit_field("personal", "profesion", "Profesora jubilada")
    assert store.furthest_accessible_step() == 6


def test_storage_fit_uses_backend_quota(make_store, fill_store):
    wizard = make_store(backend=MemoryStorage(max_bytes=4000))
    fill_store(wizard)
    assert wizard.fits_storage()

    wizard = make_store(backend=MemoryStorage(max_bytes=200))
    fill_store(wizard)
    assert not wizard.fits_storage()
