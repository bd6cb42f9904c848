from __future__ import annotations

import json

import pytest

from mirecurso.formulario.persistence import (
    JsonFileStorage,
    MemoryStorage,
    SessionStorage,
    StorageError,
    StorageQuotaExceeded,
    WizardPersistence,
    migrate_v1_state,
)

from conftest import LEGACY_KEY, STORAGE_KEY


def test_json_file_storage_round_trip(tmp_path):
    path = tmp_path / "estado" / "formulario.json"
    storage = JsonFileStorage(path)
    assert storage.read(STORAGE_KEY) is None

    storage.write(STORAGE_KEY, '{"version": 2}')
    storage.write("otra", "x")
    assert JsonFileStorage(path).read(STORAGE_KEY) == '{"version": 2}'

    storage.remove(STORAGE_KEY)
    assert json.loads(path.read_text(encoding="utf-8")) == {"otra": "x"}
    assert not path.with_suffix(".json.tmp").exists()


def test_json_file_storage_accepts_inline_envelope(tmp_path):
    path = tmp_path / "formulario.json"
    path.write_text(json.dumps({STORAGE_KEY: {"version": 2, "state": {}}}), encoding="utf-8")
    persistence = WizardPersistence(JsonFileStorage(path), STORAGE_KEY)
    assert persistence.load() == {}


def test_unreadable_file_is_reported_as_absent(tmp_path, caplog):
    path = tmp_path / "formulario.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(StorageError):
        JsonFileStorage(path).read(STORAGE_KEY)

    persistence = WizardPersistence(JsonFileStorage(path), STORAGE_KEY)
    with caplog.at_level("WARNING"):
        assert persistence.load() is None
    assert "No se pudo leer" in caplog.text


def test_session_storage_enforces_quota():
    session: dict = {}
    storage = SessionStorage(session, max_bytes=20)
    storage.write(STORAGE_KEY, "corto")
    assert session[STORAGE_KEY] == "corto"
    with pytest.raises(StorageQuotaExceeded):
        storage.write(STORAGE_KEY, "ñ" * 11)
    assert session[STORAGE_KEY] == "corto"

    session["raro"] = {"version": 2}
    with pytest.raises(StorageError):
        storage.read("raro")


def test_save_wraps_state_in_versioned_envelope():
    storage = MemoryStorage()
    persistence = WizardPersistence(storage, STORAGE_KEY)
    assert persistence.save({"current_step": 2}) is True
    assert json.loads(storage.items[STORAGE_KEY]) == {"version": 2, "state": {"current_step": 2}}
    assert persistence.load() == {"current_step": 2}


def test_current_record_wins_over_legacy():
    storage = MemoryStorage(
        {
            STORAGE_KEY: json.dumps({"version": 2, "state": {"current_step": 3}}),
            LEGACY_KEY: json.dumps({"state": {"datosPersonales": {"nombreCompleto": "Otra"}}}),
        }
    )
    persistence = WizardPersistence(storage, STORAGE_KEY, (LEGACY_KEY,))
    assert persistence.load() == {"current_step": 3}
    assert LEGACY_KEY in storage.items


def test_corrupt_legacy_record_is_dropped():
    storage = MemoryStorage({LEGACY_KEY: "no es json"})
    persistence = WizardPersistence(storage, STORAGE_KEY, (LEGACY_KEY,))
    assert persistence.load() is None
    assert storage.items == {}


def test_migration_maps_benefit_and_ignores_unknown_shapes():
    state = migrate_v1_state(
        {
            "datosPersonales": "texto",
            "datosPropiedad": {"mismoQueDomicilio": True, "avaluoFiscalVigente": 90000000, "desconocido": 1},
            "datosTributarios": {"tieneBeneficioActual": True, "tipoBeneficioActual": "parcial_50"},
        }
    )
    assert state["datos"]["personal"] == {}
    assert state["datos"]["propiedad"] == {"mismo_que_domicilio": True, "avaluo_fiscal": 90000000}
    assert state["datos"]["economico"] == {"beneficio_actual": "parcial_50"}
    assert state["datos"]["procedimiento"] == {}
    assert state["current_step"] == 1
