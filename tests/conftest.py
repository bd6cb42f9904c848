from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mirecurso import create_app
from mirecurso.core.config import Config
from mirecurso.core.referencia import load_reference_data
from mirecurso.formulario.persistence import MemoryStorage, WizardPersistence
from mirecurso.formulario.store import STEP_DOMAINS, WizardStore

HOY = date(2026, 3, 2)
STORAGE_KEY = "mirecurso-formulario-v2"
LEGACY_KEY = "mirecurso-formulario-v1"

PERSONAL = {
    "nombre_completo": "María Soledad Pérez Rojas",
    "rut": "12.345.678-5",
    "fecha_nacimiento": "1950-05-10",
    "estado_civil": "viudo",
    "profesion": "Jubilada",
    "domicilio": "Av. Los Leones 1234",
    "region": "Metropolitana",
    "comuna": "Providencia",
    "telefono": "",
    "email": "",
}
PROPIEDAD = {
    "direccion": "Av. Los Leones 1234",
    "region": "Metropolitana",
    "comuna": "Providencia",
    "rol_avaluo": "00372-00010",
    "avaluo_fiscal": "100.000.000",
    "tipo_propietario": "unico",
    "destino_habitacional": "si",
    "conoce_inscripcion": False,
}
ECONOMICO = {
    "ingreso_mensual": "850000",
    "fuentes_ingreso": ["pgu", "pension_afp"],
    "esta_en_rsh": "no",
    "tiene_otras_propiedades": "no",
    "beneficio_actual": "ninguno",
}
CONTRIBUCIONES = {"contribucion_trimestral": "150000", "tiene_giros_pendientes": "no"}
PROCEDIMIENTO = {"presento_solicitud": "no"}

DATOS_VALIDOS = {
    "personal": PERSONAL,
    "propiedad": PROPIEDAD,
    "economico": ECONOMICO,
    "contribuciones": CONTRIBUCIONES,
    "procedimiento": PROCEDIMIENTO,
}


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    TRANSCRIPTION_URL = ""


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def referencia():
    return load_reference_data()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def make_store(referencia, storage):
    def _make(hoy: date = HOY, backend: MemoryStorage | None = None) -> WizardStore:
        persistence = WizardPersistence(backend or storage, STORAGE_KEY, (LEGACY_KEY,))
        return WizardStore(referencia, persistence, hoy=lambda: hoy)

    return _make


@pytest.fixture
def store(make_store):
    wizard = make_store()
    wizard.hydrate()
    return wizard


@pytest.fixture
def fill_store():
    """Complete the five data steps with valid data, applying per-domain overrides."""

    def _fill(wizard: WizardStore, **overrides: dict) -> WizardStore:
        for step, dominio in STEP_DOMAINS.items():
            datos = {**DATOS_VALIDOS[dominio], **overrides.get(dominio, {})}
            result = wizard.validate_domain(dominio, datos)
            assert result.ok, result.errores
            wizard.complete_step(step, result.valores)
        return wizard

    return _fill


@pytest.fixture
def complete_wizard(client):
    """Walk every sub-step of steps 1-5 through the HTTP form flow."""

    def _walk(**overrides: dict):
        sub_steps = {1: 5, 2: 3, 3: 4, 4: 2, 5: 1}
        response = None
        for step, dominio in STEP_DOMAINS.items():
            data = {**DATOS_VALIDOS[dominio], **overrides.get(dominio, {})}
            data = {key: value for key, value in data.items() if value is not False}
            count = sub_steps[step]
            if step == 5 and data.get("presento_solicitud") == "si":
                count = 2
            for sub_paso in range(count):
                response = client.post(
                    f"/formulario/paso-{step}",
                    data={**data, "sub_paso": str(sub_paso), "action": "siguiente"},
                )
                assert response.status_code == 302, response.get_data(as_text=True)
        return response

    return _walk
