from __future__ import annotations

from flask import Response, current_app, g, session

from mirecurso.core.referencia import ReferenceData
from mirecurso.formulario.persistence import SessionStorage, WizardPersistence
from mirecurso.formulario.store import WizardStore
from mirecurso.formulario.voz import Transcriber


def get_referencia() -> ReferenceData:
    return current_app.extensions["mirecurso.referencia"]


def get_transcriber() -> Transcriber:
    return current_app.extensions["mirecurso.transcriber"]


def build_session_store() -> WizardStore:
    config = current_app.config
    persistence = WizardPersistence(
        SessionStorage(session, config.get("WIZARD_MAX_STORED_BYTES")),
        config["WIZARD_STORAGE_KEY"],
        tuple(config.get("WIZARD_LEGACY_KEYS", ())),
    )
    return WizardStore.from_config(config, get_referencia(), persistence)


def load_wizard_context() -> None:
    g.wizard = build_session_store()
    g.wizard.hydrate()


def flush_wizard(response: Response) -> Response:
    wizard = g.get("wizard")
    if wizard is not None:
        wizard.flush()
    return response
