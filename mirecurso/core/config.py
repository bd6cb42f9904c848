from __future__ import annotations

import os
from pathlib import Path

DEFAULT_REFERENCE_DATA_DIR = Path(__file__).resolve().parent / "data"


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    APP_ENV = os.getenv("APP_ENV", "production")

    WIZARD_STORAGE_KEY = os.getenv("WIZARD_STORAGE_KEY", "mirecurso-formulario-v2")
    WIZARD_LEGACY_KEYS = ("mirecurso-formulario-v1",)
    # Cookie-backed sessions are capped by the browser at ~4 KB.
    WIZARD_MAX_STORED_BYTES = int(os.getenv("WIZARD_MAX_STORED_BYTES", "3800"))

    REFERENCE_DATA_DIR = os.getenv("REFERENCE_DATA_DIR", str(DEFAULT_REFERENCE_DATA_DIR))

    MINIMUM_AGE = int(os.getenv("MINIMUM_AGE", "60"))
    DISPROPORTION_THRESHOLD_PCT = float(os.getenv("DISPROPORTION_THRESHOLD_PCT", "10"))
    FAVORABLE_THRESHOLD_PCT = float(os.getenv("FAVORABLE_THRESHOLD_PCT", "25"))
    FILING_WINDOW_DAYS = int(os.getenv("FILING_WINDOW_DAYS", "30"))

    TRANSCRIPTION_URL = os.getenv("TRANSCRIPTION_URL", "")
    TRANSCRIPTION_TIMEOUT = int(os.getenv("TRANSCRIPTION_TIMEOUT", "30"))
