from __future__ import annotations

import logging
from typing import Protocol

import requests

logger = logging.getLogger(__name__)


class TranscriptionError(RuntimeError):
    code = "error_procesamiento"
    message = "No pudimos procesar el audio. Intente nuevamente o escriba su respuesta."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)
        self.detail = detail


class NoAudioError(TranscriptionError):
    code = "sin_audio"
    message = "No se recibió audio. Verifique que el micrófono tenga permiso."


class NoSpeechError(TranscriptionError):
    code = "sin_voz"
    message = "No se detectó voz en la grabación. Hable más cerca del micrófono."


class TranscriptionUnavailable(TranscriptionError):
    code = "no_disponible"
    message = "El dictado por voz no está disponible en este momento."


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, mimetype: str, language: str = "es-CL") -> str: ...


class HttpTranscriber:
    """Sends recorded audio to an external speech-to-text endpoint."""

    def __init__(self, url: str, timeout: int = 30, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def transcribe(self, audio: bytes, mimetype: str, language: str = "es-CL") -> str:
        if not self.url:
            raise TranscriptionUnavailable()
        if not audio:
            raise NoAudioError()
        try:
            response = self.session.post(
                self.url,
                files={"audio": ("grabacion", audio, mimetype or "application/octet-stream")},
                data={"language": language},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            logger.warning("Fallo la transcripcion: %s", exc)
            raise TranscriptionError(str(exc)) from exc
        except ValueError as exc:
            logger.warning("Respuesta de transcripcion invalida: %s", exc)
            raise TranscriptionError("respuesta invalida") from exc

        text = str(payload.get("text") or "").strip() if isinstance(payload, dict) else ""
        if not text:
            raise NoSpeechError()
        return text
