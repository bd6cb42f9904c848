from __future__ import annotations

import json
import logging
import os
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = 2


class StorageError(RuntimeError):
    pass


class StorageQuotaExceeded(StorageError):
    pass


class WizardStorage(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


def _check_quota(value: str, max_bytes: int | None) -> None:
    size = len(value.encode("utf-8"))
    if max_bytes is not None and size > max_bytes:
        raise StorageQuotaExceeded(f"{size} bytes exceed the {max_bytes} byte quota")


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None, max_bytes: int | None = None):
        self.items: dict[str, str] = dict(initial or {})
        self.max_bytes = max_bytes
        self.writes = 0

    def read(self, key: str) -> str | None:
        return self.items.get(key)

    def write(self, key: str, value: str) -> None:
        _check_quota(value, self.max_bytes)
        self.items[key] = value
        self.writes += 1

    def remove(self, key: str) -> None:
        self.items.pop(key, None)


class SessionStorage:
    """Stores wizard state in the signed client-side Flask session cookie."""

    def __init__(self, session: MutableMapping[str, Any], max_bytes: int | None = None):
        self.session = session
        self.max_bytes = max_bytes

    def read(self, key: str) -> str | None:
        value = self.session.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise StorageError(f"Unexpected value type in session key {key}")
        return value

    def write(self, key: str, value: str) -> None:
        _check_quota(value, self.max_bytes)
        self.session[key] = value

    def remove(self, key: str) -> None:
        self.session.pop(key, None)


class JsonFileStorage:
    """Key/value store kept in a single JSON document on disk."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            raise StorageError(f"No se pudo leer {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Formato inesperado en {self.path}")
        return data

    def _dump(self, data: dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StorageError(f"No se pudo escribir {self.path}: {exc}") from exc

    def read(self, key: str) -> str | None:
        value = self._load().get(key)
        if value is None or isinstance(value, str):
            return value
        # Hand-edited files may hold the envelope as an object.
        return json.dumps(value)

    def write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._dump(data)


_V1_PERSONAL = {
    "nombreCompleto": "nombre_completo",
    "rut": "rut",
    "fechaNacimiento": "fecha_nacimiento",
    "nacionalidad": "nacionalidad",
    "estadoCivil": "estado_civil",
    "profesion": "profesion",
    "domicilio": "domicilio",
    "region": "region",
    "comuna": "comuna",
    "telefono": "telefono",
    "email": "email",
}
_V1_PROPIEDAD = {
    "mismoQueDomicilio": "mismo_que_domicilio",
    "direccionPropiedad": "direccion",
    "regionPropiedad": "region",
    "comunaPropiedad": "comuna",
    "rolAvaluo": "rol_avaluo",
    "avaluoFiscalVigente": "avaluo_fiscal",
    "conoceInscripcion": "conoce_inscripcion",
    "inscripcionFojas": "inscripcion_fojas",
    "inscripcionNumero": "inscripcion_numero",
    "inscripcionAnio": "inscripcion_anio",
    "conservador": "conservador",
    "tipoPropietario": "tipo_propietario",
    "destinoHabitacional": "destino_habitacional",
}


def _rename(raw: Any, mapping: dict[str, str]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {target: raw[source] for source, target in mapping.items() if raw.get(source) is not None}


def migrate_v1_state(raw_state: dict[str, Any]) -> dict[str, Any]:
    """Carry the five-step layout's data into the current state shape.

    Progress restarts at step 1: step numbers of the old layout do not map
    onto the current one.
    """
    tributarios = raw_state.get("datosTributarios")
    tributarios = tributarios if isinstance(tributarios, dict) else {}

    economico: dict[str, Any] = {}
    if tributarios.get("ingresoMensual") is not None:
        economico["ingreso_mensual"] = tributarios["ingresoMensual"]
    if tributarios.get("tieneOtrasPropiedades") is not None:
        economico["tiene_otras_propiedades"] = tributarios["tieneOtrasPropiedades"]
    if tributarios.get("tieneBeneficioActual") is False:
        economico["beneficio_actual"] = "ninguno"
    elif tributarios.get("tipoBeneficioActual") in {"parcial_50", "total_100"}:
        economico["beneficio_actual"] = tributarios["tipoBeneficioActual"]

    contribuciones: dict[str, Any] = {}
    if tributarios.get("montoContribucionTrimestral") is not None:
        contribuciones["contribucion_trimestral"] = tributarios["montoContribucionTrimestral"]

    return {
        "current_step": 1,
        "completed_steps": [],
        "datos": {
            "personal": _rename(raw_state.get("datosPersonales"), _V1_PERSONAL),
            "propiedad": _rename(raw_state.get("datosPropiedad"), _V1_PROPIEDAD),
            "economico": economico,
            "contribuciones": contribuciones,
            "procedimiento": {},
        },
    }


class WizardPersistence:
    """Versioned, best-effort persistence of the wizard state.

    Reads never raise: corrupt or unknown-version records are purged and
    reported as absent. Writes return False instead of raising.
    """

    def __init__(self, storage: WizardStorage, key: str, legacy_keys: tuple[str, ...] = ()):
        self.storage = storage
        self.key = key
        self.legacy_keys = tuple(legacy_keys)

    def load(self) -> dict[str, Any] | None:
        raw = self._read(self.key)
        if raw is None:
            return self._load_legacy()
        try:
            envelope = json.loads(raw)
        except ValueError:
            logger.warning("Estado guardado corrupto en %s; se descarta", self.key)
            self._purge(self.key)
            return None
        if not isinstance(envelope, dict) or envelope.get("version") != ENVELOPE_VERSION:
            logger.warning(
                "Version de estado no soportada en %s (%r); se descarta",
                self.key,
                envelope.get("version") if isinstance(envelope, dict) else None,
            )
            self._purge(self.key)
            return None
        state = envelope.get("state")
        if not isinstance(state, dict):
            logger.warning("Estado guardado sin contenido valido en %s; se descarta", self.key)
            self._purge(self.key)
            return None
        return state

    def _encode(self, state: dict[str, Any]) -> str:
        return json.dumps({"version": ENVELOPE_VERSION, "state": state}, ensure_ascii=False, separators=(",", ":"))

    def fits(self, state: dict[str, Any]) -> bool:
        try:
            _check_quota(self._encode(state), getattr(self.storage, "max_bytes", None))
        except StorageQuotaExceeded:
            return False
        return True

    def save(self, state: dict[str, Any]) -> bool:
        payload = self._encode(state)
        try:
            self.storage.write(self.key, payload)
        except StorageQuotaExceeded as exc:
            logger.warning("No se guardo el formulario: cuota de almacenamiento excedida (%s)", exc)
            return False
        except StorageError as exc:
            logger.warning("No se guardo el formulario: %s", exc)
            return False
        return True

    def clear(self) -> None:
        for key in (self.key, *self.legacy_keys):
            self._purge(key)

    def discard(self) -> None:
        """Drop a record that was readable but failed structural checks."""
        logger.warning("Estado guardado invalido en %s; se descarta", self.key)
        self._purge(self.key)

    def _read(self, key: str) -> str | None:
        try:
            return self.storage.read(key)
        except StorageError as exc:
            logger.warning("No se pudo leer el estado guardado en %s: %s", key, exc)
            self._purge(key)
            return None

    def _purge(self, key: str) -> None:
        try:
            self.storage.remove(key)
        except StorageError as exc:
            logger.warning("No se pudo eliminar %s: %s", key, exc)

    def _load_legacy(self) -> dict[str, Any] | None:
        for legacy_key in self.legacy_keys:
            raw = self._read(legacy_key)
            if raw is None:
                continue
            self._purge(legacy_key)
            try:
                legacy = json.loads(raw)
            except ValueError:
                logger.warning("Estado heredado corrupto en %s; se descarta", legacy_key)
                continue
            legacy_state = legacy.get("state") if isinstance(legacy, dict) else None
            if not isinstance(legacy_state, dict):
                logger.warning("Estado heredado sin contenido en %s; se descarta", legacy_key)
                continue
            state = migrate_v1_state(legacy_state)
            logger.info("Estado migrado desde %s a %s", legacy_key, self.key)
            self.save(state)
            return state
        return None
