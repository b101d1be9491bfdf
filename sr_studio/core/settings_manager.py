"""Settings manager built on top of QSettings with JSON import/export support."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # pragma: no cover - import handling logic
    from PyQt5.QtCore import QSettings  # type: ignore
except Exception:  # pragma: no cover
    QSettings = None  # type: ignore


DEFAULT_SETTINGS: Dict[str, Any] = {
    # Backend ----------------------------------------------------------------------
    "backend/mode": "remote",
    "backend/url": "http://localhost:3001/api/enhance",
    # Pipeline ---------------------------------------------------------------------
    "pipeline/max_payload_bytes": 10 * 1024 * 1024,
    "pipeline/deadline_seconds": 300.0,
    "pipeline/completion_grace_seconds": 0.5,
    # Local engine -----------------------------------------------------------------
    "local/upscale_factor": 4,
}


class _FallbackSettings:
    """A tiny in-memory substitute for QSettings when Qt is unavailable."""

    def __init__(self, organization: str, application: str) -> None:
        self._organization = organization
        self._application = application
        self._store: Dict[str, Any] = {}

    def setValue(self, key: str, value: Any) -> None:
        self._store[key] = value

    def value(self, key: str, default: Any = None) -> Any:
        return self._store.get(key, default)

    def remove(self, key: str) -> None:
        self._store.pop(key, None)

    def allKeys(self) -> Any:
        return list(self._store.keys())

    def contains(self, key: str) -> bool:
        return key in self._store

    def clear(self) -> None:
        self._store.clear()

    def sync(self) -> None:
        return None


class SettingsManager:
    """High level interface around QSettings supporting typed reads and JSON."""

    def __init__(
        self,
        organization: str,
        application: str,
        *,
        seed_defaults: bool = True,
        backend: Optional[Any] = None,
    ) -> None:
        if backend is None:
            factory = QSettings if QSettings is not None else _FallbackSettings
            backend = factory(organization, application)
        self._settings = backend
        self.organization = organization
        self.application = application
        if seed_defaults:
            self.seed_defaults()

    def seed_defaults(self) -> None:
        """Populate missing keys from :data:`DEFAULT_SETTINGS`."""

        for key, value in DEFAULT_SETTINGS.items():
            if not self._settings.contains(key):
                self._settings.setValue(key, value)
        self._settings.sync()

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._settings.value(key, default)

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key, None)
        if value is None:
            return default
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, None)
        if value is None or value == "":
            return default
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key, None)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def set(self, key: str, value: Any) -> None:
        self._settings.setValue(key, value)
        self._settings.sync()

    def remove(self, key: str) -> None:
        self._settings.remove(key)
        self._settings.sync()

    def clear(self) -> None:
        self._settings.clear()
        self._settings.sync()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key in self._all_keys():
            result[key] = self._settings.value(key)
        return result

    def from_dict(self, values: Dict[str, Any], *, clear: bool = False) -> None:
        if clear:
            self.clear()
        for key, value in values.items():
            self._settings.setValue(key, value)
        self._settings.sync()

    @property
    def backend(self) -> Any:
        """Return the underlying :class:`QSettings` compatible object."""

        return self._settings

    def export_json(self, path: Path) -> None:
        path = Path(path)
        data = self.to_dict()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)

    def import_json(self, path: Path, *, clear: bool = False) -> None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("Settings JSON must describe an object")
        self.from_dict(data, clear=clear)

    def _all_keys(self) -> List[str]:
        if hasattr(self._settings, "allKeys"):
            return list(self._settings.allKeys())
        raise AttributeError("Settings backend does not support allKeys")
