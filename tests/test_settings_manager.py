from __future__ import annotations

import json
from pathlib import Path

import pytest

from sr_studio.core.settings_manager import DEFAULT_SETTINGS, SettingsManager, _FallbackSettings


def _manager(*, seed_defaults: bool = False) -> SettingsManager:
    backend = _FallbackSettings("TestOrg", "TestApp")
    return SettingsManager("TestOrg", "TestApp", seed_defaults=seed_defaults, backend=backend)


def test_defaults_are_seeded_without_overwriting() -> None:
    backend = _FallbackSettings("TestOrg", "TestApp")
    backend.setValue("backend/mode", "local")

    manager = SettingsManager("TestOrg", "TestApp", backend=backend)

    assert manager.get("backend/mode") == "local"
    assert manager.get("pipeline/deadline_seconds") == DEFAULT_SETTINGS["pipeline/deadline_seconds"]
    assert set(DEFAULT_SETTINGS) <= set(manager.to_dict())


def test_typed_getters_coerce_stored_strings() -> None:
    manager = _manager()
    manager.set("pipeline/max_payload_bytes", "2048")
    manager.set("pipeline/deadline_seconds", "12.5")
    manager.set("local/upscale_factor", "not a number")

    assert manager.get_int("pipeline/max_payload_bytes") == 2048
    assert manager.get_float("pipeline/deadline_seconds") == 12.5
    assert manager.get_int("local/upscale_factor", 4) == 4
    assert manager.get_str("missing", "fallback") == "fallback"


def test_settings_json_roundtrip(tmp_path: Path) -> None:
    manager = _manager()
    manager.set("backend/url", "http://example.com/api/enhance")
    manager.set("local/upscale_factor", 2)

    export_path = tmp_path / "settings.json"
    manager.export_json(export_path)
    exported = json.loads(export_path.read_text(encoding="utf-8"))
    assert exported == {"backend/url": "http://example.com/api/enhance", "local/upscale_factor": 2}

    manager.clear()
    assert manager.get("backend/url") is None

    manager.import_json(export_path)
    assert manager.get("local/upscale_factor") == 2


def test_settings_from_dict_with_clear() -> None:
    manager = _manager()
    manager.set("keep", "value")

    manager.from_dict({"fresh": 42}, clear=True)

    assert manager.get("keep") is None
    assert manager.to_dict() == {"fresh": 42}


def test_import_json_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        _manager().import_json(path)
    with pytest.raises(FileNotFoundError):
        _manager().import_json(tmp_path / "missing.json")
