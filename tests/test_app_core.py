from __future__ import annotations

from pathlib import Path

import pytest

from sr_studio.core.app_core import BACKEND_URL_ENV, AppConfiguration, AppCore
from sr_studio.core.settings_manager import SettingsManager, _FallbackSettings
from sr_studio.processing import EnhancementPipeline, LocalBackend, RemoteBackend


def _settings() -> SettingsManager:
    return SettingsManager("TestOrg", "TestApp", backend=_FallbackSettings("TestOrg", "TestApp"))


def _config(tmp_path: Path, **overrides) -> AppConfiguration:
    return AppConfiguration(log_directory=tmp_path, enable_console_logging=False, **overrides)


@pytest.fixture
def core_factory():
    cores = []

    def _factory(config: AppConfiguration, settings: SettingsManager) -> AppCore:
        core = AppCore(config, settings=settings)
        cores.append(core)
        return core

    yield _factory
    for core in cores:
        core.shutdown()


def test_bootstrap_builds_remote_pipeline(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, core_factory) -> None:
    monkeypatch.delenv(BACKEND_URL_ENV, raising=False)
    core = core_factory(_config(tmp_path), _settings())

    core.bootstrap()

    assert isinstance(core.pipeline, EnhancementPipeline)
    assert isinstance(core.pipeline.backend, RemoteBackend)
    assert core.pipeline.backend.url == "http://localhost:3001/api/enhance"
    assert core.pipeline.deadline_seconds == 300.0
    assert core.pipeline.max_payload_bytes == 10 * 1024 * 1024
    assert core.logging_configurator is not None
    assert core.logging_configurator.log_path == tmp_path / "sr_studio.log"
    assert (tmp_path / "sr_studio.log").exists()


def test_stored_settings_select_local_backend(tmp_path: Path, core_factory) -> None:
    settings = _settings()
    settings.set("backend/mode", "local")
    settings.set("local/upscale_factor", "2")
    settings.set("pipeline/deadline_seconds", "30")
    core = core_factory(_config(tmp_path), settings)

    core.bootstrap()

    assert isinstance(core.pipeline.backend, LocalBackend)
    assert core.pipeline.backend.engine.scale == 2
    assert core.pipeline.deadline_seconds == 30.0


def test_invalid_stored_mode_keeps_default(tmp_path: Path, core_factory) -> None:
    settings = _settings()
    settings.set("backend/mode", "quantum")
    core = core_factory(_config(tmp_path), settings)

    core.bootstrap()

    assert core.config.backend_mode == "remote"


def test_environment_url_wins_over_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, core_factory) -> None:
    monkeypatch.setenv(BACKEND_URL_ENV, "http://gpu-box:9000/api/enhance")
    settings = _settings()
    settings.set("backend/url", "http://stored:3001/api/enhance")
    core = core_factory(_config(tmp_path), settings)

    core.bootstrap()

    assert core.pipeline.backend.url == "http://gpu-box:9000/api/enhance"


def test_stored_settings_can_be_ignored(tmp_path: Path, core_factory) -> None:
    settings = _settings()
    settings.set("backend/mode", "local")
    core = core_factory(_config(tmp_path, apply_stored_settings=False), settings)

    core.bootstrap()

    assert isinstance(core.pipeline.backend, RemoteBackend)


def test_invalid_backend_mode_rejected() -> None:
    with pytest.raises(ValueError):
        AppConfiguration(backend_mode="carrier-pigeon")
