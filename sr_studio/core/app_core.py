"""Application core bootstrap handling logging, settings, threading and the pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from .logging_config import LoggingConfigurator, LoggingOptions
from .settings_manager import SettingsManager
from .threading import ThreadController


BACKEND_URL_ENV = "SR_STUDIO_BACKEND_URL"
BACKEND_MODES = ("remote", "local")


def _default_backend_url() -> str:
    return os.environ.get(BACKEND_URL_ENV, "http://localhost:3001/api/enhance")


@dataclass
class AppConfiguration:
    """Configuration for the application bootstrap."""

    organization: str = "SRStudio"
    application: str = "SRStudio"
    log_directory: Optional[Path] = None
    developer_diagnostics: bool = False
    enable_console_logging: bool = True
    max_log_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 5
    backend_mode: str = "remote"
    backend_url: str = field(default_factory=_default_backend_url)
    max_payload_bytes: int = 10 * 1024 * 1024
    deadline_seconds: float = 300.0
    completion_grace_seconds: float = 0.5
    upscale_factor: int = 4
    apply_stored_settings: bool = True

    def __post_init__(self) -> None:
        if self.backend_mode not in BACKEND_MODES:
            raise ValueError(f"backend_mode must be one of {BACKEND_MODES}, got {self.backend_mode!r}")


class AppCore:
    """Coordinates start-up of the primary services used by the application."""

    def __init__(
        self,
        config: Optional[AppConfiguration] = None,
        *,
        settings: Optional[SettingsManager] = None,
    ) -> None:
        self.config = config or AppConfiguration()
        self.logger = logging.getLogger(__name__)
        self.logging_configurator: Optional[LoggingConfigurator] = None
        self.settings: Optional[SettingsManager] = settings
        self.thread_controller: Optional[ThreadController] = None
        self.pipeline = None

    def bootstrap(self) -> None:
        """Initialise all core systems."""
        self._init_logging()
        self.logger.info("Bootstrapping application core", extra={"component": "AppCore"})
        self._init_settings()
        if self.config.apply_stored_settings:
            self._apply_settings()
        self._init_threading()
        self.pipeline = self.build_pipeline()

    def shutdown(self) -> None:
        """Shutdown routine for releasing resources gracefully."""
        if self.pipeline is not None:
            self.pipeline.shutdown()
        if self.thread_controller is not None:
            self.thread_controller.shutdown(wait=False)
        self.logger.info("Application core shutdown complete", extra={"component": "AppCore"})

    def build_backend(self):
        """Create the inference backend selected by the configuration."""

        from sr_studio.processing.backends import BicubicUpscaler, LocalBackend, RemoteBackend

        if self.config.backend_mode == "local":
            self.logger.info(
                "Using local inference engine",
                extra={"component": "AppCore", "scale": self.config.upscale_factor},
            )
            return LocalBackend(BicubicUpscaler(self.config.upscale_factor))
        self.logger.info(
            "Using remote inference backend",
            extra={"component": "AppCore", "endpoint": self.config.backend_url},
        )
        return RemoteBackend(self.config.backend_url, timeout=self.config.deadline_seconds)

    def build_pipeline(self):
        """Create an :class:`EnhancementPipeline` wired to the configured backend."""

        from sr_studio.processing.pipeline import EnhancementPipeline

        if self.thread_controller is None:
            self._init_threading()
        return EnhancementPipeline(
            self.build_backend(),
            thread_controller=self.thread_controller,
            max_payload_bytes=self.config.max_payload_bytes,
            deadline_seconds=self.config.deadline_seconds,
            completion_grace_seconds=self.config.completion_grace_seconds,
            logger=logging.getLogger("sr_studio.processing.pipeline"),
        )

    def _init_logging(self) -> None:
        options = LoggingOptions(
            log_directory=self.config.log_directory,
            enable_console=self.config.enable_console_logging,
            developer_diagnostics=self.config.developer_diagnostics,
            max_bytes=self.config.max_log_bytes,
            backup_count=self.config.log_backup_count,
        )
        self.logging_configurator = LoggingConfigurator(options)
        self.logging_configurator.configure()
        self.logger.debug("Logging initialised", extra={"component": "AppCore"})

    def _init_settings(self) -> None:
        if self.settings is None:
            self.settings = SettingsManager(self.config.organization, self.config.application)
        self.logger.debug("Settings manager initialised", extra={"component": "AppCore"})

    def _apply_settings(self) -> None:
        """Overlay stored settings onto the configuration defaults."""

        settings = self.settings
        if settings is None:
            return
        config = self.config
        mode = settings.get_str("backend/mode", config.backend_mode).strip().lower()
        if mode not in BACKEND_MODES:
            self.logger.warning(
                "Invalid backend mode setting encountered; keeping default",
                extra={"component": "AppCore", "value": mode},
            )
            mode = config.backend_mode
        url = config.backend_url
        if BACKEND_URL_ENV not in os.environ:
            url = settings.get_str("backend/url", config.backend_url) or config.backend_url
        self.config = replace(
            config,
            backend_mode=mode,
            backend_url=url,
            max_payload_bytes=settings.get_int("pipeline/max_payload_bytes", config.max_payload_bytes),
            deadline_seconds=settings.get_float("pipeline/deadline_seconds", config.deadline_seconds),
            completion_grace_seconds=settings.get_float(
                "pipeline/completion_grace_seconds", config.completion_grace_seconds
            ),
            upscale_factor=settings.get_int("local/upscale_factor", config.upscale_factor),
        )
        self.logger.debug(
            "Stored settings applied",
            extra={"component": "AppCore", "backend_mode": mode},
        )

    def _init_threading(self) -> None:
        self.thread_controller = ThreadController()
        self.logger.debug("Thread controller initialised", extra={"component": "AppCore"})
