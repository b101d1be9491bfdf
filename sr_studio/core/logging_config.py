"""Centralized logging configuration for SR Studio.

Records from the enhancement pipeline carry a ``request_id`` extra so the log
lines of one request can be followed across the worker and GUI threads::

    2024-05-01 12:00:00,000 | INFO | EnhancementPipeline | req=3 | Enhancement complete
"""
from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_LOG_FILENAME = "sr_studio.log"
DEFAULT_LOG_DIRNAME = "logs"

_NO_REQUEST = "-"
_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(component)s | req=%(request_id)s | %(message)s"
_VERBOSE_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(filename)s:%(lineno)d | req=%(request_id)s | %(message)s"
)


class _RequestAwareFormatter(logging.Formatter):
    """Fill in ``component`` and ``request_id`` for records that lack them."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "component"):
            record.component = record.name
        if getattr(record, "request_id", None) is None:
            record.request_id = _NO_REQUEST
        return super().format(record)


@dataclass
class LoggingOptions:
    """Runtime options for configuring the logging subsystem."""

    log_directory: Optional[os.PathLike] = None
    level: int = logging.INFO
    enable_console: bool = True
    developer_diagnostics: bool = False
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5


class LoggingConfigurator:
    """Configures application-wide logging with a rotating log file."""

    def __init__(self, options: Optional[LoggingOptions] = None) -> None:
        self.options = options or LoggingOptions()
        self.logger = logging.getLogger()
        self.log_path: Optional[Path] = None

    def configure(self) -> Path:
        """Initialise logging handlers and return the active log file path."""
        level = logging.DEBUG if self.options.developer_diagnostics else self.options.level
        self.logger.setLevel(level)
        self._clear_existing_handlers()

        log_path = self._determine_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=self.options.max_bytes,
            backupCount=self.options.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(self._build_formatter(verbose=False))
        file_handler.setLevel(level)
        self.logger.addHandler(file_handler)

        if self.options.enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(self._build_formatter(verbose=self.options.developer_diagnostics))
            console_handler.setLevel(level)
            self.logger.addHandler(console_handler)

        self.log_path = log_path
        self.logger.debug("Logging configured", extra={"component": "LoggingConfigurator"})
        return log_path

    def _determine_log_path(self) -> Path:
        base_dir = (
            Path(self.options.log_directory)
            if self.options.log_directory is not None
            else Path.home() / DEFAULT_LOG_DIRNAME
        )
        return base_dir / DEFAULT_LOG_FILENAME

    def _clear_existing_handlers(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    @staticmethod
    def _build_formatter(verbose: bool) -> logging.Formatter:
        """Build the record formatter; verbose output adds source locations."""

        return _RequestAwareFormatter(_VERBOSE_FORMAT if verbose else _FILE_FORMAT)
