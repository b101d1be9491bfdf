"""Core services for the SR Studio application."""
from .logging_config import LoggingConfigurator, LoggingOptions
from .settings_manager import DEFAULT_SETTINGS, SettingsManager
from .threading import ThreadController, ThreadTask
from .app_core import AppConfiguration, AppCore

__all__ = [
    "AppConfiguration",
    "AppCore",
    "DEFAULT_SETTINGS",
    "LoggingConfigurator",
    "LoggingOptions",
    "SettingsManager",
    "ThreadController",
    "ThreadTask",
]
