"""Qt user interface for SR Studio."""

from .enhancement_controller import STAGE_DESCRIPTIONS, EnhancementController
from .compare_view import ApplicationCaptureScope, CompareView
from .main_window import MainWindow

__all__ = [
    "STAGE_DESCRIPTIONS",
    "ApplicationCaptureScope",
    "CompareView",
    "EnhancementController",
    "MainWindow",
]
