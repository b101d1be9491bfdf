"""Toolkit independent state for the before/after comparison view."""

from .slider import (
    DEFAULT_POSITION,
    CaptureScope,
    CaptureTarget,
    CompareSlider,
    ContainerBounds,
    SliderState,
    clamp_percent,
)

__all__ = [
    "DEFAULT_POSITION",
    "CaptureScope",
    "CaptureTarget",
    "CompareSlider",
    "ContainerBounds",
    "SliderState",
    "clamp_percent",
]
