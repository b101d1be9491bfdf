"""Value types shared by the enhancement pipeline and its observers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


MAX_PAYLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_DEADLINE_SECONDS = 300.0
COMPLETION_GRACE_SECONDS = 0.5


class Stage(Enum):
    """Named phases of one enhancement request."""

    IDLE = "idle"
    PREPROCESSING = "preprocessing"
    PROCESSING = "processing"
    POSTPROCESSING = "postprocessing"
    COMPLETE = "complete"

    @property
    def percent_range(self) -> Tuple[int, int]:
        return _STAGE_RANGES[self]

    @property
    def is_terminal(self) -> bool:
        return self is Stage.COMPLETE


_STAGE_RANGES = {
    Stage.IDLE: (0, 0),
    Stage.PREPROCESSING: (0, 30),
    Stage.PROCESSING: (30, 80),
    Stage.POSTPROCESSING: (80, 95),
    Stage.COMPLETE: (95, 100),
}


@dataclass(frozen=True)
class ProgressState:
    """Advisory progress snapshot for a single request."""

    stage: Stage = Stage.IDLE
    percent: int = 0
    request_id: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.percent <= 100:
            raise ValueError(f"Progress percent must be within [0, 100], got {self.percent}")


IDLE_PROGRESS = ProgressState()


@dataclass(frozen=True)
class EnhancementRequest:
    """Source image submitted for enhancement."""

    source_bytes: bytes = field(repr=False)
    size_bytes: int
    mime_type: str
    filename: Optional[str] = None

    def __post_init__(self) -> None:
        if self.size_bytes < 0:
            raise ValueError("EnhancementRequest.size_bytes must not be negative")

    @classmethod
    def from_bytes(
        cls, data: bytes, mime_type: str, *, filename: Optional[str] = None
    ) -> "EnhancementRequest":
        """Create a request whose declared size matches ``data``."""

        payload = bytes(data)
        return cls(source_bytes=payload, size_bytes=len(payload), mime_type=mime_type, filename=filename)


@dataclass(frozen=True)
class EnhancementResult:
    """Enhanced image delivered once a request reaches :attr:`Stage.COMPLETE`."""

    enhanced_image: bytes = field(repr=False)
    elapsed_millis: int
    enhanced_size_bytes: Optional[int] = None
    mime_type: Optional[str] = None

    def __post_init__(self) -> None:
        if self.elapsed_millis < 0:
            raise ValueError("EnhancementResult.elapsed_millis must not be negative")
