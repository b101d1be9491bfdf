"""Enhancement pipeline, backends and their value types."""

from .models import (
    COMPLETION_GRACE_SECONDS,
    DEFAULT_DEADLINE_SECONDS,
    IDLE_PROGRESS,
    MAX_PAYLOAD_BYTES,
    EnhancementRequest,
    EnhancementResult,
    ProgressState,
    Stage,
)
from .errors import (
    BackendError,
    EnhancementError,
    ErrorCategory,
    InvalidBackendResponse,
    NetworkFailure,
    PayloadTooLarge,
    PipelineBusyError,
    Timeout,
)
from .progress import ProgressChannel, ProgressTracker
from .backends import (
    BackendResponse,
    BackendUnavailable,
    BicubicUpscaler,
    InferenceBackend,
    LocalBackend,
    RemoteBackend,
)
from .pipeline import EnhancementPipeline

__all__ = [
    "COMPLETION_GRACE_SECONDS",
    "DEFAULT_DEADLINE_SECONDS",
    "IDLE_PROGRESS",
    "MAX_PAYLOAD_BYTES",
    "BackendError",
    "BackendResponse",
    "BackendUnavailable",
    "BicubicUpscaler",
    "EnhancementError",
    "EnhancementPipeline",
    "EnhancementRequest",
    "EnhancementResult",
    "ErrorCategory",
    "InferenceBackend",
    "InvalidBackendResponse",
    "LocalBackend",
    "NetworkFailure",
    "PayloadTooLarge",
    "PipelineBusyError",
    "ProgressChannel",
    "ProgressState",
    "ProgressTracker",
    "RemoteBackend",
    "Stage",
    "Timeout",
]
