"""Categorized failures reported by :class:`EnhancementPipeline`.

Every category carries exactly one user-facing message template so the UI can
present ``error.user_message`` without inspecting the failure further.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    PAYLOAD_TOO_LARGE = "payload_too_large"
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network_failure"
    BACKEND_ERROR = "backend_error"
    INVALID_BACKEND_RESPONSE = "invalid_backend_response"


class EnhancementError(Exception):
    """Base class for all categorized enhancement failures."""

    category: ErrorCategory

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        raise NotImplementedError


class PayloadTooLarge(EnhancementError):
    category = ErrorCategory.PAYLOAD_TOO_LARGE

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(f"{size_bytes} bytes exceeds the {limit_bytes} byte limit")

    @property
    def user_message(self) -> str:
        limit_mb = self.limit_bytes // (1024 * 1024)
        return f"Image is too large. Please use an image smaller than {limit_mb}MB."


class Timeout(EnhancementError):
    category = ErrorCategory.TIMEOUT

    def __init__(self, deadline_seconds: float) -> None:
        self.deadline_seconds = deadline_seconds
        super().__init__(f"no backend response within {deadline_seconds:g}s")

    @property
    def user_message(self) -> str:
        return "Enhancement timed out. Please try with a smaller image."


class NetworkFailure(EnhancementError):
    category = ErrorCategory.NETWORK_FAILURE

    @property
    def user_message(self) -> str:
        return "Network error. Please check your connection and try again."


class BackendError(EnhancementError):
    """The backend was reached but reported a failure."""

    category = ErrorCategory.BACKEND_ERROR

    def __init__(self, server_message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.server_message = server_message
        self.status_code = status_code
        super().__init__(server_message)

    @property
    def user_message(self) -> str:
        if self.server_message:
            reason = self.server_message
        elif self.status_code is not None:
            reason = f"Server error: {self.status_code}"
        else:
            reason = "Server error"
        return f"Failed to enhance image: {reason}"


class InvalidBackendResponse(EnhancementError):
    category = ErrorCategory.INVALID_BACKEND_RESPONSE

    @property
    def user_message(self) -> str:
        return "Failed to enhance image: Invalid response from enhancement API"


class PipelineBusyError(RuntimeError):
    """Raised when :meth:`EnhancementPipeline.enhance` is called while busy."""

    def __init__(self, active_request_id: int) -> None:
        self.active_request_id = active_request_id
        super().__init__(f"Enhancement request {active_request_id} is still in flight")
