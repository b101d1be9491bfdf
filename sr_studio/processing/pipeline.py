"""Asynchronous orchestration of one image enhancement request at a time.

:class:`EnhancementPipeline` drives a request through four stages::

    preprocessing (0-30%) -> processing (30-80%) -> postprocessing (80-95%) -> complete (100%)

Work runs on a :class:`~sr_studio.core.threading.ThreadController` worker and
the caller receives a :class:`concurrent.futures.Future` that resolves with an
:class:`EnhancementResult` or fails with an
:class:`~sr_studio.processing.errors.EnhancementError`.

Each request is identified by a ``request_id``.  A per-request context holds
the terminal outcome; the first outcome recorded (success, failure, timeout or
caller cancellation) wins and every later signal from the same call, be it a
progress update or a late backend response, is discarded.  The deadline
bounds the processing stage: a timer owned by the pipeline is armed just
before the backend call and disarmed when it returns, independent of any
timeout the backend applies itself.

Only one request may be in flight per pipeline.  :meth:`enhance` raises
:class:`PipelineBusyError` while a request is active; callers wanting to
replace the active request call :meth:`cancel` first.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any, Callable, Optional

from sr_studio.core.threading import ThreadController, ThreadTask
from sr_studio.data.image_io import parse_data_url

from .backends import BackendResponse, BackendUnavailable, InferenceBackend
from .errors import (
    BackendError,
    EnhancementError,
    InvalidBackendResponse,
    NetworkFailure,
    PayloadTooLarge,
    PipelineBusyError,
    Timeout,
)
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
from .progress import ProgressChannel, ProgressListener, ProgressTracker


_CANCELLED = "cancelled"


class _RequestContext:
    """Mutable bookkeeping for one in-flight request."""

    def __init__(self, request_id: int, request: EnhancementRequest, started_at: float) -> None:
        self.request_id = request_id
        self.request = request
        self.started_at = started_at
        self.lock = threading.RLock()
        self.cancel_event = threading.Event()
        self.future: concurrent.futures.Future = concurrent.futures.Future()
        self.outcome: Optional[str] = None
        self.tracker: Optional[ProgressTracker] = None
        self.worker: Optional[concurrent.futures.Future] = None
        self.timer: Optional[threading.Timer] = None


class EnhancementPipeline:
    """Run enhancement requests against an :class:`InferenceBackend`."""

    def __init__(
        self,
        backend: InferenceBackend,
        *,
        thread_controller: Optional[ThreadController] = None,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        completion_grace_seconds: float = COMPLETION_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        self.backend = backend
        self.max_payload_bytes = int(max_payload_bytes)
        self.deadline_seconds = float(deadline_seconds)
        self.completion_grace_seconds = max(0.0, float(completion_grace_seconds))
        self._owns_controller = thread_controller is None
        self._controller = thread_controller or ThreadController()
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._channel = ProgressChannel(logger=self._logger)
        self._lock = threading.Lock()
        self._active: Optional[_RequestContext] = None
        self._next_request_id = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Receive :class:`ProgressState` notifications for every request."""

        return self._channel.subscribe(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        self._channel.unsubscribe(listener)

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    @property
    def active_request_id(self) -> Optional[int]:
        ctx = self._active
        return ctx.request_id if ctx is not None else None

    @property
    def progress(self) -> ProgressState:
        """Progress of the active request, or idle/0 once it has settled."""

        ctx = self._active
        if ctx is None or ctx.tracker is None:
            return IDLE_PROGRESS
        return ctx.tracker.state

    def enhance(
        self, request: EnhancementRequest, observer: Optional[ProgressListener] = None
    ) -> concurrent.futures.Future:
        """Start enhancing ``request`` and return a future for the outcome.

        ``observer`` receives this request's progress in addition to the
        pipeline-wide subscribers.  The returned future exposes the request
        identity as ``future.request_id``.
        """

        with self._lock:
            if self._active is not None:
                raise PipelineBusyError(self._active.request_id)
            self._next_request_id += 1
            ctx = _RequestContext(self._next_request_id, request, self._clock())
            ctx.tracker = ProgressTracker(
                ctx.request_id,
                self._channel,
                observer=observer,
                is_live=lambda: self._is_live(ctx),
                lock=ctx.lock,
            )
            self._active = ctx

        future = ctx.future
        setattr(future, "request_id", ctx.request_id)
        future.add_done_callback(lambda done, ctx=ctx: self._on_future_done(ctx, done))
        self._logger.info(
            "Enhancement requested",
            extra={
                "component": "EnhancementPipeline",
                "request_id": ctx.request_id,
                "size_bytes": request.size_bytes,
                "mime_type": request.mime_type,
                "backend": self.backend.name,
            },
        )
        ctx.tracker.start()

        if request.size_bytes > self.max_payload_bytes:
            self._fail(ctx, PayloadTooLarge(request.size_bytes, self.max_payload_bytes))
            return future

        try:
            with ctx.lock:
                ctx.worker = self._controller.submit(
                    self._run, ctx, cancellation_event=ctx.cancel_event
                )
        except Exception:
            self._logger.exception(
                "Could not schedule enhancement",
                extra={"component": "EnhancementPipeline", "request_id": ctx.request_id},
            )
            self._record_outcome(ctx, _CANCELLED)
            self._release(ctx)
            ctx.future.cancel()
            raise
        return future

    def cancel(self) -> bool:
        """Abort the in-flight request; return ``False`` when nothing was aborted."""

        ctx = self._active
        if ctx is None:
            return False
        if not self._record_outcome(ctx, _CANCELLED):
            # Already settled; cut a pending completion hold short.
            ctx.cancel_event.set()
            return False
        self._logger.info(
            "Enhancement cancelled",
            extra={"component": "EnhancementPipeline", "request_id": ctx.request_id},
        )
        self._abort_worker(ctx)
        self._release(ctx)
        ctx.future.cancel()
        return True

    def shutdown(self) -> None:
        """Cancel any active request and stop the owned worker pool."""

        self.cancel()
        if self._owns_controller:
            self._controller.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run(self, ctx: _RequestContext) -> None:
        task = ThreadTask.current()
        try:
            result = self._execute(ctx, task)
        except concurrent.futures.CancelledError:
            self._logger.debug(
                "Worker stopped after cancellation",
                extra={"component": "EnhancementPipeline", "request_id": ctx.request_id},
            )
            return
        except EnhancementError as exc:
            self._fail(ctx, exc)
            return
        except Exception as exc:
            self._logger.exception(
                "Backend raised unexpectedly",
                extra={"component": "EnhancementPipeline", "request_id": ctx.request_id},
            )
            self._fail(ctx, BackendError(str(exc) or type(exc).__name__))
            return
        self._complete(ctx, result)

    def _execute(self, ctx: _RequestContext, task: Optional[ThreadTask]) -> EnhancementResult:
        tracker = ctx.tracker
        assert tracker is not None
        request = ctx.request

        tracker.advance(Stage.PREPROCESSING, 10)
        actual_size = len(request.source_bytes)
        if max(actual_size, request.size_bytes) > self.max_payload_bytes:
            raise PayloadTooLarge(max(actual_size, request.size_bytes), self.max_payload_bytes)
        tracker.advance(Stage.PREPROCESSING, 20)
        prepared = self.backend.prepare(request)
        self._raise_if_cancelled(task, ctx)

        tracker.advance(Stage.PROCESSING, 30)
        tracker.advance(Stage.PROCESSING, 40)
        self._arm_deadline(ctx)
        try:
            response = self.backend.invoke(prepared, task)
        except BackendUnavailable as exc:
            self._raise_if_cancelled(task, ctx)
            raise NetworkFailure(str(exc)) from exc
        finally:
            self._disarm_deadline(ctx)
        self._raise_if_cancelled(task, ctx)
        tracker.advance(Stage.PROCESSING, 60)

        tracker.advance(Stage.POSTPROCESSING, 80)
        image, mime_type, size = self._interpret(response)
        tracker.advance(Stage.POSTPROCESSING, 95)

        elapsed = max(0, int(round((self._clock() - ctx.started_at) * 1000)))
        return EnhancementResult(
            enhanced_image=image,
            elapsed_millis=elapsed,
            enhanced_size_bytes=size,
            mime_type=mime_type,
        )

    def _arm_deadline(self, ctx: _RequestContext) -> None:
        with ctx.lock:
            if ctx.outcome is not None:
                return
            ctx.timer = threading.Timer(self.deadline_seconds, self._on_deadline, args=(ctx,))
            ctx.timer.daemon = True
            ctx.timer.start()

    def _disarm_deadline(self, ctx: _RequestContext) -> None:
        with ctx.lock:
            if ctx.timer is not None:
                ctx.timer.cancel()

    @staticmethod
    def _raise_if_cancelled(task: Optional[ThreadTask], ctx: _RequestContext) -> None:
        if ctx.cancel_event.is_set() or (task is not None and task.is_cancelled()):
            raise concurrent.futures.CancelledError()

    @staticmethod
    def _interpret(response: BackendResponse) -> tuple[bytes, Optional[str], Optional[int]]:
        if not response.ok:
            raise BackendError(response.error, response.status_code)

        body = response.body
        if not isinstance(body, Mapping) or not body.get("success"):
            raise InvalidBackendResponse("response lacks a success flag")
        payload: Any = body.get("enhancedImage")
        if not payload:
            raise InvalidBackendResponse("response lacks an enhanced image")

        mime_type: Optional[str] = None
        if isinstance(payload, (bytes, bytearray)):
            image = bytes(payload)
        elif isinstance(payload, str):
            try:
                image, mime_type = parse_data_url(payload)
            except ValueError as exc:
                raise InvalidBackendResponse(str(exc)) from exc
        else:
            raise InvalidBackendResponse(f"unexpected image payload type {type(payload).__name__}")

        size = body.get("enhancedSize")
        if isinstance(size, bool) or not isinstance(size, (int, float)) or size < 0:
            size = None
        return image, mime_type, int(size) if size is not None else None

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------
    def _is_live(self, ctx: _RequestContext) -> bool:
        return ctx.outcome is None and self._active is ctx

    def _record_outcome(self, ctx: _RequestContext, outcome: str) -> bool:
        with ctx.lock:
            if ctx.outcome is not None:
                self._logger.debug(
                    "Discarding signal after terminal outcome",
                    extra={
                        "component": "EnhancementPipeline",
                        "request_id": ctx.request_id,
                        "outcome": ctx.outcome,
                        "ignored": outcome,
                    },
                )
                return False
            ctx.outcome = outcome
            if ctx.timer is not None:
                ctx.timer.cancel()
        return True

    def _complete(self, ctx: _RequestContext, result: EnhancementResult) -> None:
        assert ctx.tracker is not None
        with ctx.lock:
            if not self._is_live(ctx):
                self._record_outcome(ctx, Stage.COMPLETE.value)
                return
            ctx.tracker.advance(Stage.COMPLETE, 100)
            self._record_outcome(ctx, Stage.COMPLETE.value)
        self._logger.info(
            "Enhancement complete",
            extra={
                "component": "EnhancementPipeline",
                "request_id": ctx.request_id,
                "elapsed_ms": result.elapsed_millis,
                "enhanced_size": result.enhanced_size_bytes,
            },
        )
        if self.completion_grace_seconds:
            ctx.cancel_event.wait(self.completion_grace_seconds)
        self._release(ctx)
        self._settle_future(ctx, result=result)

    def _fail(self, ctx: _RequestContext, error: EnhancementError) -> bool:
        if not self._record_outcome(ctx, error.category.value):
            return False
        self._logger.warning(
            "Enhancement failed",
            extra={
                "component": "EnhancementPipeline",
                "request_id": ctx.request_id,
                "category": error.category.value,
                "detail": error.detail,
            },
        )
        self._release(ctx)
        self._settle_future(ctx, error=error)
        return True

    def _on_deadline(self, ctx: _RequestContext) -> None:
        error = Timeout(self.deadline_seconds)
        if not self._record_outcome(ctx, error.category.value):
            return
        self._logger.warning(
            "Enhancement deadline elapsed",
            extra={
                "component": "EnhancementPipeline",
                "request_id": ctx.request_id,
                "deadline_seconds": self.deadline_seconds,
            },
        )
        self._abort_worker(ctx)
        self._release(ctx)
        self._settle_future(ctx, error=error)

    def _on_future_done(self, ctx: _RequestContext, future: concurrent.futures.Future) -> None:
        if not future.cancelled():
            return
        if self._record_outcome(ctx, _CANCELLED):
            self._abort_worker(ctx)
            self._release(ctx)

    def _abort_worker(self, ctx: _RequestContext) -> None:
        ctx.cancel_event.set()
        worker = ctx.worker
        if worker is None:
            return
        task = getattr(worker, "task", None)
        if isinstance(task, ThreadTask):
            task.cancel()
        worker.cancel()

    def _release(self, ctx: _RequestContext) -> None:
        with self._lock:
            if self._active is ctx:
                self._active = None

    @staticmethod
    def _settle_future(
        ctx: _RequestContext,
        *,
        result: Optional[EnhancementResult] = None,
        error: Optional[EnhancementError] = None,
    ) -> None:
        future = ctx.future
        try:
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)
        except concurrent.futures.InvalidStateError:
            pass
