"""Threading helpers for background work with cooperative cancellation.

The :class:`ThreadController` runs callables on a ``ThreadPoolExecutor``.
Each submission is wrapped in a :class:`ThreadTask` which owns a
cancellation event and a list of *cancel hooks*.  Worker code can obtain the
running task through :meth:`ThreadTask.current` (or receive it explicitly),
call :meth:`ThreadTask.raise_if_cancelled` between steps and register hooks
with :meth:`ThreadTask.add_cancel_callback` to release resources such as open
network connections the moment cancellation is requested from another thread.
"""
from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Optional


Callback = Callable[[concurrent.futures.Future], None]


class ThreadTask:
    """Wrap a callable to provide cooperative cancellation and cancel hooks."""

    _task_local = threading.local()

    def __init__(
        self,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        *,
        cancellation_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._fn = fn
        self._args = args
        self._kwargs = kwargs
        self._logger = logger or logging.getLogger(__name__)
        self._cancel_event = cancellation_event or threading.Event()
        self._hooks_lock = threading.Lock()
        self._cancel_hooks: List[Callable[[], None]] = []
        self._future: Optional[concurrent.futures.Future] = None

    # ------------------------------------------------------------------
    # Cooperative API available to worker functions
    def raise_if_cancelled(self) -> None:
        """Raise :class:`CancelledError` if cancellation has been requested."""

        if self.is_cancelled():
            raise concurrent.futures.CancelledError()

    def is_cancelled(self) -> bool:
        """Return ``True`` when cancellation has been requested."""

        if self._future is not None and self._future.cancelled():
            self._cancel_event.set()
        return self._cancel_event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep for ``timeout`` seconds; return ``True`` if cancelled meanwhile."""

        return self._cancel_event.wait(timeout)

    def cancellation_event(self) -> threading.Event:
        """Expose the underlying cancellation event for cooperative checks."""

        return self._cancel_event

    def add_cancel_callback(self, callback: Callable[[], None]) -> None:
        """Register ``callback`` to run when the task is cancelled.

        Callbacks registered after cancellation run immediately on the calling
        thread.
        """

        with self._hooks_lock:
            if not self._cancel_event.is_set():
                self._cancel_hooks.append(callback)
                return
        self._run_hook(callback)

    def remove_cancel_callback(self, callback: Callable[[], None]) -> None:
        with self._hooks_lock:
            if callback in self._cancel_hooks:
                self._cancel_hooks.remove(callback)

    @classmethod
    def current(cls) -> Optional["ThreadTask"]:
        """Return the currently executing task for the calling thread, if any."""

        return getattr(cls._task_local, "task", None)

    # ------------------------------------------------------------------
    # Controller facing API
    def __call__(self) -> Any:
        type(self)._task_local.task = self
        try:
            self.raise_if_cancelled()
            return self._fn(*self._args, **self._kwargs)
        finally:
            type(self)._task_local.task = None

    def bind_future(self, future: concurrent.futures.Future) -> None:
        """Associate the created future with this task for downstream access."""

        self._future = future

    def cancel(self) -> None:
        """Signal cancellation and run the registered cancel hooks once."""

        with self._hooks_lock:
            already_cancelled = self._cancel_event.is_set()
            self._cancel_event.set()
            hooks = list(self._cancel_hooks)
            self._cancel_hooks.clear()
        if already_cancelled and not hooks:
            return
        for hook in hooks:
            self._run_hook(hook)

    def _run_hook(self, hook: Callable[[], None]) -> None:
        try:
            hook()
        except Exception:
            self._logger.exception("Cancel hook raised", extra={"component": "ThreadTask"})


class ThreadController:
    """Coordinates threaded execution of background tasks."""

    def __init__(self, max_workers: Optional[int] = None) -> None:
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sr-studio"
        )
        self._pending: Deque[concurrent.futures.Future] = deque()
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        callback: Optional[Callback] = None,
        cancellation_event: Optional[threading.Event] = None,
        **kwargs: Any,
    ) -> concurrent.futures.Future:
        """Submit a callable to execute in the background.

        The returned future exposes the wrapping :class:`ThreadTask` through
        its ``task`` attribute so callers can request cancellation.
        """

        task = ThreadTask(
            fn,
            args,
            kwargs,
            cancellation_event=cancellation_event,
            logger=self._logger,
        )
        future = self._executor.submit(task)
        task.bind_future(future)
        setattr(future, "task", task)
        with self._lock:
            self._pending.append(future)
        if callback is not None:
            future.add_done_callback(callback)
        future.add_done_callback(self._cleanup_future)
        self._logger.debug("Task submitted", extra={"component": "ThreadController", "pending": len(self._pending)})
        return future

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def cancel_all(self) -> None:
        """Attempt to cancel all pending tasks."""
        with self._lock:
            futures = list(self._pending)
            self._pending.clear()
        for future in futures:
            task = getattr(future, "task", None)
            if isinstance(task, ThreadTask):
                task.cancel()
            future.cancel()
        self._logger.info("All background tasks cancelled", extra={"component": "ThreadController"})

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the executor and cancel pending tasks."""
        self.cancel_all()
        self._executor.shutdown(wait=wait)
        self._logger.info("Thread controller shutdown", extra={"component": "ThreadController"})

    def _cleanup_future(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            if future in self._pending:
                self._pending.remove(future)
        self._logger.debug("Task finished", extra={"component": "ThreadController"})
