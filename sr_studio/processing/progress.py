"""Typed progress notification channel for enhancement requests."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .models import IDLE_PROGRESS, ProgressState, Stage


LOGGER = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressState], None]


class ProgressChannel:
    """Fan out :class:`ProgressState` notifications to subscribed listeners.

    Listeners are invoked synchronously in subscription order on the thread
    that publishes.  A listener raising an exception is logged and does not
    prevent delivery to the remaining listeners.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._listeners: List[ProgressListener] = []
        self._lock = threading.Lock()
        self._logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unsubscribes it."""

        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: ProgressListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, state: ProgressState, extra: Optional[ProgressListener] = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if extra is not None:
            listeners.append(extra)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                self._logger.exception(
                    "Progress listener raised",
                    extra={"component": "ProgressChannel", "request_id": state.request_id},
                )


class ProgressTracker:
    """Per-request progress bookkeeping that never lets the percent regress.

    ``advance`` publishes only while ``is_live`` returns ``True``; once the
    owning request has a terminal outcome every further update is dropped.
    The pipeline shares ``lock`` with its settlement logic so a terminal
    outcome can never interleave with a publication.
    """

    def __init__(
        self,
        request_id: int,
        channel: ProgressChannel,
        *,
        observer: Optional[ProgressListener] = None,
        is_live: Callable[[], bool] = lambda: True,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.request_id = request_id
        self._channel = channel
        self._observer = observer
        self._is_live = is_live
        self._lock = lock or threading.RLock()
        self._state = ProgressState(Stage.IDLE, 0, request_id)

    @property
    def state(self) -> ProgressState:
        return self._state

    def start(self) -> None:
        """Publish the initial idle/0 state for the request."""

        self._channel.publish(self._state, self._observer)

    def advance(self, stage: Stage, percent: int, *, force: bool = False) -> bool:
        """Move to ``stage`` at ``percent``; return ``True`` when published."""

        with self._lock:
            if not force and not self._is_live():
                return False
            percent = max(self._state.percent, min(100, int(percent)))
            if _stage_order(stage) < _stage_order(self._state.stage):
                stage = self._state.stage
            new_state = ProgressState(stage, percent, self.request_id)
            if new_state == self._state:
                return False
            if new_state.stage is not self._state.stage:
                LOGGER.debug(
                    "Stage transition",
                    extra={
                        "component": "ProgressTracker",
                        "request_id": self.request_id,
                        "stage": new_state.stage.value,
                    },
                )
            self._state = new_state
            self._channel.publish(new_state, self._observer)
        return True


def _stage_order(stage: Stage) -> int:
    return list(Stage).index(stage)


__all__ = ["IDLE_PROGRESS", "ProgressChannel", "ProgressListener", "ProgressTracker"]
