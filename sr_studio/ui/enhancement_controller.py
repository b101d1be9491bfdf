"""Qt bridge between :class:`EnhancementPipeline` and the widgets."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Optional

from PyQt5 import QtCore  # type: ignore

from sr_studio.processing import EnhancementPipeline, EnhancementRequest, ProgressState, Stage


LOGGER = logging.getLogger(__name__)

STAGE_DESCRIPTIONS = {
    Stage.IDLE: "Waiting to start...",
    Stage.PREPROCESSING: "Preprocessing input tensor...",
    Stage.PROCESSING: "Running SRGAN inference...",
    Stage.POSTPROCESSING: "Converting output tensor...",
    Stage.COMPLETE: "Super-resolution complete!",
}


class EnhancementController(QtCore.QObject):
    """Expose pipeline progress and settlement as Qt signals.

    Pipeline callbacks arrive on worker threads; re-emitting them through
    signals owned by this object delivers them on the thread the controller
    lives in, normally the GUI thread.
    """

    progressChanged = QtCore.pyqtSignal(object)
    enhancementFinished = QtCore.pyqtSignal(object)
    enhancementFailed = QtCore.pyqtSignal(object)
    enhancementCancelled = QtCore.pyqtSignal()
    busyChanged = QtCore.pyqtSignal(bool)

    _progress = QtCore.pyqtSignal(object)
    _settled = QtCore.pyqtSignal(object)

    def __init__(self, pipeline: EnhancementPipeline, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._pipeline = pipeline
        self._request_id: Optional[int] = None
        self._unsubscribe = pipeline.subscribe(self._forward_progress)
        self._progress.connect(self._handle_progress)
        self._settled.connect(self._handle_settled)

    @property
    def pipeline(self) -> EnhancementPipeline:
        return self._pipeline

    @property
    def is_busy(self) -> bool:
        return self._request_id is not None

    def start(self, request: EnhancementRequest) -> int:
        """Submit ``request``; raises :class:`PipelineBusyError` when busy."""

        future = self._pipeline.enhance(request)
        self._request_id = future.request_id
        self.busyChanged.emit(True)
        future.add_done_callback(self._settled.emit)
        return future.request_id

    def cancel(self) -> bool:
        """Abandon the current request; its settlement is ignored afterwards."""

        aborted = self._pipeline.cancel()
        if self._request_id is not None:
            self._request_id = None
            self.busyChanged.emit(False)
            self.enhancementCancelled.emit()
        return aborted

    def shutdown(self) -> None:
        self._unsubscribe()
        self._pipeline.shutdown()

    def _forward_progress(self, state: ProgressState) -> None:
        self._progress.emit(state)

    @QtCore.pyqtSlot(object)
    def _handle_progress(self, state: ProgressState) -> None:
        # The idle state of a new request is published before start() returns.
        expected = self._request_id if self._request_id is not None else self._pipeline.active_request_id
        if state.request_id != expected:
            LOGGER.debug(
                "Dropping progress of a superseded request",
                extra={"component": "EnhancementController", "request_id": state.request_id},
            )
            return
        self.progressChanged.emit(state)

    @QtCore.pyqtSlot(object)
    def _handle_settled(self, future: concurrent.futures.Future) -> None:
        if getattr(future, "request_id", None) != self._request_id:
            LOGGER.debug("Ignoring settlement of a superseded request", extra={"component": "EnhancementController"})
            return
        self._request_id = None
        self.busyChanged.emit(False)
        if future.cancelled():
            self.enhancementCancelled.emit()
            return
        error = future.exception()
        if error is not None:
            self.enhancementFailed.emit(error)
            return
        self.enhancementFinished.emit(future.result())
