"""Main application window for SR Studio."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PyQt5 import QtCore, QtWidgets  # type: ignore

from sr_studio.data import (
    UnsupportedImageError,
    decode_image,
    default_download_name,
    load_request,
    save_enhanced,
)
from sr_studio.processing import (
    EnhancementError,
    EnhancementRequest,
    EnhancementResult,
    PipelineBusyError,
    ProgressState,
    Stage,
)

from .compare_view import CompareView
from .enhancement_controller import STAGE_DESCRIPTIONS, EnhancementController


IMAGE_FILE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.gif *.webp *.tif *.tiff)"


class MainWindow(QtWidgets.QMainWindow):
    """Open an image, enhance it and compare the result with the original."""

    errorOccurred = QtCore.pyqtSignal(str)
    statusMessageRequested = QtCore.pyqtSignal(str, int)

    def __init__(
        self,
        controller: EnhancementController,
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._logger = logging.getLogger(__name__)
        self._controller = controller
        self._request: Optional[EnhancementRequest] = None
        self._source_array: Optional[np.ndarray] = None
        self._result: Optional[EnhancementResult] = None

        self.setWindowTitle(self.tr("SR Studio"))
        self._build_actions()
        self._build_menus()
        self._build_central_widget()
        self.statusMessageRequested.connect(self.show_status_message)

        controller.progressChanged.connect(self._on_progress)
        controller.enhancementFinished.connect(self._on_finished)
        controller.enhancementFailed.connect(self._on_failed)
        controller.enhancementCancelled.connect(self._on_cancelled)
        controller.busyChanged.connect(self._on_busy_changed)
        self._refresh_actions()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def controller(self) -> EnhancementController:
        return self._controller

    @property
    def compare_view(self) -> CompareView:
        return self._compare_view

    @property
    def result(self) -> Optional[EnhancementResult]:
        return self._result

    def load_image(self, path: str | Path) -> bool:
        """Load ``path`` as the source image; returns ``False`` when rejected."""

        try:
            request = load_request(path)
            array = decode_image(request.source_bytes)
        except UnsupportedImageError as exc:
            self._logger.info(
                "Rejected selected file", extra={"component": "MainWindow", "path": str(path), "reason": str(exc)}
            )
            self.show_error(self.tr(UnsupportedImageError.user_message))
            return False
        except OSError as exc:
            self._logger.warning(
                "Failed to read selected file", extra={"component": "MainWindow", "path": str(path)}
            )
            self.show_error(str(exc))
            return False
        self._controller.cancel()
        self._request = request
        self._source_array = array
        self._result = None
        self._compare_view.clear()
        self._elapsed_label.clear()
        self._clear_progress()
        self.clear_error()
        self._source_label.setText(request.filename or "")
        self.statusMessageRequested.emit(self.tr("Loaded {name}").format(name=request.filename), 3000)
        self._refresh_actions()
        return True

    def start_enhancement(self) -> bool:
        if self._request is None:
            return False
        self.clear_error()
        self._result = None
        self._compare_view.clear()
        self._elapsed_label.clear()
        try:
            self._controller.start(self._request)
        except PipelineBusyError:
            self.statusMessageRequested.emit(self.tr("An enhancement is already running"), 3000)
            return False
        return True

    def save_result(self, path: str | Path) -> Optional[Path]:
        if self._result is None:
            return None
        written = save_enhanced(self._result, path)
        self.statusMessageRequested.emit(self.tr("Saved {path}").format(path=str(written)), 3000)
        return written

    def reset(self) -> None:
        """Cancel any running enhancement and return to the empty state."""

        self._controller.cancel()
        self._request = None
        self._source_array = None
        self._result = None
        self._compare_view.clear()
        self._source_label.clear()
        self._elapsed_label.clear()
        self._clear_progress()
        self.clear_error()
        self._refresh_actions()

    def show_error(self, message: str) -> None:
        self._error_banner.setText(message)
        self._error_banner.setVisible(True)
        self.errorOccurred.emit(message)

    def clear_error(self) -> None:
        self._error_banner.clear()
        self._error_banner.setVisible(False)

    def error_text(self) -> str:
        return "" if self._error_banner.isHidden() else self._error_banner.text()

    @QtCore.pyqtSlot(str, int)
    def show_status_message(self, message: str, timeout_ms: int = 0) -> None:
        self.statusBar().showMessage(message, timeout_ms)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    def _build_actions(self) -> None:
        self.open_action = QtWidgets.QAction(self.tr("&Open Image…"), self)
        self.open_action.setShortcut("Ctrl+O")
        self.open_action.triggered.connect(self._prompt_open)

        self.enhance_action = QtWidgets.QAction(self.tr("&Enhance"), self)
        self.enhance_action.setShortcut("Ctrl+E")
        self.enhance_action.triggered.connect(self.start_enhancement)

        self.save_action = QtWidgets.QAction(self.tr("&Save Enhanced…"), self)
        self.save_action.setShortcut("Ctrl+S")
        self.save_action.triggered.connect(self._prompt_save)

        self.reset_action = QtWidgets.QAction(self.tr("&Reset"), self)
        self.reset_action.triggered.connect(self.reset)

        self.exit_action = QtWidgets.QAction(self.tr("E&xit"), self)
        self.exit_action.setShortcut("Ctrl+Q")
        self.exit_action.triggered.connect(self.close)

    def _build_menus(self) -> None:
        file_menu = self.menuBar().addMenu(self.tr("&File"))
        file_menu.addAction(self.open_action)
        file_menu.addAction(self.save_action)
        file_menu.addSeparator()
        file_menu.addAction(self.exit_action)

        image_menu = self.menuBar().addMenu(self.tr("&Image"))
        image_menu.addAction(self.enhance_action)
        image_menu.addAction(self.reset_action)

        toolbar = self.addToolBar(self.tr("Main"))
        toolbar.setObjectName("mainToolbar")
        toolbar.addAction(self.open_action)
        toolbar.addAction(self.enhance_action)
        toolbar.addAction(self.save_action)
        toolbar.addAction(self.reset_action)

    def _build_central_widget(self) -> None:
        central = QtWidgets.QWidget(self)
        layout = QtWidgets.QVBoxLayout(central)
        layout.setObjectName("centralLayout")

        self._error_banner = QtWidgets.QLabel(central)
        self._error_banner.setObjectName("errorBanner")
        self._error_banner.setWordWrap(True)
        self._error_banner.setStyleSheet("background-color: #fdecea; color: #b71c1c; padding: 6px;")
        self._error_banner.setVisible(False)
        layout.addWidget(self._error_banner)

        self._source_label = QtWidgets.QLabel(central)
        self._source_label.setObjectName("sourceLabel")
        layout.addWidget(self._source_label)

        self._compare_view = CompareView(central)
        layout.addWidget(self._compare_view, 1)

        self._stage_label = QtWidgets.QLabel(central)
        self._stage_label.setObjectName("stageLabel")
        layout.addWidget(self._stage_label)

        self._progress_bar = QtWidgets.QProgressBar(central)
        self._progress_bar.setRange(0, 100)
        self._progress_bar.setVisible(False)
        layout.addWidget(self._progress_bar)

        self._elapsed_label = QtWidgets.QLabel(central)
        self._elapsed_label.setObjectName("elapsedLabel")
        layout.addWidget(self._elapsed_label)

        self.setCentralWidget(central)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------
    def _prompt_open(self) -> None:
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, self.tr("Open Image"), "", self.tr(IMAGE_FILE_FILTER)
        )
        if path:
            self.load_image(path)

    def _prompt_save(self) -> None:
        if self._result is None:
            return
        suggested = default_download_name(self._request.filename if self._request else None)
        path, _ = QtWidgets.QFileDialog.getSaveFileName(
            self, self.tr("Save Enhanced Image"), suggested, self.tr(IMAGE_FILE_FILTER)
        )
        if not path:
            return
        try:
            self.save_result(path)
        except OSError as exc:
            self._logger.error(
                "Failed to save enhanced image", extra={"component": "MainWindow", "path": path}
            )
            self.show_error(str(exc))

    @QtCore.pyqtSlot(object)
    def _on_progress(self, state: ProgressState) -> None:
        if state.stage is Stage.IDLE:
            self._progress_bar.setVisible(True)
        self._progress_bar.setValue(state.percent)
        self._stage_label.setText(self.tr(STAGE_DESCRIPTIONS[state.stage]))

    @QtCore.pyqtSlot(object)
    def _on_finished(self, result: EnhancementResult) -> None:
        self._clear_progress()
        if self._source_array is None:
            return
        self._result = result
        try:
            enhanced = decode_image(result.enhanced_image)
        except UnsupportedImageError:
            self._logger.warning("Enhanced payload could not be decoded", extra={"component": "MainWindow"})
            self.show_error(self.tr("Failed to enhance image: Invalid response from enhancement API"))
            self._result = None
            self._refresh_actions()
            return
        self._compare_view.set_images(self._source_array, enhanced)
        self._elapsed_label.setText(
            self.tr("Processed in {seconds:.2f}s").format(seconds=result.elapsed_millis / 1000.0)
        )
        self._refresh_actions()

    @QtCore.pyqtSlot(object)
    def _on_failed(self, error: BaseException) -> None:
        self._clear_progress()
        if isinstance(error, EnhancementError):
            message = error.user_message
        else:
            message = str(error)
        self.show_error(message)
        self._refresh_actions()

    @QtCore.pyqtSlot()
    def _on_cancelled(self) -> None:
        self._clear_progress()
        self._refresh_actions()

    @QtCore.pyqtSlot(bool)
    def _on_busy_changed(self, busy: bool) -> None:
        self._refresh_actions()

    def _clear_progress(self) -> None:
        self._progress_bar.setVisible(False)
        self._progress_bar.setValue(0)
        self._stage_label.clear()

    def _refresh_actions(self) -> None:
        busy = self._controller.is_busy
        self.enhance_action.setEnabled(self._request is not None and not busy)
        self.save_action.setEnabled(self._result is not None and not busy)
        self.open_action.setEnabled(True)
        self.reset_action.setEnabled(self._request is not None or busy)

    def closeEvent(self, event) -> None:  # noqa: N802
        self._controller.cancel()
        super().closeEvent(event)


__all__ = ["MainWindow"]
