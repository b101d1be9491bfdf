"""Widget presenting the original and enhanced images behind a draggable divider."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np
from PyQt5 import QtCore, QtGui, QtWidgets  # type: ignore

from sr_studio.comparison import DEFAULT_POSITION, CaptureTarget, CompareSlider, ContainerBounds


LOGGER = logging.getLogger(__name__)


def _to_qimage(image: np.ndarray) -> QtGui.QImage:
    if image.ndim not in (2, 3):
        raise ValueError(
            QtCore.QCoreApplication.translate("CompareView", "CompareView expects 2D or 3D numpy arrays")
        )

    array = np.ascontiguousarray(image)
    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)

    if array.ndim == 2:
        height, width = array.shape
        qimage = QtGui.QImage(array.data, width, height, width, QtGui.QImage.Format_Grayscale8)
        return qimage.copy()

    height, width, channels = array.shape
    if channels == 3:
        qimage = QtGui.QImage(array.data, width, height, 3 * width, QtGui.QImage.Format_RGB888)
        return qimage.copy()
    if channels == 4:
        qimage = QtGui.QImage(array.data, width, height, 4 * width, QtGui.QImage.Format_RGBA8888)
        return qimage.copy()
    raise ValueError(
        QtCore.QCoreApplication.translate("CompareView", "Unsupported channel count for comparison rendering")
    )


class ApplicationCaptureScope(QtCore.QObject):
    """Forward pointer moves and releases seen anywhere in the application.

    While attached, the scope filters every event delivered through the
    :class:`QApplication`, so a drag keeps tracking the pointer after it
    leaves the widget that started it.  Moves consumed by an active drag are
    swallowed; releases are always passed on.
    """

    def __init__(
        self,
        bounds_provider: Callable[[], ContainerBounds],
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._bounds_provider = bounds_provider
        self._target: Optional[CaptureTarget] = None

    @property
    def attached(self) -> bool:
        return self._target is not None

    def attach(self, target: CaptureTarget) -> None:
        app = QtWidgets.QApplication.instance()
        if app is None:
            LOGGER.warning("No application instance; drag capture unavailable", extra={"component": "CompareView"})
            return
        if self._target is None:
            app.installEventFilter(self)
        self._target = target

    def detach(self) -> None:
        if self._target is None:
            return
        self._target = None
        app = QtWidgets.QApplication.instance()
        if app is not None:
            app.removeEventFilter(self)

    def eventFilter(self, watched: QtCore.QObject, event: QtCore.QEvent) -> bool:  # noqa: N802
        target = self._target
        if target is None:
            return False
        kind = event.type()
        if kind == QtCore.QEvent.MouseMove:
            return target.move(event.screenPos().x(), self._bounds_provider())
        if kind == QtCore.QEvent.MouseButtonRelease:
            target.release()
            return False
        if kind == QtCore.QEvent.TouchUpdate:
            points = event.touchPoints()
            if points:
                return target.move(points[0].screenPos().x(), self._bounds_provider())
            return False
        if kind in (QtCore.QEvent.TouchEnd, QtCore.QEvent.TouchCancel):
            target.release()
            return False
        return False


class CompareView(QtWidgets.QWidget):
    """Draw the enhanced image with the original revealed left of the divider."""

    positionChanged = QtCore.pyqtSignal(float)

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self._original: Optional[QtGui.QImage] = None
        self._enhanced: Optional[QtGui.QImage] = None
        self._capture = ApplicationCaptureScope(self.global_bounds, self)
        self._slider = CompareSlider(capture_scope=self._capture)
        self._slider.subscribe(self._on_position_changed)
        self.setAttribute(QtCore.Qt.WA_AcceptTouchEvents, True)
        self.setCursor(QtCore.Qt.SizeHorCursor)
        self.setMinimumSize(240, 160)

    @property
    def slider(self) -> CompareSlider:
        return self._slider

    @property
    def capture_scope(self) -> ApplicationCaptureScope:
        return self._capture

    def has_images(self) -> bool:
        return self._original is not None and self._enhanced is not None

    def set_images(self, original: Optional[np.ndarray], enhanced: Optional[np.ndarray]) -> None:
        """Show a new pair; the divider returns to the centre."""

        self._original = _to_qimage(original) if original is not None else None
        self._enhanced = _to_qimage(enhanced) if enhanced is not None else None
        self._slider.reset(DEFAULT_POSITION)
        self.update()

    def clear(self) -> None:
        self.set_images(None, None)

    def global_bounds(self) -> ContainerBounds:
        origin = self.mapToGlobal(QtCore.QPoint(0, 0))
        return ContainerBounds(float(origin.x()), float(self.width()))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:  # noqa: N802
        if event.button() == QtCore.Qt.LeftButton:
            self._slider.press(event.screenPos().x(), self.global_bounds())
            event.accept()
            return
        super().mousePressEvent(event)

    def event(self, event: QtCore.QEvent) -> bool:
        if event.type() == QtCore.QEvent.TouchBegin:
            points = event.touchPoints()
            if points:
                self._slider.press(points[0].screenPos().x(), self.global_bounds())
                event.accept()
                return True
        return super().event(event)

    def hideEvent(self, event: QtGui.QHideEvent) -> None:  # noqa: N802
        self._slider.release()
        super().hideEvent(event)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------
    def _on_position_changed(self, position: float) -> None:
        self.positionChanged.emit(position)
        self.update()

    def _image_rect(self, image: QtGui.QImage) -> QtCore.QRect:
        size = image.size().scaled(self.size(), QtCore.Qt.KeepAspectRatio)
        left = (self.width() - size.width()) // 2
        top = (self.height() - size.height()) // 2
        return QtCore.QRect(left, top, size.width(), size.height())

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:  # noqa: N802
        painter = QtGui.QPainter(self)
        try:
            painter.fillRect(self.rect(), self.palette().window())
            if self._enhanced is None or self._original is None:
                painter.drawText(
                    self.rect(),
                    int(QtCore.Qt.AlignCenter),
                    self.tr("Enhance an image to compare the result"),
                )
                return
            painter.setRenderHint(QtGui.QPainter.SmoothPixmapTransform, True)
            target = self._image_rect(self._enhanced)
            painter.drawImage(target, self._enhanced)

            divider_x = int(round(self.width() * self._slider.position_percent / 100.0))
            painter.save()
            painter.setClipRect(QtCore.QRect(0, 0, divider_x, self.height()))
            painter.drawImage(target, self._original)
            painter.restore()

            pen = QtGui.QPen(QtCore.Qt.white)
            pen.setWidth(2)
            painter.setPen(pen)
            painter.drawLine(divider_x, 0, divider_x, self.height())
            handle = QtCore.QRect(divider_x - 12, self.height() // 2 - 12, 24, 24)
            painter.setBrush(QtGui.QColor(255, 255, 255, 220))
            painter.drawEllipse(handle)

            painter.setPen(QtCore.Qt.white)
            margin = 8
            painter.drawText(
                QtCore.QRect(margin, margin, self.width() // 2, 24),
                int(QtCore.Qt.AlignLeft | QtCore.Qt.AlignVCenter),
                self.tr("Original"),
            )
            painter.drawText(
                QtCore.QRect(self.width() // 2, margin, self.width() // 2 - margin, 24),
                int(QtCore.Qt.AlignRight | QtCore.Qt.AlignVCenter),
                self.tr("Enhanced"),
            )
        finally:
            painter.end()


__all__ = ["ApplicationCaptureScope", "CompareView"]
