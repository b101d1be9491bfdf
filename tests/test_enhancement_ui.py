from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Optional

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

QtCore = pytest.importorskip("PyQt5.QtCore", exc_type=ImportError)
QtWidgets = pytest.importorskip("PyQt5.QtWidgets", exc_type=ImportError)

pytest.importorskip("cv2", exc_type=ImportError)

from sr_studio.processing import (
    BackendError,
    BackendResponse,
    BicubicUpscaler,
    EnhancementPipeline,
    EnhancementRequest,
    EnhancementResult,
    InferenceBackend,
    LocalBackend,
    PipelineBusyError,
    Stage,
)
from sr_studio.ui import STAGE_DESCRIPTIONS, EnhancementController, MainWindow


class _GatedBackend(InferenceBackend):
    name = "gated"

    def __init__(self, inner: InferenceBackend, gate: Optional[threading.Event] = None) -> None:
        self.inner = inner
        self.gate = gate

    def invoke(self, prepared, task=None) -> BackendResponse:
        if self.gate is not None:
            self.gate.wait(5.0)
        return self.inner.invoke(prepared, task)


class _FirstCallGatedBackend(InferenceBackend):
    name = "first-call-gated"

    def __init__(self, inner: InferenceBackend) -> None:
        self.inner = inner
        self.calls = 0
        self.started = threading.Event()
        self.gate = threading.Event()

    def invoke(self, prepared, task=None) -> BackendResponse:
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            self.gate.wait(5.0)
        return self.inner.invoke(prepared, task)


class _FailingBackend(InferenceBackend):
    name = "failing"

    def invoke(self, prepared, task=None) -> BackendResponse:
        return BackendResponse(500, {"error": "GPU unavailable"}, "GPU unavailable")


@pytest.fixture
def make_controller(qtbot):
    created = []

    def _factory(backend: InferenceBackend) -> EnhancementController:
        pipeline = EnhancementPipeline(backend, completion_grace_seconds=0.0, deadline_seconds=10.0)
        controller = EnhancementController(pipeline)
        created.append(controller)
        return controller

    yield _factory
    for controller in created:
        controller.shutdown()


def _request(png_bytes: bytes) -> EnhancementRequest:
    return EnhancementRequest.from_bytes(png_bytes, "image/png", filename="sample.png")


def test_controller_emits_progress_and_result(qtbot, make_controller, png_bytes: bytes) -> None:
    controller = make_controller(LocalBackend(BicubicUpscaler(2)))
    progress = []
    busy = []
    controller.progressChanged.connect(progress.append)
    controller.busyChanged.connect(busy.append)

    with qtbot.waitSignal(controller.enhancementFinished, timeout=5000) as blocker:
        controller.start(_request(png_bytes))

    result = blocker.args[0]
    assert isinstance(result, EnhancementResult)
    assert busy == [True, False]
    assert controller.is_busy is False
    qtbot.waitUntil(lambda: bool(progress) and progress[-1].stage is Stage.COMPLETE, timeout=2000)
    percents = [state.percent for state in progress]
    assert percents == sorted(percents)


def test_controller_reports_failures(qtbot, make_controller, png_bytes: bytes) -> None:
    controller = make_controller(_FailingBackend())

    with qtbot.waitSignal(controller.enhancementFailed, timeout=5000) as blocker:
        controller.start(_request(png_bytes))

    error = blocker.args[0]
    assert isinstance(error, BackendError)
    assert error.user_message == "Failed to enhance image: GPU unavailable"


def test_controller_rejects_concurrent_start(qtbot, make_controller, png_bytes: bytes) -> None:
    gate = threading.Event()
    controller = make_controller(_GatedBackend(LocalBackend(), gate))

    controller.start(_request(png_bytes))
    with pytest.raises(PipelineBusyError):
        controller.start(_request(png_bytes))

    with qtbot.waitSignal(controller.enhancementFinished, timeout=5000):
        gate.set()


def test_controller_cancel_ignores_late_settlement(qtbot, make_controller, png_bytes: bytes) -> None:
    gate = threading.Event()
    controller = make_controller(_GatedBackend(LocalBackend(), gate))
    finished = []
    controller.enhancementFinished.connect(finished.append)

    controller.start(_request(png_bytes))
    with qtbot.waitSignal(controller.enhancementCancelled, timeout=1000):
        controller.cancel()
    assert controller.is_busy is False

    gate.set()
    qtbot.wait(200)
    assert finished == []


def test_restart_after_cancel_drops_superseded_progress(qtbot, make_controller, png_bytes: bytes) -> None:
    backend = _FirstCallGatedBackend(LocalBackend(BicubicUpscaler(2)))
    controller = make_controller(backend)
    progress = []
    controller.progressChanged.connect(progress.append)

    try:
        first_id = controller.start(_request(png_bytes))
        assert backend.started.wait(5)
        controller.cancel()
        with qtbot.waitSignal(controller.enhancementFinished, timeout=5000):
            second_id = controller.start(_request(png_bytes))
    finally:
        backend.gate.set()

    qtbot.waitUntil(lambda: progress[-1].stage is Stage.COMPLETE, timeout=2000)
    ids = [state.request_id for state in progress]
    first_of_second = ids.index(second_id)
    assert set(ids[:first_of_second]) <= {first_id}
    assert set(ids[first_of_second:]) == {second_id}
    percents = [state.percent for state in progress[first_of_second:]]
    assert percents[0] == 0
    assert percents == sorted(percents)


def test_stage_descriptions_cover_every_stage() -> None:
    assert set(STAGE_DESCRIPTIONS) == set(Stage)
    assert STAGE_DESCRIPTIONS[Stage.COMPLETE] == "Super-resolution complete!"


@pytest.fixture
def window(qtbot, make_controller):
    controller = make_controller(LocalBackend(BicubicUpscaler(2)))
    main_window = MainWindow(controller)
    qtbot.addWidget(main_window)
    main_window.show()
    return main_window


def test_main_window_enhances_loaded_image(qtbot, window, tmp_path: Path, png_bytes: bytes) -> None:
    source = tmp_path / "sample.png"
    source.write_bytes(png_bytes)

    assert window.enhance_action.isEnabled() is False
    assert window.load_image(source) is True
    assert window.enhance_action.isEnabled() is True

    with qtbot.waitSignal(window.controller.enhancementFinished, timeout=5000):
        assert window.start_enhancement() is True
        assert window.enhance_action.isEnabled() is False

    assert window.result is not None
    assert window.compare_view.has_images()
    assert window.compare_view.slider.position_percent == 50.0
    assert window.save_action.isEnabled() is True

    written = window.save_result(tmp_path / "enhanced-sample.png")
    assert written is not None
    assert written.read_bytes() == window.result.enhanced_image


def test_main_window_rejects_non_image(window, tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("not an image", encoding="utf-8")

    assert window.load_image(path) is False
    assert window.error_text() == "Please upload an image file"
    assert window.enhance_action.isEnabled() is False


def test_main_window_shows_enhancement_errors(qtbot, make_controller, tmp_path: Path, png_bytes: bytes) -> None:
    main_window = MainWindow(make_controller(_FailingBackend()))
    qtbot.addWidget(main_window)
    source = tmp_path / "sample.png"
    source.write_bytes(png_bytes)
    main_window.load_image(source)

    with qtbot.waitSignal(main_window.errorOccurred, timeout=5000) as blocker:
        main_window.start_enhancement()

    assert blocker.args == ["Failed to enhance image: GPU unavailable"]
    assert main_window.error_text() == "Failed to enhance image: GPU unavailable"
    assert main_window.enhance_action.isEnabled() is True


def test_main_window_reset_clears_state(qtbot, window, tmp_path: Path, png_bytes: bytes) -> None:
    source = tmp_path / "sample.png"
    source.write_bytes(png_bytes)
    window.load_image(source)
    with qtbot.waitSignal(window.controller.enhancementFinished, timeout=5000):
        window.start_enhancement()

    window.reset()

    assert window.result is None
    assert window.compare_view.has_images() is False
    assert window.enhance_action.isEnabled() is False
    assert window.save_action.isEnabled() is False
