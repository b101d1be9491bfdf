from __future__ import annotations

import concurrent.futures
import threading

import pytest

cv2 = pytest.importorskip("cv2", exc_type=ImportError)
np = pytest.importorskip("numpy")

from sr_studio.core.threading import ThreadTask
from sr_studio.data import decode_image, parse_data_url
from sr_studio.processing import BicubicUpscaler, EnhancementPipeline, EnhancementRequest, LocalBackend


def _encoded_image(width: int = 6, height: int = 4) -> bytes:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, : width // 2] = (0, 255, 0)
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


def test_bicubic_upscaler_scales_dimensions() -> None:
    image = np.zeros((5, 7, 3), dtype=np.uint8)
    assert BicubicUpscaler(3)(image).shape == (15, 21, 3)


def test_bicubic_upscaler_rejects_invalid_scale() -> None:
    with pytest.raises(ValueError):
        BicubicUpscaler(0)


def test_local_backend_returns_api_shaped_body() -> None:
    backend = LocalBackend(BicubicUpscaler(2))
    request = EnhancementRequest.from_bytes(_encoded_image(), "image/png")

    response = backend.invoke(backend.prepare(request))

    assert response.ok
    assert response.body["success"] is True
    data, mime = parse_data_url(response.body["enhancedImage"])
    assert mime == "image/png"
    assert response.body["enhancedSize"] == len(data)
    assert decode_image(data).shape[:2] == (8, 12)


def test_local_backend_reports_undecodable_input() -> None:
    backend = LocalBackend()
    request = EnhancementRequest.from_bytes(b"definitely not an image", "image/png")

    response = backend.invoke(request)

    assert response.status_code == 400
    assert response.error == "Could not decode image"


def test_local_backend_reports_engine_failure() -> None:
    def _broken(image):
        raise RuntimeError("out of memory")

    backend = LocalBackend(_broken)
    response = backend.invoke(EnhancementRequest.from_bytes(_encoded_image(), "image/png"))

    assert response.status_code == 500
    assert response.error == "out of memory"


def test_local_backend_honours_cancellation() -> None:
    task = ThreadTask(lambda: None, (), {}, cancellation_event=threading.Event())
    task.cancel()
    backend = LocalBackend()

    with pytest.raises(concurrent.futures.CancelledError):
        backend.invoke(EnhancementRequest.from_bytes(_encoded_image(), "image/png"), task)


def test_pipeline_with_local_backend_end_to_end() -> None:
    pipeline = EnhancementPipeline(LocalBackend(BicubicUpscaler(4)), completion_grace_seconds=0.0)
    try:
        result = pipeline.enhance(EnhancementRequest.from_bytes(_encoded_image(), "image/png")).result(timeout=10)
    finally:
        pipeline.shutdown()

    assert result.mime_type == "image/png"
    assert decode_image(result.enhanced_image).shape[:2] == (16, 24)
