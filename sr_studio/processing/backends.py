"""Inference backends that turn a source image into an enhanced payload.

Backends share one contract: :meth:`InferenceBackend.invoke` returns a
:class:`BackendResponse` whose ``body`` mirrors the JSON document served by
the remote enhancement API::

    {"success": true, "enhancedImage": "data:image/png;base64,...", "enhancedSize": 1234}

Non-success outcomes are reported as a response with a non-2xx
``status_code`` and an optional ``error`` string.  Only transport problems
(the backend could not be reached at all) raise, using
:class:`BackendUnavailable`.  This keeps the in-process engine and the remote
service interchangeable behind :class:`EnhancementPipeline`.
"""

from __future__ import annotations

import http.client
import json
import logging
import socket
import urllib.request
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

import cv2
import numpy as np

from sr_studio.core.threading import ThreadTask
from sr_studio.data.image_io import to_data_url

from .models import DEFAULT_DEADLINE_SECONDS, EnhancementRequest


LOGGER = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:3001/api/enhance"
_UNKNOWN_ERROR = "Unknown error occurred"


class BackendUnavailable(Exception):
    """Transport-level failure reaching the backend."""


@dataclass(frozen=True)
class BackendResponse:
    """Outcome of one backend call."""

    status_code: int
    body: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class InferenceBackend(ABC):
    """Opaque inference capability invoked by the pipeline."""

    name = "backend"

    def prepare(self, request: EnhancementRequest) -> Any:
        """Package ``request`` for :meth:`invoke`; runs during preprocessing."""

        return request

    @abstractmethod
    def invoke(self, prepared: Any, task: Optional[ThreadTask] = None) -> BackendResponse:
        """Run inference on ``prepared``.

        ``task`` is the worker task executing the call.  Implementations
        should register cancel callbacks on it to release resources when the
        pipeline abandons the call.
        """


# ----------------------------------------------------------------------
# Remote service
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class MultipartPayload:
    body: bytes
    content_type: str


def encode_multipart_image(
    data: bytes,
    *,
    field_name: str = "image",
    filename: str = "image.jpg",
    mime_type: str = "application/octet-stream",
    boundary: Optional[str] = None,
) -> MultipartPayload:
    """Encode ``data`` as a single-field ``multipart/form-data`` body."""

    boundary = boundary or f"----srstudio{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field_name}"; filename="{filename}"\r\n'
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return MultipartPayload(head + data + tail, f"multipart/form-data; boundary={boundary}")


class RemoteBackend(InferenceBackend):
    """POST the image to the enhancement HTTP API."""

    name = "remote"

    def __init__(
        self,
        url: str = DEFAULT_BACKEND_URL,
        *,
        timeout: float = DEFAULT_DEADLINE_SECONDS,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = dict(headers or {})

    def prepare(self, request: EnhancementRequest) -> urllib.request.Request:
        payload = encode_multipart_image(request.source_bytes, mime_type=request.mime_type)
        headers = {"Accept": "application/json", **self.headers, "Content-Type": payload.content_type}
        return urllib.request.Request(self.url, data=payload.body, headers=headers, method="POST")

    def invoke(self, prepared: urllib.request.Request, task: Optional[ThreadTask] = None) -> BackendResponse:
        task = task or ThreadTask.current()
        connection = self._open_connection(prepared)
        abort: Callable[[], None] = lambda: self._abort_connection(connection)
        if task is not None:
            task.add_cancel_callback(abort)
        try:
            connection.connect()
            if task is not None and task.is_cancelled():
                raise BackendUnavailable("Request cancelled")
            connection.request(
                prepared.get_method(),
                prepared.selector,
                body=prepared.data,
                headers=dict(prepared.header_items()),
            )
            response = connection.getresponse()
            status = response.status
            raw = response.read()
        except (OSError, http.client.HTTPException) as exc:
            if task is not None and task.is_cancelled():
                raise BackendUnavailable("Request cancelled") from exc
            raise BackendUnavailable(str(exc) or type(exc).__name__) from exc
        finally:
            if task is not None:
                task.remove_cancel_callback(abort)
            connection.close()

        if status >= 400:
            return self._error_response(status, raw)
        return BackendResponse(status_code=status, body=self._parse_json(raw))

    def _open_connection(self, prepared: urllib.request.Request) -> http.client.HTTPConnection:
        if prepared.type == "https":
            return http.client.HTTPSConnection(prepared.host, timeout=self.timeout)
        if prepared.type == "http":
            return http.client.HTTPConnection(prepared.host, timeout=self.timeout)
        raise BackendUnavailable(f"unsupported URL scheme: {prepared.type}")

    @staticmethod
    def _abort_connection(connection: http.client.HTTPConnection) -> None:
        # The socket stays attached so a blocked read or write fails instead
        # of http.client reopening the connection.
        sock = connection.sock
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            LOGGER.debug("Socket already closed", extra={"component": "RemoteBackend", "error": str(exc)})

    def _error_response(self, status: int, raw: bytes) -> BackendResponse:
        body = self._parse_json(raw)
        if body is None:
            message: Optional[str] = _UNKNOWN_ERROR
        elif isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
        else:
            message = None
        LOGGER.warning(
            "Enhancement API returned error status",
            extra={"component": "RemoteBackend", "status": status, "endpoint": self.url},
        )
        return BackendResponse(status_code=status, body=body, error=message)

    @staticmethod
    def _parse_json(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None


# ----------------------------------------------------------------------
# In-process engine
# ----------------------------------------------------------------------
Engine = Callable[[np.ndarray], np.ndarray]


class BicubicUpscaler:
    """Reference engine that upsamples with bicubic interpolation."""

    def __init__(self, scale: int = 4) -> None:
        if scale < 1:
            raise ValueError("BicubicUpscaler.scale must be at least 1")
        self.scale = scale

    def __call__(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        return cv2.resize(image, (width * self.scale, height * self.scale), interpolation=cv2.INTER_CUBIC)


class LocalBackend(InferenceBackend):
    """Run an in-process engine and answer with the remote API's body shape."""

    name = "local"

    def __init__(self, engine: Optional[Engine] = None, *, output_mime_type: str = "image/png") -> None:
        self.engine: Engine = engine or BicubicUpscaler()
        self.output_mime_type = output_mime_type

    def invoke(self, prepared: EnhancementRequest, task: Optional[ThreadTask] = None) -> BackendResponse:
        task = task or ThreadTask.current()
        buffer = np.frombuffer(prepared.source_bytes, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
        if image is None:
            return BackendResponse(400, {"success": False, "error": "Could not decode image"}, "Could not decode image")
        if task is not None:
            task.raise_if_cancelled()

        try:
            enhanced = self.engine(image)
        except Exception as exc:
            LOGGER.exception("Local engine failed", extra={"component": "LocalBackend"})
            return BackendResponse(500, {"success": False, "error": str(exc)}, str(exc))
        if task is not None:
            task.raise_if_cancelled()

        extension = ".png" if self.output_mime_type == "image/png" else ".jpg"
        encoded_ok, encoded = cv2.imencode(extension, np.ascontiguousarray(enhanced))
        if not encoded_ok:
            return BackendResponse(500, {"success": False, "error": "Could not encode image"}, "Could not encode image")
        data = encoded.tobytes()
        body = {
            "success": True,
            "enhancedImage": to_data_url(data, self.output_mime_type),
            "enhancedSize": len(data),
        }
        return BackendResponse(200, body)
