"""Image I/O helpers bridging files, encoded payloads and pixel arrays.

Files selected by the user are turned into :class:`EnhancementRequest`
instances by :func:`load_request`.  The MIME type is taken from the format
Pillow detects while opening the file so that a mislabelled extension does
not leak into the request; :mod:`mimetypes` is consulted only when Pillow
reports a format without a registered MIME type.

Enhanced payloads travel as ``data:`` URLs or bare base64 strings between the
backends and the pipeline.  :func:`to_data_url` and :func:`parse_data_url`
convert between those strings and raw bytes.
"""

from __future__ import annotations

import base64
import binascii
import io
import mimetypes
import re
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

if TYPE_CHECKING:
    from sr_studio.processing.models import EnhancementRequest, EnhancementResult


DEFAULT_DOWNLOAD_NAME = "enhanced-image.png"
_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*?);base64,(?P<data>.*)$", re.S)


class UnsupportedImageError(ValueError):
    """Raised when a selected file cannot be decoded as an image."""

    user_message = "Please upload an image file"


def load_request(path: str | Path) -> EnhancementRequest:
    """Read ``path`` into an :class:`EnhancementRequest`."""

    from sr_studio.processing.models import EnhancementRequest

    path = Path(path)
    data = path.read_bytes()
    mime_type = sniff_mime_type(data, fallback_name=path.name)
    if mime_type is None or not mime_type.startswith("image/"):
        raise UnsupportedImageError(f"{path.name} is not a supported image")
    return EnhancementRequest.from_bytes(data, mime_type, filename=path.name)


def sniff_mime_type(data: bytes, *, fallback_name: Optional[str] = None) -> Optional[str]:
    """Return the MIME type of encoded image ``data`` or ``None``."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        return None
    if image_format:
        mime = Image.MIME.get(image_format.upper())
        if mime:
            return mime
    if fallback_name:
        guessed, _encoding = mimetypes.guess_type(fallback_name)
        return guessed
    return None


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into an RGB or RGBA ``uint8`` array."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            mode = "RGBA" if "A" in image.getbands() else "RGB"
            converted = image.convert(mode)
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedImageError(str(exc)) from exc
    return np.asarray(converted, dtype=np.uint8)


def save_enhanced(result: EnhancementResult, path: str | Path) -> Path:
    """Write the enhanced payload of ``result`` to ``path`` unchanged."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(result.enhanced_image)
    return path


def default_download_name(source_name: Optional[str]) -> str:
    """Return the suggested file name for an enhanced copy of ``source_name``."""

    if not source_name:
        return DEFAULT_DOWNLOAD_NAME
    return f"enhanced-{Path(source_name).name}"


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def parse_data_url(payload: str) -> Tuple[bytes, Optional[str]]:
    """Decode a ``data:`` URL or bare base64 string.

    Returns the decoded bytes and the declared MIME type (``None`` for bare
    base64).  Raises :class:`ValueError` when the payload is not valid base64.
    """

    text = payload.strip()
    mime_type: Optional[str] = None
    match = _DATA_URL_PATTERN.match(text)
    if match is not None:
        mime_type = match.group("mime")
        text = match.group("data")
    elif text.startswith("data:"):
        raise ValueError("Only base64 encoded data URLs are supported")
    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc
    if not data:
        raise ValueError("Image payload is empty")
    return data, mime_type
