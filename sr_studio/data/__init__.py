"""Data layer utilities for image file input and output."""

from . import image_io
from .image_io import (
    UnsupportedImageError,
    decode_image,
    default_download_name,
    load_request,
    parse_data_url,
    save_enhanced,
    sniff_mime_type,
    to_data_url,
)

__all__ = [
    "UnsupportedImageError",
    "decode_image",
    "default_download_name",
    "image_io",
    "load_request",
    "parse_data_url",
    "save_enhanced",
    "sniff_mime_type",
    "to_data_url",
]
