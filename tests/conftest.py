from __future__ import annotations

import io
import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Ensure the project root is on ``sys.path`` so tests can import ``sr_studio``
# without requiring the package to be installed in the environment.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


@pytest.fixture
def png_bytes() -> bytes:
    """A small encoded RGB PNG."""

    np = pytest.importorskip("numpy")
    Image = pytest.importorskip("PIL.Image")
    array = np.zeros((8, 12, 3), dtype=np.uint8)
    array[:, :6] = (255, 0, 0)
    array[:, 6:] = (0, 0, 255)
    buffer = io.BytesIO()
    Image.fromarray(array, "RGB").save(buffer, format="PNG")
    return buffer.getvalue()
