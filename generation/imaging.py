"""Pillow helpers for downloaded generation outputs."""

from __future__ import annotations

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .exceptions import InvalidImageError

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
THUMBNAIL_WIDTH = 256


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidImageError(f"Downloaded asset is not a valid image ({len(data)} bytes)") from exc
    return image


def ensure_png(data: bytes) -> bytes:
    """Return ``data`` as PNG bytes, re-encoding other image formats.

    Raises
    ------
    InvalidImageError
        If the bytes cannot be decoded as an image.
    """

    if data.startswith(PNG_SIGNATURE):
        return data
    with _open(data) as image:
        if image.mode not in ("RGB", "RGBA", "L", "LA"):
            image = image.convert("RGBA")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    return buffer.getvalue()


def image_size(data: bytes) -> Tuple[int, int]:
    with _open(data) as image:
        return image.size


def make_thumbnail(data: bytes, width: int = THUMBNAIL_WIDTH) -> bytes:
    """Resize to ``width`` pixels wide, keeping the aspect ratio, as PNG."""

    with _open(data) as image:
        ratio = width / image.width
        height = max(1, round(image.height * ratio))
        thumb = image.resize((width, height), Image.LANCZOS)
        buffer = io.BytesIO()
        thumb.save(buffer, format="PNG")
    return buffer.getvalue()
