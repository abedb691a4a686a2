"""Image encoding helpers shared by the pipeline stages."""

from __future__ import annotations

import base64
import binascii
import io
import re
from pathlib import Path

from PIL import Image

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")
_B64_ALPHABET = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def ensure_dir(p: Path) -> None:
    """Create `p` if it doesn't exist."""
    p.mkdir(parents=True, exist_ok=True)


def img_to_jpeg_bytes(img: Image.Image, quality: int = 90) -> bytes:
    """Encode an image as JPEG bytes."""
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def img_to_png_bytes(img: Image.Image) -> bytes:
    """Encode an image as PNG bytes."""
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def b64encode(data: bytes) -> str:
    """Encode bytes as an ASCII base64 string."""
    return base64.b64encode(data).decode("ascii")


def clean_b64(text: str) -> str:
    """Strip a `data:image/...;base64,` prefix and any whitespace."""
    return re.sub(r"\s", "", _DATA_URL_PREFIX.sub("", text.strip()))


def decode_b64_image_bytes(text: str) -> bytes:
    """Strictly decode a (possibly data-URL prefixed) base64 image payload.

    Raises:
        ValueError: If the payload is empty or not valid base64.
    """
    cleaned = clean_b64(text)
    if not cleaned or not _B64_ALPHABET.match(cleaned):
        raise ValueError("Invalid base64 format")
    try:
        return base64.b64decode(cleaned, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def sniff_extension(data: bytes) -> str:
    """Guess a file extension from an image signature (defaults to jpg)."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "jpg"


def open_image_bytes(data: bytes) -> Image.Image:
    """Decode image bytes into a fully loaded Pillow image."""
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def fit_within(w: int, h: int, max_side: int) -> tuple[int, int]:
    """Scale (w, h) so neither side exceeds `max_side`, preserving aspect ratio.

    Never upscales. Returns at least 1x1.
    """
    scale = min(1.0, max_side / float(max(w, h)))
    return max(1, round(w * scale)), max(1, round(h * scale))
