"""Upload normalization ahead of surface detection.

Orientation is fixed from EXIF, extra channels are dropped, out-of-range sizes
are brought back into a detector-friendly box, and the result is re-encoded as
a high-quality JPEG with a base64 copy for transport.
"""

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from wallpaint.errors import ImageDecodeError
from wallpaint.vision.image import b64encode, fit_within, img_to_jpeg_bytes
from wallpaint.vision.types import NormalizedImage, RawImage

LOG = logging.getLogger(__name__)

MIN_SIDE = 320
MAX_SIDE = 1536
TARGET_BOX = 1024
JPEG_QUALITY = 95


def _needs_resize(w: int, h: int) -> bool:
    return not (MIN_SIDE <= w <= MAX_SIDE and MIN_SIDE <= h <= MAX_SIDE)


def prepare(raw: RawImage) -> NormalizedImage:
    """Normalize an uploaded image for detector consumption.

    Args:
        raw: Uploaded image payload.

    Returns:
        RGB image, its JPEG encoding (quality 95) and the base64 of that JPEG.

    Raises:
        ImageDecodeError: If the payload cannot be decoded. This is fatal for
            the request; nothing downstream can run without a normalized image.
    """
    try:
        with Image.open(io.BytesIO(raw.data)) as src:
            img = ImageOps.exif_transpose(src)
            img = img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode uploaded image: {e}") from e

    w, h = img.size
    if _needs_resize(w, h):
        new_w, new_h = fit_within(w, h, TARGET_BOX)
        if (new_w, new_h) != (w, h):
            img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
        LOG.info(
            "Preprocess: %sx%s outside [%s, %s], now %sx%s", w, h, MIN_SIDE, MAX_SIDE, *img.size
        )

    jpeg = img_to_jpeg_bytes(img, quality=JPEG_QUALITY)
    return NormalizedImage(image=img, jpeg=jpeg, b64=b64encode(jpeg))
