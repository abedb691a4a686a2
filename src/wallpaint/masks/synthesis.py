"""Turn detections (or a user drawing) into a binary paint mask."""

import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from wallpaint.errors import InputValidationError, MaskDimensionError
from wallpaint.vision.image import decode_b64_image_bytes, open_image_bytes
from wallpaint.vision.types import DetectionResult, PaintMask, SegmentationResult

LOG = logging.getLogger(__name__)

PAINT = 255
PRESERVE = 0

# (x, y, w, h) as fractions of the image size.
DEFAULT_RECT = (0.20, 0.20, 0.60, 0.50)
SEGMENTATION_RECTS = (
    (0.10, 0.15, 0.40, 0.70),
    (0.60, 0.20, 0.30, 0.60),
)


def _blank(width: int, height: int) -> np.ndarray:
    return np.full((int(height), int(width)), PRESERVE, dtype=np.uint8)


def _fill_fraction_rect(
    arr: np.ndarray, rect: tuple[float, float, float, float], width: int, height: int
) -> None:
    fx, fy, fw, fh = rect
    x1 = round(fx * width)
    y1 = round(fy * height)
    x2 = min(width, x1 + round(fw * width))
    y2 = min(height, y1 + round(fh * height))
    arr[y1:y2, x1:x2] = PAINT


def _check_dims(mask: PaintMask, width: int, height: int) -> PaintMask:
    if mask.size != (int(width), int(height)):
        raise MaskDimensionError(
            f"Mask is {mask.width}x{mask.height}, expected {int(width)}x{int(height)}"
        )
    return mask


def default_mask(width: int, height: int) -> PaintMask:
    """Centered rectangle covering 60% x 50% of the image, offset 20% from top-left."""
    arr = _blank(width, height)
    _fill_fraction_rect(arr, DEFAULT_RECT, width, height)
    return PaintMask(arr)


def _boxes_mask(detection: DetectionResult, width: int, height: int) -> PaintMask | None:
    walls = detection.paintable_regions()
    if not walls:
        return None
    arr = _blank(width, height)
    for r in walls:
        x1, y1, x2, y2 = r.clip(width, height)
        arr[y1:y2, x1:x2] = PAINT
    if not arr.any():
        return None
    LOG.info("Mask: %s wall region(s), paint=%.1f%%", len(walls), 100.0 * (arr > 0).mean())
    return PaintMask(arr)


def _decode_class_bitmap(seg: SegmentationResult, width: int, height: int) -> np.ndarray | None:
    try:
        img = open_image_bytes(decode_b64_image_bytes(seg.mask_b64))
    except (ValueError, UnidentifiedImageError, OSError) as e:
        LOG.warning("Mask: segmentation bitmap not decodable (%s), using canonical zones", e)
        return None
    if img.mode not in ("L", "P", "I", "I;16"):
        img = img.convert("L")
    if img.size != (width, height):
        img = img.resize((width, height), Image.Resampling.NEAREST)
    return np.asarray(img)


def _segmentation_mask(detection: DetectionResult, width: int, height: int) -> PaintMask | None:
    seg = detection.segmentation
    if seg is None:
        return None
    wall_id = seg.paintable_class_id()
    if wall_id is None:
        return None

    classes = _decode_class_bitmap(seg, width, height)
    if classes is not None:
        arr = np.where(classes == wall_id, PAINT, PRESERVE).astype(np.uint8)
        if arr.any():
            LOG.info(
                "Mask: segmentation class %s, paint=%.1f%%", wall_id, 100.0 * (arr > 0).mean()
            )
            return PaintMask(arr)
        LOG.warning(
            "Mask: wall class %s present but no wall pixels, using canonical zones", wall_id
        )

    arr = _blank(width, height)
    for rect in SEGMENTATION_RECTS:
        _fill_fraction_rect(arr, rect, width, height)
    return PaintMask(arr)


def synthesize(detection: DetectionResult, width: int, height: int) -> PaintMask:
    """Build the paint mask for a `width`x`height` image from a detection.

    Box results paint the union of wall rectangles. Segmentation results paint
    wall pixels from the decoded class bitmap, or two canonical wall zones when
    the bitmap is unusable. Synthetic fallback detections and anything else
    yield `default_mask`.

    Raises:
        MaskDimensionError: If the produced mask does not match the image size.
    """
    if detection.fallback:
        LOG.info("Mask: synthetic fallback detection, using default rectangle")
        return _check_dims(default_mask(width, height), width, height)

    mask: PaintMask | None = None
    if detection.shape == "boxes":
        mask = _boxes_mask(detection, width, height)
    elif detection.shape == "segmentation":
        mask = _segmentation_mask(detection, width, height)

    if mask is None:
        LOG.warning(
            "Mask: no usable detection (shape=%s), using default rectangle", detection.shape
        )
        mask = default_mask(width, height)
    return _check_dims(mask, width, height)


def synthesize_from_user_mask(mask_b64: str, width: int, height: int) -> PaintMask:
    """Build the paint mask from a caller-supplied drawing.

    The drawing is converted to grayscale, resized to the working image and
    thresholded: bright pixels are painted, dark pixels preserved.

    Raises:
        InputValidationError: If the drawing cannot be decoded.
    """
    try:
        img = open_image_bytes(decode_b64_image_bytes(mask_b64))
    except (ValueError, UnidentifiedImageError, OSError) as e:
        raise InputValidationError(f"Manual mask is not a valid image: {e}") from e

    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        # Transparent background counts as "preserve".
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        img = Image.alpha_composite(bg, rgba)
    gray = img.convert("L")
    if gray.size != (width, height):
        gray = gray.resize((int(width), int(height)), Image.Resampling.NEAREST)
    arr = np.where(np.asarray(gray) >= 128, PAINT, PRESERVE).astype(np.uint8)
    LOG.info("Mask: manual drawing, paint=%.1f%%", 100.0 * (arr > 0).mean())
    return _check_dims(PaintMask(arr), width, height)
