"""Core vision data types shared across pipeline stages."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import numpy as np
from PIL import Image, UnidentifiedImageError

from wallpaint.errors import ImageDecodeError
from wallpaint.vision.labels import is_paintable_surface

DetectionShape = Literal["boxes", "segmentation", "unknown"]


@dataclass(frozen=True)
class RawImage:
    """Uploaded image payload plus the metadata probed from it.

    Attributes:
        data: Encoded image bytes exactly as received.
        width, height: Pixel size stored in the file (before EXIF rotation).
        channels: Number of bands (1 for L/P, 3 for RGB, 4 for RGBA/CMYK).
        format: Pillow format name such as "JPEG" or "PNG".
    """

    data: bytes
    width: int
    height: int
    channels: int
    format: str

    @classmethod
    def from_bytes(cls, data: bytes) -> RawImage:
        """Probe `data` with Pillow and capture its metadata."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                return cls(
                    data=bytes(data),
                    width=int(img.width),
                    height=int(img.height),
                    channels=len(img.getbands()),
                    format=str(img.format or ""),
                )
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageDecodeError(f"Cannot read uploaded image: {e}") from e

    @classmethod
    def from_path(cls, path: Path) -> RawImage:
        """Read and probe an image file."""
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise ImageDecodeError(f"Cannot read uploaded image {path}: {e}") from e
        return cls.from_bytes(data)


@dataclass(frozen=True)
class NormalizedImage:
    """Preprocessed RGB image plus its JPEG and base64 encodings."""

    image: Image.Image
    jpeg: bytes
    b64: str

    @property
    def width(self) -> int:
        return int(self.image.width)

    @property
    def height(self) -> int:
        return int(self.image.height)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class Region:
    """Center-form detection box reported by a box detector.

    Attributes:
        label: Class label as returned by the detector.
        x, y: Box center in pixels.
        width, height: Box size in pixels.
        confidence: Detector confidence in [0, 1].
    """

    label: str
    x: float
    y: float
    width: float
    height: float
    confidence: float

    def area(self) -> float:
        """Return the box area in pixels squared."""
        return max(0.0, self.width) * max(0.0, self.height)

    def corners(self) -> tuple[float, float, float, float]:
        """Return (x1, y1, x2, y2) computed from center and size."""
        x1 = self.x - self.width / 2.0
        y1 = self.y - self.height / 2.0
        return x1, y1, x1 + self.width, y1 + self.height

    def clip(self, w: int, h: int) -> tuple[int, int, int, int]:
        """Integer pixel bounds clamped to a `w`x`h` image (x2/y2 exclusive)."""
        x1, y1, x2, y2 = self.corners()
        ix1 = int(max(0, min(w, round(x1))))
        iy1 = int(max(0, min(h, round(y1))))
        ix2 = int(max(0, min(w, round(x2))))
        iy2 = int(max(0, min(h, round(y2))))
        return ix1, iy1, max(ix1, ix2), max(iy1, iy2)

    @property
    def paintable(self) -> bool:
        return is_paintable_surface(self.label)


@dataclass(frozen=True)
class SegmentationResult:
    """Semantic segmentation output: class map plus an encoded per-pixel bitmap."""

    class_map: dict[str, int]
    mask_b64: str

    def paintable_class_id(self) -> int | None:
        """Return the id of the first wall-like class, if any."""
        for label, class_id in self.class_map.items():
            if is_paintable_surface(label):
                return int(class_id)
        return None


@dataclass(frozen=True)
class DetectionResult:
    """Accepted (or synthetic) output of the surface detector orchestrator.

    Exactly one of `regions` / `segmentation` is set for a well-formed result.
    `fallback` marks the synthetic default produced when no model succeeded.
    """

    regions: tuple[Region, ...] | None = None
    segmentation: SegmentationResult | None = None
    fallback: bool = False
    model_id: str | None = None
    confidence: float | None = None

    @property
    def shape(self) -> DetectionShape:
        if self.regions is not None and self.segmentation is None:
            return "boxes"
        if self.segmentation is not None and self.regions is None:
            return "segmentation"
        return "unknown"

    def paintable_regions(self) -> list[Region]:
        return [r for r in (self.regions or ()) if r.paintable]


@dataclass(frozen=True)
class PaintMask:
    """Single-channel mask: 255 marks pixels the synthesizer may repaint, 0 preserves."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 2:
            raise ValueError(f"PaintMask expects a 2-D array, got shape {self.pixels.shape}")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def paint_fraction(self) -> float:
        """Fraction of pixels marked as paint."""
        if self.pixels.size == 0:
            return 0.0
        return float((self.pixels > 0).sum()) / float(self.pixels.size)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels.astype(np.uint8))

    def to_png_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="PNG")
        return buf.getvalue()

    def resized(self, w: int, h: int) -> PaintMask:
        """Nearest-neighbour resize; the result stays strictly binary."""
        if (w, h) == self.size:
            return self
        img = self.to_image().resize((int(w), int(h)), Image.Resampling.NEAREST)
        arr = np.where(np.asarray(img) > 127, 255, 0).astype(np.uint8)
        return PaintMask(arr)
