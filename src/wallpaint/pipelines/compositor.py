"""Two-phase inpainting: plain color fill, then an optional pattern overlay.

Phase 2 reuses the exact mask bytes sent in phase 1 so a pattern can never
reach pixels outside the area painted in phase 1. Every synthesizer failure
degrades to the best artifact already available (the original image or the
plain result) with an explanatory message.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Protocol

import httpx
from PIL import Image

from wallpaint.errors import MaskDimensionError, SynthesisError
from wallpaint.storage.artifacts import ArtifactStore
from wallpaint.synthesis.getimg import SynthesisOutput
from wallpaint.synthesis.patterns import (
    GenerationProfile,
    Pattern,
    pattern_profile,
    plain_profile,
)
from wallpaint.vision.image import (
    b64encode,
    img_to_jpeg_bytes,
    open_image_bytes,
    sniff_extension,
)
from wallpaint.vision.types import NormalizedImage, PaintMask

LOG = logging.getLogger(__name__)

MSG_NOT_CONFIGURED = "Development mode - API key not configured"
MSG_UNAVAILABLE = "API unavailable - showing original image"
MSG_PLAIN_OK = "Paint visualization successful"
MSG_PATTERN_OK = "Paint visualization with pattern successful"
MSG_PATTERN_FAILED = "Pattern overlay failed - showing plain color result"

_RECOVERABLE = (httpx.HTTPError, SynthesisError, OSError, ValueError)


class SupportsInpaint(Protocol):
    """Protocol for an inpainting image synthesizer."""

    def is_configured(self) -> bool:
        """Whether credentials are available."""
        ...

    def inpaint(
        self,
        image_b64: str,
        mask_b64: str,
        profile: GenerationProfile,
        *,
        width: int,
        height: int,
        seed: int | None = None,
    ) -> SynthesisOutput:
        """Repaint the masked area of an image."""
        ...

    def fetch(self, url: str) -> bytes:
        """Download a generated image."""
        ...


@dataclass(frozen=True)
class PaintResult:
    """Compositor output.

    Attributes:
        url: Best available image (pattern, else plain, else original).
        plain_url: Phase-1 image, or the original when phase 1 did not run.
        pattern_url: Phase-2 image; None for "plain" or when phase 2 failed.
        message: Human-readable outcome.
        degraded: True when a synthesizer failure forced a fallback.
    """

    url: str
    plain_url: str
    pattern_url: str | None
    message: str
    degraded: bool = False
    generation_id: str | None = None
    generation_time: float | None = None


def synthesis_size(w: int, h: int, max_side: int) -> tuple[int, int]:
    """Target size for the synthesizer: fits `max_side`, keeps aspect, even sides."""
    if w >= h:
        new_w = min(max_side, w)
        new_h = round(new_w * h / w)
    else:
        new_h = min(max_side, h)
        new_w = round(new_h * w / h)
    return max(2, new_w // 2 * 2), max(2, new_h // 2 * 2)


class PaintCompositor:
    """Drive the image synthesizer over a fixed mask."""

    def __init__(
        self,
        inpainter: SupportsInpaint,
        artifacts: ArtifactStore,
        *,
        max_side: int = 1024,
        seed: int | None = None,
    ) -> None:
        self.inpainter = inpainter
        self.artifacts = artifacts
        self.max_side = int(max_side)
        self.seed = seed

    def _materialize(self, out: SynthesisOutput) -> Path:
        if out.image_bytes is not None:
            data = out.image_bytes
        elif out.url:
            LOG.info("Downloading generated image from %s", out.url)
            data = self.inpainter.fetch(out.url)
        else:
            raise SynthesisError("Synthesizer returned neither image data nor URL")
        return self.artifacts.save_bytes(data, "generated", sniff_extension(data))

    def apply_color(
        self,
        image: NormalizedImage,
        mask: PaintMask,
        color_hex: str,
        color_name: str,
        pattern: Pattern = "plain",
        *,
        original_url: str,
    ) -> PaintResult:
        """Paint the masked area `color_name`, then overlay `pattern` if requested.

        Args:
            image: Working image (same size as `mask`).
            mask: Paint mask; 255 marks pixels that may change.
            color_hex: Requested color as `#RRGGBB`.
            color_name: Catalog color name used in prompts.
            pattern: Pattern tag; "plain" skips phase 2.
            original_url: Public URL of the untouched image, used on fallback.

        Raises:
            MaskDimensionError: If `mask` and `image` sizes differ.
        """
        if not self.inpainter.is_configured():
            LOG.info("Synthesizer not configured, returning original image")
            return PaintResult(
                url=original_url,
                plain_url=original_url,
                pattern_url=None,
                message=MSG_NOT_CONFIGURED,
                degraded=True,
            )

        if mask.size != image.size:
            raise MaskDimensionError(
                f"Mask {mask.width}x{mask.height} does not match image {image.width}x{image.height}"
            )

        tw, th = synthesis_size(image.width, image.height, self.max_side)
        resized_img = image.image.resize((tw, th), Image.Resampling.LANCZOS)
        resized_mask = mask.resized(tw, th)
        if resized_mask.size != resized_img.size:
            raise MaskDimensionError("Resized mask and image diverged")

        temp: list[Path | None] = []
        try:
            # Phase 1: plain color.
            t0 = perf_counter()
            try:
                img_path = self.artifacts.save_bytes(
                    img_to_jpeg_bytes(resized_img, quality=90), "resized-image", "jpg"
                )
                temp.append(img_path)
                mask_path = self.artifacts.save_bytes(
                    resized_mask.to_png_bytes(), "resized-mask", "png"
                )
                temp.append(mask_path)
                image_b64 = b64encode(img_path.read_bytes())
                mask_b64 = b64encode(mask_path.read_bytes())
                LOG.info(
                    "Synthesis input: %sx%s image=%sKB mask=%sKB paint=%.1f%%",
                    tw,
                    th,
                    round(len(image_b64) / 1024),
                    round(len(mask_b64) / 1024),
                    100.0 * resized_mask.paint_fraction(),
                )
                plain_out = self.inpainter.inpaint(
                    image_b64,
                    mask_b64,
                    plain_profile(color_name, color_hex),
                    width=tw,
                    height=th,
                    seed=self.seed,
                )
                plain_path = self._materialize(plain_out)
            except _RECOVERABLE as e:
                LOG.warning(
                    "Phase 1 (plain) failed, falling back to original: %s: %s",
                    type(e).__name__,
                    e,
                )
                return PaintResult(
                    url=original_url,
                    plain_url=original_url,
                    pattern_url=None,
                    message=MSG_UNAVAILABLE,
                    degraded=True,
                )
            plain_url = self.artifacts.url_for(plain_path)
            LOG.info("Phase 1 (plain) done: %s took=%.2fs", plain_url, perf_counter() - t0)

            if pattern == "plain":
                return PaintResult(
                    url=plain_url,
                    plain_url=plain_url,
                    pattern_url=None,
                    message=MSG_PLAIN_OK,
                    generation_id=plain_out.generation_id,
                    generation_time=plain_out.generation_time,
                )

            # Phase 2: pattern over the phase-1 output with the phase-1 mask.
            t1 = perf_counter()
            try:
                base = open_image_bytes(plain_path.read_bytes()).convert("RGB")
                if base.size != (tw, th):
                    base = base.resize((tw, th), Image.Resampling.LANCZOS)
                pattern_out = self.inpainter.inpaint(
                    b64encode(img_to_jpeg_bytes(base, quality=90)),
                    mask_b64,
                    pattern_profile(pattern, color_name, color_hex),
                    width=tw,
                    height=th,
                    seed=self.seed,
                )
                pattern_path = self._materialize(pattern_out)
            except _RECOVERABLE as e:
                LOG.warning(
                    "Phase 2 (%s) failed, keeping plain result: %s: %s",
                    pattern,
                    type(e).__name__,
                    e,
                )
                return PaintResult(
                    url=plain_url,
                    plain_url=plain_url,
                    pattern_url=None,
                    message=MSG_PATTERN_FAILED,
                    degraded=True,
                    generation_id=plain_out.generation_id,
                    generation_time=plain_out.generation_time,
                )
            pattern_url = self.artifacts.url_for(pattern_path)
            LOG.info("Phase 2 (%s) done: %s took=%.2fs", pattern, pattern_url, perf_counter() - t1)
            return PaintResult(
                url=pattern_url,
                plain_url=plain_url,
                pattern_url=pattern_url,
                message=MSG_PATTERN_OK,
                generation_id=pattern_out.generation_id,
                generation_time=pattern_out.generation_time,
            )
        finally:
            self.artifacts.remove(temp)
