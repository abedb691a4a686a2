"""Orchestrator for the upload → detection → mask → inpainting pipeline."""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Final, Literal

from wallpaint.colors.catalog import ColorSpec, SupportsCatalog, load_catalog
from wallpaint.colors.recommend import hex_to_hsl, recommend
from wallpaint.config import ConfidenceProfile, ConfigStore, Settings
from wallpaint.detectors.roboflow import RoboflowDetector
from wallpaint.errors import InputValidationError
from wallpaint.masks.synthesis import synthesize, synthesize_from_user_mask
from wallpaint.pipelines.compositor import PaintCompositor, SupportsInpaint
from wallpaint.pipelines.detection import SupportsSurfaceDetection, SurfaceDetector
from wallpaint.preprocessing.normalize import prepare
from wallpaint.storage.artifacts import ArtifactStore
from wallpaint.synthesis.getimg import GetImgInpainter
from wallpaint.synthesis.patterns import Pattern, parse_pattern
from wallpaint.vision.types import DetectionResult, PaintMask, RawImage

LOG = logging.getLogger(__name__)

MaskingMethod = Literal["ai", "manual"]
ALLOWED_MASKING_METHODS: Final[set[str]] = {"ai", "manual"}


@dataclass(frozen=True)
class VisualizationResult:
    """Final pipeline output handed back to the calling application."""

    url: str
    plain_url: str
    pattern_url: str | None
    message: str
    recommendations: list[ColorSpec] = field(default_factory=list)
    pattern: Pattern = "plain"
    masking_method: MaskingMethod = "ai"
    detected_walls: int = 0
    detected_surfaces: int = 0
    fallback_detection: bool = False
    degraded: bool = False
    generation_id: str | None = None
    generation_time: float | None = None

    @property
    def is_manual_mask(self) -> bool:
        return self.masking_method == "manual"

    @property
    def has_both_versions(self) -> bool:
        return bool(self.plain_url and self.pattern_url)


def _validate_color(color: ColorSpec | None) -> ColorSpec:
    if color is None:
        raise InputValidationError("Color selection is required")
    try:
        hex_to_hsl(color.hex_code)
    except ValueError as e:
        raise InputValidationError(f"Invalid color hex code: {color.hex_code!r}") from e
    return color


def _validate_masking(method: str | None, manual_mask: str | None) -> MaskingMethod:
    if not method:
        raise InputValidationError("Masking method is required")
    if method not in ALLOWED_MASKING_METHODS:
        raise InputValidationError(
            f"Unsupported masking method: {method!r}. Allowed: {sorted(ALLOWED_MASKING_METHODS)}"
        )
    if method == "manual" and not (manual_mask or "").strip():
        raise InputValidationError("Manual mask is required when using manual masking")
    return "manual" if method == "manual" else "ai"


class PaintVisualizer:
    """Entry point used by the surrounding application.

    Collaborators are injectable; defaults are built from `settings`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: ConfigStore | None = None,
        detector_client: SupportsSurfaceDetection | None = None,
        inpainter: SupportsInpaint | None = None,
        catalog: SupportsCatalog | None = None,
        artifacts: ArtifactStore | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or ConfigStore(self.settings.detection)
        if detector_client is None:
            snap = self.store.snapshot()
            detector_client = RoboflowDetector(
                timeout_s=snap.timeout_s, api_key_env=snap.api_key_env
            )
        self.detector = SurfaceDetector(self.store, detector_client)

        syn = self.settings.synthesis
        if inpainter is None:
            inpainter = GetImgInpainter(
                base_url=syn.base_url,
                model=syn.model,
                timeout_s=syn.timeout_s,
                api_key_env=syn.api_key_env,
            )
        self.artifacts = artifacts or ArtifactStore(
            self.settings.storage.root, self.settings.storage.public_prefix
        )
        self.compositor = PaintCompositor(
            inpainter, self.artifacts, max_side=syn.max_side, seed=syn.seed
        )
        self.catalog: SupportsCatalog = (
            catalog if catalog is not None else load_catalog(self.settings.catalog_path)
        )
        self.rng = rng or random.Random()

    def update_confidence_profile(self, partial: Mapping[str, Any]) -> ConfidenceProfile:
        """Tune detection thresholds without restarting the service."""
        return self.store.update_confidence(partial)

    def recommend(self, color_hex: str) -> list[ColorSpec]:
        """Complementary/analogous suggestions from the configured catalog."""
        return recommend(color_hex, self.catalog.all(), rng=self.rng)

    def visualize(
        self,
        image: RawImage,
        color: ColorSpec | None,
        pattern: str | None = "plain",
        masking_method: str | None = "ai",
        manual_mask: str | None = None,
    ) -> VisualizationResult:
        """Preview `image` with its walls painted `color` in `pattern`.

        Raises:
            InputValidationError: Missing color, unknown pattern or masking
                method, or a missing/undecodable manual mask.
            ImageDecodeError: The upload cannot be decoded.
        """
        color = _validate_color(color)
        tag = parse_pattern(pattern)
        method = _validate_masking(masking_method, manual_mask)
        t0 = perf_counter()

        normalized = prepare(image)
        w, h = normalized.size
        LOG.info(
            "Step 1/4 preprocess: %sx%s -> %sx%s color=%s pattern=%s masking=%s",
            image.width,
            image.height,
            w,
            h,
            color.name,
            tag,
            method,
        )

        detection: DetectionResult | None = None
        mask: PaintMask
        if method == "manual":
            mask = synthesize_from_user_mask(manual_mask or "", w, h)
            LOG.info("Step 2/4 detection: skipped (manual mask)")
        else:
            detection = self.detector.detect(normalized)
            LOG.info(
                "Step 2/4 detection: model=%s shape=%s fallback=%s",
                detection.model_id,
                detection.shape,
                detection.fallback,
            )
            mask = synthesize(detection, w, h)
        LOG.info(
            "Step 3/4 mask: %sx%s paint=%.1f%%",
            mask.width,
            mask.height,
            100.0 * mask.paint_fraction(),
        )

        original_path = self.artifacts.save_bytes(normalized.jpeg, "original", "jpg")
        paint = self.compositor.apply_color(
            normalized,
            mask,
            color.hex_code,
            color.name,
            tag,
            original_url=self.artifacts.url_for(original_path),
        )
        LOG.info("Step 4/4 paint: %s (%s)", paint.url, paint.message)

        regions = (detection.regions or ()) if detection is not None else ()
        walls = detection.paintable_regions() if detection is not None else []
        result = VisualizationResult(
            url=paint.url,
            plain_url=paint.plain_url,
            pattern_url=paint.pattern_url,
            message=paint.message,
            recommendations=self.recommend(color.hex_code),
            pattern=tag,
            masking_method=method,
            detected_walls=0 if detection is None or detection.fallback else len(walls),
            detected_surfaces=0 if detection is None or detection.fallback else len(regions),
            fallback_detection=bool(detection is not None and detection.fallback),
            degraded=paint.degraded,
            generation_id=paint.generation_id,
            generation_time=paint.generation_time,
        )
        LOG.info("Visualization done in %.2fs", perf_counter() - t0)
        return result
