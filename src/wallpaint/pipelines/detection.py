"""Surface detection over an ordered chain of model/threshold attempts.

Each enabled model is tried at its primary then its fallback confidence. The
first attempt whose filtered output still contains a wall wins; remote
failures are logged and skipped. When every attempt is exhausted a synthetic
wall region is returned so downstream stages always receive a usable result.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from time import perf_counter
from typing import Literal, Protocol

import httpx

from wallpaint.config import ConfidenceProfile, ConfigStore, DetectionModel
from wallpaint.errors import DetectorError
from wallpaint.vision.types import DetectionResult, NormalizedImage, Region

LOG = logging.getLogger(__name__)

ThresholdStage = Literal["primary", "fallback"]
_STAGES: tuple[ThresholdStage, ...] = ("primary", "fallback")

# Synthetic region, as fractions of the image: same pixels as the default mask.
FALLBACK_CENTER = (0.50, 0.45)
FALLBACK_SIZE = (0.60, 0.50)


class SupportsSurfaceDetection(Protocol):
    """Protocol for a remote surface detector (box or segmentation output)."""

    def infer(
        self,
        model: DetectionModel,
        image_b64: str,
        *,
        confidence: float,
        overlap: float,
    ) -> DetectionResult:
        """Run `model` on a base64 image."""
        ...


@dataclass(frozen=True, slots=True)
class Attempt:
    """One step of the detection chain."""

    model: DetectionModel
    stage: ThresholdStage

    def confidence(self, profile: ConfidenceProfile) -> float:
        th = profile.thresholds_for(self.model.model_id)
        return th.primary if self.stage == "primary" else th.fallback


def build_attempts(models: Sequence[DetectionModel]) -> tuple[Attempt, ...]:
    """Expand enabled models into (model, stage) attempts in configured order."""
    return tuple(Attempt(model=m, stage=s) for m in models if m.enabled for s in _STAGES)


def filter_small_walls(
    regions: tuple[Region, ...], *, image_w: int, image_h: int, min_area_fraction: float
) -> tuple[Region, ...]:
    """Drop wall regions smaller than `min_area_fraction` of the image.

    Non-wall regions pass through unchanged.
    """
    min_area = float(min_area_fraction) * float(image_w * image_h)
    return tuple(r for r in regions if not r.paintable or r.area() >= min_area)


def accept(result: DetectionResult) -> bool:
    """Return True when a (filtered) result contains a paintable surface."""
    if result.shape == "boxes":
        return bool(result.paintable_regions())
    if result.shape == "segmentation" and result.segmentation is not None:
        return result.segmentation.paintable_class_id() is not None
    return False


def fallback_detection(image_w: int, image_h: int) -> DetectionResult:
    """Synthetic single-wall detection used when no attempt succeeds."""
    cx, cy = FALLBACK_CENTER
    fw, fh = FALLBACK_SIZE
    region = Region(
        label="wall",
        x=cx * image_w,
        y=cy * image_h,
        width=fw * image_w,
        height=fh * image_h,
        confidence=0.0,
    )
    return DetectionResult(regions=(region,), fallback=True)


class SurfaceDetector:
    """Run the detection chain against a remote detector.

    Attempts run strictly one after another; the configuration snapshot is
    re-read before each one so threshold updates apply to the next attempt.
    """

    def __init__(self, store: ConfigStore, client: SupportsSurfaceDetection) -> None:
        self.store = store
        self.client = client

    def detect(self, image: NormalizedImage) -> DetectionResult:
        w, h = image.size
        attempts = build_attempts(self.store.snapshot().models)
        if not attempts:
            LOG.info("Detection: no enabled models, using fallback region")
            return fallback_detection(w, h)

        for i, attempt in enumerate(attempts, start=1):
            profile = self.store.snapshot().confidence
            confidence = attempt.confidence(profile)
            model_id = attempt.model.model_id
            t0 = perf_counter()
            try:
                raw = self.client.infer(
                    attempt.model,
                    image.b64,
                    confidence=confidence,
                    overlap=profile.overlap,
                )
            except (httpx.HTTPError, DetectorError) as e:
                LOG.warning(
                    "Detection attempt %s/%s failed: model=%s stage=%s conf=%.2f error=%s: %s",
                    i,
                    len(attempts),
                    model_id,
                    attempt.stage,
                    confidence,
                    type(e).__name__,
                    e,
                )
                continue

            result = raw
            if raw.shape == "boxes" and raw.regions is not None:
                kept = filter_small_walls(
                    raw.regions,
                    image_w=w,
                    image_h=h,
                    min_area_fraction=profile.min_area_fraction,
                )
                result = replace(raw, regions=kept)
                LOG.info(
                    "Detection attempt %s/%s: model=%s stage=%s conf=%.2f regions=%s kept=%s "
                    "walls=%s took=%.2fs",
                    i,
                    len(attempts),
                    model_id,
                    attempt.stage,
                    confidence,
                    len(raw.regions),
                    len(kept),
                    len(result.paintable_regions()),
                    perf_counter() - t0,
                )
            else:
                LOG.info(
                    "Detection attempt %s/%s: model=%s stage=%s conf=%.2f shape=%s took=%.2fs",
                    i,
                    len(attempts),
                    model_id,
                    attempt.stage,
                    confidence,
                    raw.shape,
                    perf_counter() - t0,
                )

            if accept(result):
                return replace(result, fallback=False, model_id=model_id, confidence=confidence)

        LOG.warning("Detection: %s attempts exhausted, using fallback region", len(attempts))
        return fallback_detection(w, h)
