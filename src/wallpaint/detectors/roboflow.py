"""Roboflow hosted-inference client for wall detection and segmentation."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from wallpaint.config import DEFAULT_ROBOFLOW_KEY_ENV, DetectionModel
from wallpaint.errors import DetectorError
from wallpaint.vision.types import DetectionResult, Region, SegmentationResult

LOG = logging.getLogger(__name__)

PLACEHOLDER_KEYS: Final[frozenset[str]] = frozenset({"your-roboflow-api-key-here"})


class _Prediction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    label: str = Field(alias="class")
    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class _DetectResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    predictions: list[_Prediction]


class _SegmentResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    class_map: dict[str, int]
    segmentation_mask: str = Field(min_length=1)

    @field_validator("class_map", mode="before")
    @classmethod
    def _invert_id_keyed_map(cls, v: Any) -> Any:
        # Hosted semantic models report {"<id>": "<label>"}; store label -> id.
        if isinstance(v, dict) and v and all(str(k).isdigit() for k in v):
            return {str(label): int(k) for k, label in v.items()}
        return v


@dataclass(slots=True)
class RoboflowDetector:
    """Call Roboflow hosted models.

    Attributes:
        timeout_s: Per-request timeout; timeouts surface as `httpx.TimeoutException`.
        api_key_env: Name of the environment variable holding the API key.
        client_factory: Builds the `httpx.Client` (override in tests).
    """

    timeout_s: float = 30.0
    api_key_env: str = DEFAULT_ROBOFLOW_KEY_ENV
    client_factory: Callable[..., httpx.Client] = httpx.Client

    def get_api_key(self) -> str:
        """Return the API key from the configured environment variable.

        Raises:
            DetectorError: If the key is unset or still the template placeholder.
        """
        api_key = os.getenv(self.api_key_env, "").strip()
        if not api_key or api_key in PLACEHOLDER_KEYS:
            raise DetectorError(f"{self.api_key_env} environment variable is not set")
        return api_key

    @staticmethod
    def build_url(model: DetectionModel) -> str:
        return f"{model.endpoint.rstrip('/')}/{model.model_id.strip('/')}"

    def infer(
        self,
        model: DetectionModel,
        image_b64: str,
        *,
        confidence: float,
        overlap: float,
    ) -> DetectionResult:
        """Run `model` on a base64 JPEG.

        Args:
            model: Model to call.
            image_b64: Base64-encoded image (no data-URL prefix).
            confidence: Minimum confidence in [0, 1].
            overlap: Overlap threshold in [0, 1].

        Returns:
            A box-form or segmentation-form `DetectionResult` (never a fallback).

        Raises:
            DetectorError: Missing key or malformed response.
            httpx.HTTPError: Transport failure, timeout or non-2xx status.
        """
        params = {
            "api_key": self.get_api_key(),
            "confidence": round(confidence * 100),
            "overlap": round(overlap * 100),
        }
        with self.client_factory(timeout=self.timeout_s) as client:
            resp = client.post(
                self.build_url(model),
                params=params,
                content=image_b64.encode("ascii"),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            resp.raise_for_status()
            try:
                payload = resp.json()
            except ValueError as e:
                raise DetectorError(f"Non-JSON response from {model.model_id}") from e

        if model.kind == "segmentation":
            return self._parse_segmentation(model, payload, confidence)
        return self._parse_boxes(model, payload, confidence)

    @staticmethod
    def _parse_boxes(model: DetectionModel, payload: Any, confidence: float) -> DetectionResult:
        try:
            parsed = _DetectResponse.model_validate(payload)
        except ValidationError as e:
            raise DetectorError(f"Malformed detection response from {model.model_id}") from e
        regions = tuple(
            Region(
                label=p.label,
                x=p.x,
                y=p.y,
                width=p.width,
                height=p.height,
                confidence=p.confidence,
            )
            for p in parsed.predictions
        )
        LOG.debug("Roboflow %s returned %s predictions", model.model_id, len(regions))
        return DetectionResult(regions=regions, model_id=model.model_id, confidence=confidence)

    @staticmethod
    def _parse_segmentation(
        model: DetectionModel, payload: Any, confidence: float
    ) -> DetectionResult:
        try:
            parsed = _SegmentResponse.model_validate(payload)
        except ValidationError as e:
            raise DetectorError(f"Malformed segmentation response from {model.model_id}") from e
        LOG.debug("Roboflow %s returned classes %s", model.model_id, sorted(parsed.class_map))
        return DetectionResult(
            segmentation=SegmentationResult(
                class_map=dict(parsed.class_map),
                mask_b64=parsed.segmentation_mask,
            ),
            model_id=model.model_id,
            confidence=confidence,
        )
