"""Configuration for the wall-paint visualization pipeline.

Settings are plain frozen dataclasses. They are loaded from an optional YAML
file (validated with pydantic) with environment overrides for deployment
specific values. Detection thresholds live behind a `ConfigStore` so they can
be tuned at runtime while requests are in flight.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wallpaint.errors import InputValidationError

LOG = logging.getLogger(__name__)

DetectionKind = Literal["box-detection", "segmentation"]

DEFAULT_DETECT_ENDPOINT: Final[str] = "https://detect.roboflow.com"
DEFAULT_SEGMENT_ENDPOINT: Final[str] = "https://segment.roboflow.com"
DEFAULT_GETIMG_BASE: Final[str] = "https://api.getimg.ai/v1"
DEFAULT_ROBOFLOW_KEY_ENV: Final[str] = "ROBOFLOW_API_KEY"
DEFAULT_GETIMG_KEY_ENV: Final[str] = "GETIMG_API_KEY"
UPLOADS_DIR_ENV: Final[str] = "WALLPAINT_UPLOADS_DIR"


@dataclass(frozen=True, slots=True)
class DetectionModel:
    """A remote surface detector.

    Attributes:
        model_id: Hosted model path, e.g. "furniture-detection-2kump/1".
        endpoint: Base URL of the inference host.
        kind: Output shape the model produces.
        enabled: Disabled models are skipped by the orchestrator.
    """

    model_id: str
    endpoint: str
    kind: DetectionKind = "box-detection"
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class ModelThresholds:
    """Confidence thresholds tried in order: primary first, then fallback."""

    primary: float = 0.40
    fallback: float = 0.20


@dataclass(frozen=True, slots=True)
class ConfidenceProfile:
    """Detection thresholds.

    Attributes:
        default: Thresholds for models without a dedicated entry.
        per_model: Overrides keyed by model id.
        overlap: Overlap (NMS) threshold forwarded to the detector.
        min_area_fraction: Wall regions smaller than this fraction of the image
            area are discarded.
    """

    default: ModelThresholds = ModelThresholds()
    per_model: Mapping[str, ModelThresholds] = field(default_factory=dict)
    overlap: float = 0.30
    min_area_fraction: float = 0.02

    def thresholds_for(self, model_id: str) -> ModelThresholds:
        return self.per_model.get(model_id, self.default)


DEFAULT_MODELS: Final[tuple[DetectionModel, ...]] = (
    DetectionModel("furniture-detection-2kump/1", DEFAULT_DETECT_ENDPOINT, "box-detection"),
    DetectionModel(
        "interior-wall-segmentation/1", DEFAULT_SEGMENT_ENDPOINT, "segmentation", enabled=False
    ),
)


@dataclass(frozen=True, slots=True)
class DetectionSettings:
    """Detector model list, thresholds and transport settings."""

    models: tuple[DetectionModel, ...] = DEFAULT_MODELS
    confidence: ConfidenceProfile = ConfidenceProfile()
    timeout_s: float = 30.0
    api_key_env: str = DEFAULT_ROBOFLOW_KEY_ENV


@dataclass(frozen=True, slots=True)
class SynthesisSettings:
    """Image synthesizer (inpainting) settings."""

    base_url: str = DEFAULT_GETIMG_BASE
    model: str = "stable-diffusion-xl-v1-0"
    api_key_env: str = DEFAULT_GETIMG_KEY_ENV
    timeout_s: float = 60.0
    max_side: int = 1024
    seed: int | None = None


@dataclass(frozen=True, slots=True)
class StorageSettings:
    """Shared directory for generated and temporary image artifacts."""

    root: Path = Path("uploads")
    public_prefix: str = "/uploads"


@dataclass(frozen=True, slots=True)
class Settings:
    """Top-level configuration."""

    detection: DetectionSettings = DetectionSettings()
    synthesis: SynthesisSettings = SynthesisSettings()
    storage: StorageSettings = StorageSettings()
    catalog_path: Path | None = None


# ---------------------------------------------------------------------------
# File schema
# ---------------------------------------------------------------------------


class _ThresholdsFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    primary: float = Field(default=0.40, ge=0.0, le=1.0)
    fallback: float = Field(default=0.20, ge=0.0, le=1.0)


class _ModelFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    endpoint: str = DEFAULT_DETECT_ENDPOINT
    kind: DetectionKind = "box-detection"
    enabled: bool = True
    thresholds: _ThresholdsFile | None = None


class _DetectionFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    models: list[_ModelFile] | None = None
    default_thresholds: _ThresholdsFile = Field(default_factory=_ThresholdsFile)
    overlap: float = Field(default=0.30, ge=0.0, le=1.0)
    min_area_fraction: float = Field(default=0.02, ge=0.0, le=1.0)
    timeout_s: float = Field(default=30.0, gt=0.0)
    api_key_env: str = DEFAULT_ROBOFLOW_KEY_ENV


class _SynthesisFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = DEFAULT_GETIMG_BASE
    model: str = "stable-diffusion-xl-v1-0"
    api_key_env: str = DEFAULT_GETIMG_KEY_ENV
    timeout_s: float = Field(default=60.0, gt=0.0)
    max_side: int = Field(default=1024, ge=64)
    seed: int | None = None


class _StorageFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    root: str = "uploads"
    public_prefix: str = "/uploads"


class _SettingsFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    detection: _DetectionFile = Field(default_factory=_DetectionFile)
    synthesis: _SynthesisFile = Field(default_factory=_SynthesisFile)
    storage: _StorageFile = Field(default_factory=_StorageFile)
    catalog_path: str | None = None


class _ThresholdsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    primary: float | None = Field(default=None, ge=0.0, le=1.0)
    fallback: float | None = Field(default=None, ge=0.0, le=1.0)


class ConfidenceUpdate(BaseModel):
    """Partial update of the confidence profile; omitted fields keep their value."""

    model_config = ConfigDict(extra="forbid")

    default: _ThresholdsUpdate | None = None
    models: dict[str, _ThresholdsUpdate] = Field(default_factory=dict)
    overlap: float | None = Field(default=None, ge=0.0, le=1.0)
    min_area_fraction: float | None = Field(default=None, ge=0.0, le=1.0)


def _merge_thresholds(base: ModelThresholds, upd: _ThresholdsUpdate) -> ModelThresholds:
    return ModelThresholds(
        primary=base.primary if upd.primary is None else float(upd.primary),
        fallback=base.fallback if upd.fallback is None else float(upd.fallback),
    )


def apply_confidence_update(
    profile: ConfidenceProfile, partial: Mapping[str, Any]
) -> ConfidenceProfile:
    """Return a new profile with `partial` merged over `profile`.

    Raises:
        InputValidationError: If `partial` has unknown keys or out-of-range values.
    """
    try:
        upd = ConfidenceUpdate.model_validate(dict(partial))
    except ValidationError as e:
        raise InputValidationError(f"Invalid confidence update: {e}") from e

    default = profile.default
    if upd.default is not None:
        default = _merge_thresholds(default, upd.default)

    per_model = dict(profile.per_model)
    for model_id, mu in upd.models.items():
        per_model[model_id] = _merge_thresholds(per_model.get(model_id, default), mu)

    return ConfidenceProfile(
        default=default,
        per_model=per_model,
        overlap=profile.overlap if upd.overlap is None else float(upd.overlap),
        min_area_fraction=(
            profile.min_area_fraction
            if upd.min_area_fraction is None
            else float(upd.min_area_fraction)
        ),
    )


class ConfigStore:
    """Holds the current `DetectionSettings` snapshot.

    Readers take a snapshot per detection attempt; updates build a new frozen
    snapshot and swap the reference under a lock.
    """

    def __init__(self, settings: DetectionSettings | None = None) -> None:
        self._lock = threading.Lock()
        self._settings = settings or DetectionSettings()

    def snapshot(self) -> DetectionSettings:
        with self._lock:
            return self._settings

    def update_confidence(self, partial: Mapping[str, Any]) -> ConfidenceProfile:
        """Merge `partial` into the confidence profile and publish it."""
        with self._lock:
            profile = apply_confidence_update(self._settings.confidence, partial)
            self._settings = replace(self._settings, confidence=profile)
        LOG.info(
            "Confidence profile updated: default=%s overlap=%.2f min_area_fraction=%.3f models=%s",
            profile.default,
            profile.overlap,
            profile.min_area_fraction,
            sorted(profile.per_model),
        )
        return profile


def _settings_from_file(doc: _SettingsFile) -> Settings:
    det = doc.detection
    default = ModelThresholds(det.default_thresholds.primary, det.default_thresholds.fallback)
    models = DEFAULT_MODELS
    per_model: dict[str, ModelThresholds] = {}
    if det.models is not None:
        models = tuple(
            DetectionModel(model_id=m.id, endpoint=m.endpoint, kind=m.kind, enabled=m.enabled)
            for m in det.models
        )
        for m in det.models:
            if m.thresholds is not None:
                per_model[m.id] = ModelThresholds(m.thresholds.primary, m.thresholds.fallback)

    syn = doc.synthesis
    return Settings(
        detection=DetectionSettings(
            models=models,
            confidence=ConfidenceProfile(
                default=default,
                per_model=per_model,
                overlap=det.overlap,
                min_area_fraction=det.min_area_fraction,
            ),
            timeout_s=det.timeout_s,
            api_key_env=det.api_key_env,
        ),
        synthesis=SynthesisSettings(
            base_url=syn.base_url,
            model=syn.model,
            api_key_env=syn.api_key_env,
            timeout_s=syn.timeout_s,
            max_side=syn.max_side,
            seed=syn.seed,
        ),
        storage=StorageSettings(
            root=Path(doc.storage.root),
            public_prefix=doc.storage.public_prefix,
        ),
        catalog_path=Path(doc.catalog_path) if doc.catalog_path else None,
    )


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from a YAML file (optional) and apply environment overrides.

    Raises:
        RuntimeError: If the file exists but does not match the settings schema.
    """
    raw: dict[str, Any] = {}
    if path is not None:
        loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise RuntimeError(f"Settings file must contain a mapping: {path}")
            raw = loaded
    try:
        doc = _SettingsFile.model_validate(raw)
    except ValidationError as e:
        raise RuntimeError(f"Invalid settings file: {path}") from e

    settings = _settings_from_file(doc)

    uploads = os.environ.get(UPLOADS_DIR_ENV)
    if uploads:
        settings = replace(settings, storage=replace(settings.storage, root=Path(uploads)))

    LOG.info(
        "Settings loaded: source=%s models=%s storage=%s",
        path or "<defaults>",
        [m.model_id for m in settings.detection.models if m.enabled],
        settings.storage.root,
    )
    return settings
