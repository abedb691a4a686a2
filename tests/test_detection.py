from __future__ import annotations

import httpx
import pytest
from PIL import Image

from wallpaint.config import (
    ConfidenceProfile,
    ConfigStore,
    DetectionModel,
    DetectionSettings,
    ModelThresholds,
)
from wallpaint.errors import DetectorError
from wallpaint.pipelines.detection import (
    SurfaceDetector,
    build_attempts,
    fallback_detection,
    filter_small_walls,
)
from wallpaint.vision.types import DetectionResult, NormalizedImage, Region, SegmentationResult

MODEL_A = DetectionModel("model-a/1", "https://detect.example")
MODEL_B = DetectionModel("model-b/2", "https://detect.example")
MODEL_OFF = DetectionModel("model-off/1", "https://detect.example", enabled=False)


class _FakeDetector:
    def __init__(self, outcomes: list[DetectionResult | Exception]):
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, float, float]] = []

    def infer(
        self,
        model: DetectionModel,
        image_b64: str,
        *,
        confidence: float,
        overlap: float,
    ) -> DetectionResult:
        _ = image_b64
        self.calls.append((model.model_id, confidence, overlap))
        out = self._outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return out


def _image(w: int = 640, h: int = 480) -> NormalizedImage:
    return NormalizedImage(image=Image.new("RGB", (w, h)), jpeg=b"", b64="QUJD")


def _boxes(*regions: Region) -> DetectionResult:
    return DetectionResult(regions=tuple(regions))


BIG_WALL = Region("wall", 320, 240, 300, 200, 0.7)
SMALL_WALL = Region("wall", 50, 50, 50, 50, 0.9)  # 2500 px < 2% of 640x480
SOFA = Region("sofa", 300, 400, 200, 80, 0.8)


def _store(*models: DetectionModel, **confidence_kw) -> ConfigStore:
    return ConfigStore(
        DetectionSettings(models=tuple(models), confidence=ConfidenceProfile(**confidence_kw))
    )


def test_build_attempts_expands_enabled_models_in_order() -> None:
    attempts = build_attempts([MODEL_A, MODEL_OFF, MODEL_B])
    assert [(a.model.model_id, a.stage) for a in attempts] == [
        ("model-a/1", "primary"),
        ("model-a/1", "fallback"),
        ("model-b/2", "primary"),
        ("model-b/2", "fallback"),
    ]


def test_filter_small_walls_keeps_other_labels() -> None:
    kept = filter_small_walls(
        (BIG_WALL, SMALL_WALL, SOFA), image_w=640, image_h=480, min_area_fraction=0.02
    )
    assert kept == (BIG_WALL, SOFA)


def test_fallback_region_is_centered_wall() -> None:
    det = fallback_detection(640, 480)
    assert det.fallback is True
    assert det.regions is not None and len(det.regions) == 1
    r = det.regions[0]
    assert r.label == "wall"
    assert (r.x, r.y) == pytest.approx((320.0, 216.0))
    assert (r.width, r.height) == pytest.approx((384.0, 240.0))
    assert r.confidence == 0.0


def test_detect_without_enabled_models_returns_fallback() -> None:
    client = _FakeDetector([])
    det = SurfaceDetector(_store(MODEL_OFF), client).detect(_image())
    assert det.fallback is True
    assert client.calls == []


def test_detect_accepts_first_attempt_with_a_wall() -> None:
    client = _FakeDetector([_boxes(BIG_WALL, SOFA)])
    det = SurfaceDetector(_store(MODEL_A, MODEL_B), client).detect(_image())

    assert client.calls == [("model-a/1", 0.40, 0.30)]
    assert det.fallback is False
    assert det.model_id == "model-a/1"
    assert det.confidence == pytest.approx(0.40)
    assert det.regions == (BIG_WALL, SOFA)


def test_detect_drops_small_walls_then_retries_at_fallback_threshold() -> None:
    client = _FakeDetector([_boxes(SMALL_WALL, SOFA), _boxes(BIG_WALL)])
    det = SurfaceDetector(_store(MODEL_A), client).detect(_image())

    assert client.calls == [("model-a/1", 0.40, 0.30), ("model-a/1", 0.20, 0.30)]
    assert det.fallback is False
    assert det.confidence == pytest.approx(0.20)
    assert det.regions == (BIG_WALL,)


def test_detect_moves_to_next_model_and_uses_per_model_thresholds() -> None:
    client = _FakeDetector([_boxes(SOFA), _boxes(), _boxes(BIG_WALL)])
    store = _store(
        MODEL_A,
        MODEL_B,
        per_model={"model-b/2": ModelThresholds(primary=0.65, fallback=0.35)},
        overlap=0.5,
    )
    det = SurfaceDetector(store, client).detect(_image())

    assert client.calls == [
        ("model-a/1", 0.40, 0.5),
        ("model-a/1", 0.20, 0.5),
        ("model-b/2", 0.65, 0.5),
    ]
    assert det.model_id == "model-b/2"


def test_detect_absorbs_remote_failures_and_falls_back() -> None:
    client = _FakeDetector(
        [
            httpx.ConnectError("connection refused"),
            DetectorError("malformed"),
            httpx.ReadTimeout("slow"),
            _boxes(SMALL_WALL),
        ]
    )
    det = SurfaceDetector(_store(MODEL_A, MODEL_B), client).detect(_image())

    assert len(client.calls) == 4
    assert det.fallback is True
    assert det.model_id is None
    assert det == fallback_detection(640, 480)


def test_detect_rereads_thresholds_before_each_attempt() -> None:
    store = _store(MODEL_A)

    class _UpdatingDetector(_FakeDetector):
        def infer(self, model, image_b64, *, confidence, overlap):  # type: ignore[override]
            out = super().infer(model, image_b64, confidence=confidence, overlap=overlap)
            store.update_confidence({"default": {"fallback": 0.1}})
            return out

    client = _UpdatingDetector([_boxes(), _boxes(BIG_WALL)])
    det = SurfaceDetector(store, client).detect(_image())

    assert client.calls == [("model-a/1", 0.40, 0.30), ("model-a/1", 0.1, 0.30)]
    assert det.confidence == pytest.approx(0.1)


def test_detect_accepts_segmentation_only_with_a_wall_class() -> None:
    no_wall = DetectionResult(
        segmentation=SegmentationResult(class_map={"background": 0, "floor": 1}, mask_b64="x")
    )
    wall = DetectionResult(
        segmentation=SegmentationResult(class_map={"background": 0, "wall": 3}, mask_b64="x")
    )
    client = _FakeDetector([no_wall, wall])
    det = SurfaceDetector(_store(MODEL_A), client).detect(_image())

    assert det.shape == "segmentation"
    assert det.segmentation is not None
    assert det.segmentation.paintable_class_id() == 3
    assert det.fallback is False
