from __future__ import annotations

import base64
import io
import random
from dataclasses import replace
from pathlib import Path

import httpx
import numpy as np
import pytest
from PIL import Image, ImageDraw

from wallpaint.colors.catalog import ColorSpec, InMemoryCatalog
from wallpaint.config import (
    DEFAULT_MODELS,
    DetectionModel,
    DetectionSettings,
    Settings,
    StorageSettings,
)
from wallpaint.errors import ImageDecodeError, InputValidationError
from wallpaint.masks.synthesis import default_mask
from wallpaint.pipelines.compositor import (
    MSG_NOT_CONFIGURED,
    MSG_PATTERN_FAILED,
    MSG_PATTERN_OK,
    MSG_PLAIN_OK,
    MSG_UNAVAILABLE,
)
from wallpaint.pipelines.visualize import PaintVisualizer
from wallpaint.synthesis.getimg import SynthesisOutput
from wallpaint.synthesis.patterns import GenerationProfile
from wallpaint.vision.types import DetectionResult, RawImage, Region

NAVAL = ColorSpec("Naval", "#1F2937", "Sherwin-Williams", "cool")
CATALOG = InMemoryCatalog(
    [
        ColorSpec("Saffron Thread", "#D07A36", "Sherwin-Williams", "warm"),
        ColorSpec("Violet Hour", "#5B4FC9", "Behr", "bold"),
        ColorSpec("Lagoon", "#3FB8BF", "Behr", "cool"),
    ]
)


def _encode(img: Image.Image, fmt: str) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def _room(size: tuple[int, int] = (640, 480)) -> RawImage:
    return RawImage.from_bytes(_encode(Image.new("RGB", size, (200, 190, 180)), "JPEG"))


class _FakeDetector:
    def __init__(self, outcomes: list[DetectionResult | Exception]):
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, float]] = []

    def infer(
        self,
        model: DetectionModel,
        image_b64: str,
        *,
        confidence: float,
        overlap: float,
    ) -> DetectionResult:
        self.calls.append((model.model_id, confidence))
        out = self._outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return out


class _FakeInpainter:
    def __init__(self, configured: bool = True, failures: dict[int, Exception] | None = None):
        self.configured = configured
        self.failures = failures or {}
        self.calls: list[tuple[str, GenerationProfile, int, int]] = []

    def is_configured(self) -> bool:
        return self.configured

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
        self.calls.append((mask_b64, profile, width, height))
        failure = self.failures.get(len(self.calls))
        if failure is not None:
            raise failure
        img = Image.new("RGB", (width, height), (31, 41, 55))
        return SynthesisOutput(image_bytes=_encode(img, "PNG"))

    def fetch(self, url: str) -> bytes:
        raise AssertionError("not expected")


def _visualizer(
    tmp_path: Path, detector: _FakeDetector, inpainter: _FakeInpainter
) -> PaintVisualizer:
    settings = Settings(storage=StorageSettings(root=tmp_path / "uploads"))
    return PaintVisualizer(
        settings,
        detector_client=detector,
        inpainter=inpainter,
        catalog=CATALOG,
        rng=random.Random(0),
    )


def test_ai_masking_plain_color(tmp_path: Path) -> None:
    detector = _FakeDetector(
        [
            DetectionResult(
                regions=(
                    Region("wall", 320, 200, 500, 300, 0.8),
                    Region("sofa", 320, 420, 300, 100, 0.9),
                )
            )
        ]
    )
    inpainter = _FakeInpainter()
    res = _visualizer(tmp_path, detector, inpainter).visualize(_room(), NAVAL)

    assert detector.calls == [("furniture-detection-2kump/1", pytest.approx(0.40))]
    assert res.message == MSG_PLAIN_OK
    assert res.url == res.plain_url
    assert res.url.startswith("/uploads/generated-")
    assert res.pattern_url is None
    assert res.has_both_versions is False
    assert res.is_manual_mask is False
    assert res.detected_walls == 1
    assert res.detected_surfaces == 2
    assert res.fallback_detection is False
    assert [c.name for c in res.recommendations] == ["Saffron Thread", "Violet Hour", "Lagoon"]

    names = sorted(p.name.split("-")[0] for p in (tmp_path / "uploads").iterdir())
    assert names == ["generated", "original"]


def test_ai_masking_with_pattern_returns_both_versions(tmp_path: Path) -> None:
    detector = _FakeDetector([DetectionResult(regions=(Region("wall", 320, 200, 500, 300, 0.8),))])
    inpainter = _FakeInpainter()
    res = _visualizer(tmp_path, detector, inpainter).visualize(
        _room(), NAVAL, pattern="two-tone"
    )

    assert res.message == MSG_PATTERN_OK
    assert res.has_both_versions is True
    assert res.url == res.pattern_url
    assert res.pattern == "two-tone"
    assert inpainter.calls[0][0] == inpainter.calls[1][0]


def test_detector_outage_and_unconfigured_synthesizer_still_answer(tmp_path: Path) -> None:
    detector = _FakeDetector([httpx.ConnectError("down"), httpx.ReadTimeout("slow")])
    inpainter = _FakeInpainter(configured=False)
    res = _visualizer(tmp_path, detector, inpainter).visualize(_room(), NAVAL)

    assert len(detector.calls) == 2
    assert res.fallback_detection is True
    assert res.detected_walls == 0
    assert res.message == MSG_NOT_CONFIGURED
    assert res.url.startswith("/uploads/original-")
    assert res.url == res.plain_url
    assert inpainter.calls == []
    assert len(res.recommendations) == 3


def test_manual_masking_bypasses_detector(tmp_path: Path) -> None:
    drawing = Image.new("L", (640, 480), 0)
    ImageDraw.Draw(drawing).rectangle([0, 0, 319, 479], fill=255)
    manual = "data:image/png;base64," + base64.b64encode(_encode(drawing, "PNG")).decode()

    detector = _FakeDetector([])
    inpainter = _FakeInpainter()
    res = _visualizer(tmp_path, detector, inpainter).visualize(
        _room(), NAVAL, masking_method="manual", manual_mask=manual
    )

    assert detector.calls == []
    assert res.is_manual_mask is True
    assert res.detected_walls == 0
    assert res.fallback_detection is False
    assert res.message == MSG_PLAIN_OK

    sent_mask = Image.open(io.BytesIO(base64.b64decode(inpainter.calls[0][0])))
    assert sent_mask.size == (640, 480)
    assert sent_mask.getpixel((10, 10)) == 255
    assert sent_mask.getpixel((630, 10)) == 0


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"color": None}, "Color selection is required"),
        ({"masking_method": None}, "Masking method is required"),
        ({"masking_method": "manual"}, "Manual mask is required when using manual masking"),
        ({"masking_method": "manual", "manual_mask": "   "}, "Manual mask is required"),
        ({"masking_method": "lasso"}, "Unsupported masking method"),
        ({"pattern": "polka-dots"}, "Unsupported pattern"),
        ({"color": ColorSpec("Bad", "#12", "Acme")}, "Invalid color hex code"),
    ],
)
def test_invalid_requests_fail_before_any_remote_call(
    tmp_path: Path, kwargs: dict, message: str
) -> None:
    detector = _FakeDetector([])
    inpainter = _FakeInpainter()
    call = {"image": _room(), "color": NAVAL, **kwargs}

    with pytest.raises(InputValidationError, match=message):
        _visualizer(tmp_path, detector, inpainter).visualize(**call)
    assert detector.calls == []
    assert inpainter.calls == []


def test_undecodable_manual_mask_is_a_validation_error(tmp_path: Path) -> None:
    viz = _visualizer(tmp_path, _FakeDetector([]), _FakeInpainter())
    with pytest.raises(InputValidationError):
        viz.visualize(_room(), NAVAL, masking_method="manual", manual_mask="bm90IGFuIGltYWdl")


def test_corrupt_upload_is_fatal(tmp_path: Path) -> None:
    raw = RawImage(data=b"\x00" * 64, width=1, height=1, channels=3, format="JPEG")
    detector = _FakeDetector([])
    with pytest.raises(ImageDecodeError):
        _visualizer(tmp_path, detector, _FakeInpainter()).visualize(raw, NAVAL)
    assert detector.calls == []


def test_update_confidence_profile_applies_to_next_request(tmp_path: Path) -> None:
    detector = _FakeDetector([DetectionResult(regions=(Region("wall", 320, 200, 500, 300, 0.8),))])
    viz = _visualizer(tmp_path, detector, _FakeInpainter())

    viz.update_confidence_profile({"models": {"furniture-detection-2kump/1": {"primary": 0.7}}})
    viz.visualize(_room(), NAVAL)

    assert detector.calls == [("furniture-detection-2kump/1", pytest.approx(0.7))]


def test_default_catalog_is_the_bundled_seed(tmp_path: Path) -> None:
    viz = PaintVisualizer(
        Settings(storage=StorageSettings(root=tmp_path / "uploads")),
        detector_client=_FakeDetector([]),
        inpainter=_FakeInpainter(),
    )
    recs = viz.recommend("#1F2937")
    assert len(recs) == 3
    assert all(isinstance(c, ColorSpec) for c in recs)


def _sent_mask(inpainter: _FakeInpainter, call: int = 0) -> np.ndarray:
    return np.asarray(Image.open(io.BytesIO(base64.b64decode(inpainter.calls[call][0]))))


def test_no_enabled_models_paints_the_default_wall_zone(tmp_path: Path) -> None:
    models = tuple(replace(m, enabled=False) for m in DEFAULT_MODELS)
    settings = Settings(
        detection=DetectionSettings(models=models),
        storage=StorageSettings(root=tmp_path / "uploads"),
    )
    detector = _FakeDetector([])
    inpainter = _FakeInpainter()
    viz = PaintVisualizer(
        settings, detector_client=detector, inpainter=inpainter, catalog=CATALOG
    )
    white = ColorSpec("Chalk", "#FFFFFF", "Behr", "neutral")

    res = viz.visualize(_room(), white)

    assert detector.calls == []
    assert res.fallback_detection is True
    assert res.message == MSG_PLAIN_OK
    assert np.array_equal(_sent_mask(inpainter), default_mask(640, 480).pixels)


def test_two_walls_are_painted_as_one_union(tmp_path: Path) -> None:
    detector = _FakeDetector(
        [
            DetectionResult(
                regions=(
                    Region("wall", 160, 120, 200, 160, 0.7),
                    Region("wall", 480, 120, 200, 160, 0.6),
                )
            )
        ]
    )
    inpainter = _FakeInpainter()
    res = _visualizer(tmp_path, detector, inpainter).visualize(_room(), NAVAL)

    assert res.detected_walls == 2
    mask = _sent_mask(inpainter)
    assert mask[120, 160] == 255
    assert mask[120, 480] == 255
    assert mask[120, 320] == 0
    assert mask[400, 160] == 0


def test_pattern_failure_keeps_the_plain_result(tmp_path: Path) -> None:
    detector = _FakeDetector([DetectionResult(regions=(Region("wall", 320, 200, 500, 300, 0.8),))])
    inpainter = _FakeInpainter(failures={2: httpx.ReadTimeout("slow")})
    res = _visualizer(tmp_path, detector, inpainter).visualize(
        _room(), NAVAL, pattern="stripes-vertical"
    )

    assert len(inpainter.calls) == 2
    assert res.message == MSG_PATTERN_FAILED
    assert res.url == res.plain_url
    assert res.url.startswith("/uploads/generated-")
    assert res.pattern_url is None
    assert res.has_both_versions is False


def test_plain_failure_returns_the_original_photo(tmp_path: Path) -> None:
    detector = _FakeDetector([DetectionResult(regions=(Region("wall", 320, 200, 500, 300, 0.8),))])
    inpainter = _FakeInpainter(failures={1: httpx.ConnectError("down")})
    res = _visualizer(tmp_path, detector, inpainter).visualize(
        _room(), NAVAL, pattern="ombre"
    )

    assert len(inpainter.calls) == 1
    assert res.message == MSG_UNAVAILABLE
    assert res.url.startswith("/uploads/original-")
    assert res.pattern_url is None
