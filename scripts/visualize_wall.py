#!/usr/bin/env python3
"""Batch runner: preview a paint color on every room photo of a folder.

Core logic lives in `wallpaint.pipelines.visualize`. Per image this writes the
generated previews under `<out_root>/uploads/` and a recap in
`<out_root>/summary.yaml`.

Configuration:
- `--config` or `WALLPAINT_CONFIG`: optional settings YAML (see `wallpaint.config`).
- `ROBOFLOW_API_KEY`: wall detector key. Without it every image uses the
  default wall zone.
- `GETIMG_API_KEY`: inpainting key. Without it the original photo is returned
  ("development mode").
"""

import argparse
import base64
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

import yaml

from wallpaint.colors.catalog import ColorSpec, SupportsCatalog
from wallpaint.colors.recommend import hex_to_hsl
from wallpaint.config import load_settings
from wallpaint.errors import WallpaintError
from wallpaint.masks.synthesis import synthesize
from wallpaint.pipelines.visualize import PaintVisualizer, VisualizationResult
from wallpaint.preprocessing.normalize import prepare
from wallpaint.synthesis.patterns import ALLOWED_PATTERNS
from wallpaint.vision.image import ensure_dir
from wallpaint.vision.types import RawImage
from wallpaint.vision.vis import draw_regions, save_mask


def _iter_images(images_dir: Path) -> list[Path]:
    exts = {".jpg", ".jpeg", ".png", ".webp"}
    return sorted(p for p in images_dir.iterdir() if p.is_file() and p.suffix.lower() in exts)


def _resolve_color(value: str, catalog: SupportsCatalog) -> ColorSpec:
    wanted = value.strip().lower()
    for c in catalog.all():
        if c.name.lower() == wanted:
            return c
    try:
        hex_to_hsl(value)
    except ValueError:
        raise SystemExit(f"--color is not a catalog name or #RRGGBB code: {value!r}") from None
    hex_code = value if value.startswith("#") else f"#{value}"
    return ColorSpec(name=hex_code.upper(), hex_code=hex_code.upper(), brand="custom")


def _summary_row(image_path: Path, res: VisualizationResult) -> dict[str, object]:
    return {
        "image": str(image_path),
        "url": res.url,
        "plain_url": res.plain_url,
        "pattern_url": res.pattern_url,
        "message": res.message,
        "pattern": res.pattern,
        "masking_method": res.masking_method,
        "detected_walls": res.detected_walls,
        "detected_surfaces": res.detected_surfaces,
        "fallback_detection": res.fallback_detection,
        "degraded": res.degraded,
        "recommendations": [{"name": c.name, "hex": c.hex_code} for c in res.recommendations],
    }


def _save_debug(viz: PaintVisualizer, raw: RawImage, debug_dir: Path) -> None:
    normalized = prepare(raw)
    det = viz.detector.detect(normalized)
    mask = synthesize(det, normalized.width, normalized.height)
    ensure_dir(debug_dir)
    draw_regions(normalized.image, list(det.regions or ()), debug_dir / "regions.jpg")
    save_mask(mask, debug_dir / "mask.png")
    save_mask(mask, debug_dir / "mask_overlay.jpg", overlay_on=normalized.image)


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--images_dir", type=str, default="assets/rooms")
    ap.add_argument("--out_root", type=str, default="outputs/wallpaint")
    ap.add_argument("--color", type=str, required=True, help="Catalog color name or #RRGGBB")
    ap.add_argument("--pattern", type=str, default="plain", choices=list(ALLOWED_PATTERNS))
    ap.add_argument("--manual_mask", type=str, default=None, help="PNG drawing applied to all")
    ap.add_argument("--config", type=str, default=os.environ.get("WALLPAINT_CONFIG"))
    ap.add_argument("--debug", action="store_true", help="Also save detections and masks")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    images_dir = Path(args.images_dir).expanduser().resolve()
    if not images_dir.is_dir():
        raise SystemExit(f"--images_dir is not a directory: {images_dir}")
    images = _iter_images(images_dir)
    if not images:
        raise SystemExit(f"No images found under: {images_dir}")

    out_root = Path(args.out_root).expanduser().resolve()
    ensure_dir(out_root)

    settings = load_settings(Path(args.config) if args.config else None)
    settings = replace(settings, storage=replace(settings.storage, root=out_root / "uploads"))
    viz = PaintVisualizer(settings)
    color = _resolve_color(args.color, viz.catalog)

    manual_mask = None
    if args.manual_mask:
        manual_mask = base64.b64encode(Path(args.manual_mask).read_bytes()).decode("ascii")

    summary: list[dict[str, object]] = []
    failures = 0
    for image_path in images:
        print(f"Painting {image_path.name} with {color.name} ({args.pattern})")
        try:
            raw = RawImage.from_path(image_path)
            res = viz.visualize(
                raw,
                color,
                pattern=args.pattern,
                masking_method="manual" if manual_mask else "ai",
                manual_mask=manual_mask,
            )
            summary.append(_summary_row(image_path, res))
            if args.debug and not manual_mask:
                _save_debug(viz, raw, out_root / "debug" / image_path.stem)
        except WallpaintError as e:
            failures += 1
            print(f"[ERROR] {image_path}: {type(e).__name__}: {e}", file=sys.stderr)

    (out_root / "summary.yaml").write_text(
        yaml.safe_dump({"color": color.name, "images": summary}, sort_keys=False),
        encoding="utf-8",
    )

    if failures:
        print(f"Completed with {failures} failures.", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
