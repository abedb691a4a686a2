"""Debug rendering for detections and paint masks."""

from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from .types import PaintMask, Region


def draw_regions(img: Image.Image, regions: list[Region], out_path: Path) -> None:
    """Draw labeled detection regions on an image and save to disk."""
    vis = img.convert("RGB")
    dr = ImageDraw.Draw(vis)
    w, h = vis.size
    thickness = max(2, round(min(w, h) / 250))
    font_size = max(12, round(min(w, h) / 60))
    try:
        font = ImageFont.truetype("DejaVuSans.ttf", font_size)
    except OSError:  # pragma: no cover
        font = ImageFont.load_default()
    for r in regions:
        # Walls in green, everything else in orange.
        color = (60, 179, 113) if r.paintable else (255, 165, 0)
        x1, y1, x2, y2 = r.clip(w, h)
        dr.rectangle([x1, y1, x2, y2], width=thickness, outline=color)
        txt = f"{r.label} {r.confidence:.2f}"
        tx, ty = x1 + thickness, y1 + thickness
        bbox = dr.textbbox((tx, ty), txt, font=font)
        dr.rectangle(bbox, fill=(0, 0, 0))
        dr.text((tx, ty), txt, fill=(255, 255, 255), font=font)
    vis.save(out_path)


def save_mask(mask: PaintMask, out_path: Path, *, overlay_on: Image.Image | None = None) -> None:
    """Save a paint mask as PNG, or as a red tint over `overlay_on` when given."""
    if overlay_on is None:
        mask.to_image().save(out_path)
        return
    base = overlay_on.convert("RGB").resize(mask.size)
    tint = Image.new("RGB", mask.size, (220, 20, 60))
    alpha = mask.to_image().point(lambda v: 110 if v else 0)
    Image.composite(tint, base, alpha).save(out_path)
