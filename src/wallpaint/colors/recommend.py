"""Color-theory recommendations (complementary and analogous hues)."""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Sequence

from .catalog import ColorSpec

LOG = logging.getLogger(__name__)

_HEX = re.compile(r"^#?([0-9A-Fa-f]{6})$")

HUE_TOLERANCE = 45.0
RANDOM_POOL = 10


def hex_to_hsl(hex_code: str) -> tuple[float, float, float]:
    """Convert `#RRGGBB` to (hue in [0, 360), saturation %, lightness %).

    Raises:
        ValueError: If `hex_code` is not a 6-digit hex color.
    """
    m = _HEX.match(str(hex_code).strip())
    if m is None:
        raise ValueError(f"Invalid hex color: {hex_code!r}")
    digits = m.group(1)
    r, g, b = (int(digits[i : i + 2], 16) / 255.0 for i in (0, 2, 4))

    mx = max(r, g, b)
    mn = min(r, g, b)
    lightness = (mx + mn) / 2.0
    if mx == mn:
        return 0.0, 0.0, lightness * 100.0

    d = mx - mn
    sat = d / (2.0 - mx - mn) if lightness > 0.5 else d / (mx + mn)
    if mx == r:
        hue = (g - b) / d + (6.0 if g < b else 0.0)
    elif mx == g:
        hue = (b - r) / d + 2.0
    else:
        hue = (r - g) / d + 4.0
    return (hue / 6.0) * 360.0 % 360.0, sat * 100.0, lightness * 100.0


def hue_distance(a: float, b: float) -> float:
    """Angular distance between two hues, in [0, 180]."""
    d = abs(a - b) % 360.0
    return min(d, 360.0 - d)


def _hue_or_none(color: ColorSpec) -> float | None:
    try:
        return hex_to_hsl(color.hex_code)[0]
    except ValueError:
        return None


def find_closest_color(
    target_hue: float, catalog: Sequence[ColorSpec], rng: random.Random
) -> ColorSpec | None:
    """First catalog entry within the hue tolerance, else a random early entry."""
    if not catalog:
        return None
    for color in catalog:
        hue = _hue_or_none(color)
        if hue is not None and hue_distance(hue, target_hue) < HUE_TOLERANCE:
            return color
    return rng.choice(list(catalog[:RANDOM_POOL]))


def recommend(
    base_hex: str,
    catalog: Sequence[ColorSpec],
    *,
    rng: random.Random | None = None,
) -> list[ColorSpec]:
    """Suggest up to three colors: complementary, analogous +30, analogous -30.

    Args:
        base_hex: Selected color as `#RRGGBB`.
        catalog: Candidate colors, searched in order. Not modified.
        rng: Random source for the no-match fallback pick.

    Returns:
        Recommendations in [complementary, +30, -30] order; empty when the
        catalog is empty or `base_hex` is invalid.
    """
    if not catalog:
        return []
    try:
        hue, _, _ = hex_to_hsl(base_hex)
    except ValueError as e:
        LOG.warning("Color recommendation skipped: %s", e)
        return []

    rng = rng or random.Random()
    targets = ((hue + 180.0) % 360.0, (hue + 30.0) % 360.0, (hue - 30.0) % 360.0)
    out: list[ColorSpec] = []
    for t in targets:
        match = find_closest_color(t, catalog, rng)
        if match is not None:
            out.append(match)
    return out[:3]
