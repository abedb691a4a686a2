"""Generation profiles for the plain fill and the decorative pattern overlays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal, cast, get_args

from wallpaint.errors import InputValidationError

Pattern = Literal[
    "plain",
    "accent-wall",
    "two-tone",
    "stripes-horizontal",
    "stripes-vertical",
    "geometric",
    "ombre",
    "color-block",
    "wainscoting",
    "border",
    "textured",
]

ALLOWED_PATTERNS: Final[tuple[str, ...]] = get_args(Pattern)

_PRESERVE = (
    "keep the exact room layout, perspective, lighting and shadows, "
    "keep all furniture, windows, doors and decor unchanged"
)
_BASE_NEGATIVE = (
    "new objects, extra furniture, people, text, watermark, distorted perspective, "
    "changed lighting, blurry, low quality"
)


@dataclass(frozen=True, slots=True)
class GenerationProfile:
    """Prompt and sampler parameters for one synthesizer call."""

    prompt: str
    negative_prompt: str
    strength: float
    guidance: float
    steps: int


@dataclass(frozen=True, slots=True)
class PatternProfile:
    """Template for a pattern; `{color}` and `{hex}` are filled per request."""

    prompt: str
    negative_prompt: str
    strength: float
    guidance: float
    steps: int

    def render(self, color_name: str, color_hex: str) -> GenerationProfile:
        return GenerationProfile(
            prompt=self.prompt.format(color=color_name, hex=color_hex) + f", {_PRESERVE}",
            negative_prompt=self.negative_prompt.format(color=color_name, hex=color_hex),
            strength=self.strength,
            guidance=self.guidance,
            steps=self.steps,
        )


PLAIN_PROFILE: Final[PatternProfile] = PatternProfile(
    prompt=(
        "wall painted in solid {color} ({hex}) paint, exact color {hex}, smooth even matte finish, "
        "realistic interior photo"
    ),
    negative_prompt=_BASE_NEGATIVE + ", patterns, stripes, wallpaper, color variation, wrong color",
    strength=0.90,
    guidance=9.0,
    steps=30,
)

PATTERN_PROFILES: Final[dict[str, PatternProfile]] = {
    "plain": PLAIN_PROFILE,
    "accent-wall": PatternProfile(
        prompt="single accent wall in deep {color} ({hex}), crisp paint edges, realistic interior",
        negative_prompt=_BASE_NEGATIVE + ", stripes, wallpaper",
        strength=0.75,
        guidance=8.0,
        steps=30,
    ),
    "two-tone": PatternProfile(
        prompt=(
            "two-tone painted wall, lower half {color} ({hex}), "
            "upper half a lighter tint of {color}, straight horizontal dividing line"
        ),
        negative_prompt=_BASE_NEGATIVE + ", diagonal lines, wallpaper",
        strength=0.80,
        guidance=8.5,
        steps=35,
    ),
    "stripes-horizontal": PatternProfile(
        prompt=(
            "evenly spaced horizontal painted stripes in {color} ({hex}) and a lighter tint, "
            "straight level lines"
        ),
        negative_prompt=_BASE_NEGATIVE + ", vertical stripes, wavy lines",
        strength=0.80,
        guidance=9.0,
        steps=35,
    ),
    "stripes-vertical": PatternProfile(
        prompt=(
            "evenly spaced vertical painted stripes in {color} ({hex}) and a lighter tint, "
            "straight plumb lines"
        ),
        negative_prompt=_BASE_NEGATIVE + ", horizontal stripes, wavy lines",
        strength=0.80,
        guidance=9.0,
        steps=35,
    ),
    "geometric": PatternProfile(
        prompt=(
            "hand-painted geometric mural of triangles and angled shapes in {color} ({hex}) "
            "with neutral tones, clean taped edges"
        ),
        negative_prompt=_BASE_NEGATIVE + ", curves, organic shapes",
        strength=0.85,
        guidance=8.0,
        steps=40,
    ),
    "ombre": PatternProfile(
        prompt=(
            "ombre painted wall, smooth vertical gradient from {color} ({hex}) at the bottom "
            "fading to white at the top"
        ),
        negative_prompt=_BASE_NEGATIVE + ", hard lines, stripes, banding",
        strength=0.80,
        guidance=7.5,
        steps=40,
    ),
    "color-block": PatternProfile(
        prompt=(
            "color-block painted wall with large rectangular blocks of {color} ({hex}) "
            "and complementary muted tones, sharp edges"
        ),
        negative_prompt=_BASE_NEGATIVE + ", gradients, stripes",
        strength=0.85,
        guidance=8.5,
        steps=35,
    ),
    "wainscoting": PatternProfile(
        prompt=(
            "painted wainscoting panels on the lower third of the wall in {color} ({hex}) "
            "with a chair rail, plain wall above"
        ),
        negative_prompt=_BASE_NEGATIVE + ", wallpaper, tiles",
        strength=0.85,
        guidance=8.0,
        steps=40,
    ),
    "border": PatternProfile(
        prompt=(
            "wall painted {color} ({hex}) with a thin decorative painted border band "
            "near the ceiling line"
        ),
        negative_prompt=_BASE_NEGATIVE + ", stripes across the wall, wallpaper",
        strength=0.75,
        guidance=8.0,
        steps=35,
    ),
    "textured": PatternProfile(
        prompt=(
            "textured plaster wall finish in {color} ({hex}), subtle venetian plaster "
            "sponge texture, soft depth"
        ),
        negative_prompt=_BASE_NEGATIVE + ", stripes, geometric shapes, glossy",
        strength=0.70,
        guidance=7.5,
        steps=40,
    ),
}


def parse_pattern(value: str | None) -> Pattern:
    """Validate a pattern tag; empty values mean "plain".

    Raises:
        InputValidationError: If `value` is not a known pattern.
    """
    tag = (value or "plain").strip().lower()
    if tag not in ALLOWED_PATTERNS:
        raise InputValidationError(
            f"Unsupported pattern: {value!r}. Allowed: {sorted(ALLOWED_PATTERNS)}"
        )
    return cast(Pattern, tag)


def plain_profile(color_name: str, color_hex: str) -> GenerationProfile:
    """Phase-1 profile: paint the masked area the exact requested color."""
    return PLAIN_PROFILE.render(color_name, color_hex)


def pattern_profile(pattern: Pattern, color_name: str, color_hex: str) -> GenerationProfile:
    """Phase-2 profile for a decorative pattern."""
    return PATTERN_PROFILES[pattern].render(color_name, color_hex)
