"""Label utilities (normalization, paintable-surface matching)."""

from __future__ import annotations

PAINTABLE_SURFACES: frozenset[str] = frozenset({"wall"})


def _norm(s: str) -> str:
    cleaned = (
        s.strip().lower().replace("-", " ").replace("_", " ").replace("/", " ").replace(",", " ")
    )
    return " ".join(cleaned.split())


def normalize_surface_label(raw_label: str) -> str | None:
    """Map a raw detector class name to a canonical surface label.

    Policy (deterministic):
      0) Alias map for the class names used by common interior models.
      1) Exact match against a canonical label after normalization.
      2) A label containing the word "wall" maps to "wall" unless it names an
         object mounted on the wall (e.g. "wall art", "wall clock").
      3) Otherwise return the normalized label unchanged.
    """
    raw = _norm(raw_label)
    if not raw:
        return None

    alias_map: dict[str, str] = {
        "walls": "wall",
        "wall surface": "wall",
        "painted wall": "wall",
        "accent wall": "wall",
        "interior wall": "wall",
        "ceilings": "ceiling",
        "floors": "floor",
        "flooring": "floor",
        "sofa": "couch",
        "settee": "couch",
    }
    if raw in alias_map:
        return alias_map[raw]
    if raw in PAINTABLE_SURFACES:
        return raw

    mounted = ("wall art", "wall clock", "wall lamp", "wall shelf", "wall socket", "wall outlet")
    words = raw.split()
    if "wall" in words and not any(m in raw for m in mounted):
        return "wall"
    return raw


def is_paintable_surface(raw_label: str) -> bool:
    """Return True when `raw_label` denotes a paintable surface (a wall)."""
    label = normalize_surface_label(str(raw_label))
    return label is not None and label in PAINTABLE_SURFACES
