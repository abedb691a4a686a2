#!/usr/bin/env python3
"""Browse the paint catalog and print color-theory suggestions.

Examples:
  python scripts/recommend_colors.py --hex "#1F2937"
  python scripts/recommend_colors.py --list --brand "Benjamin Moore" --limit 5
  python scripts/recommend_colors.py --brands

`WALLPAINT_CATALOG` (or `--catalog`) points at a custom YAML catalog; the
bundled seed list is used otherwise.
"""

import argparse
import os
import random
import sys
from pathlib import Path

import yaml

from wallpaint.colors.catalog import ColorSpec, load_catalog
from wallpaint.colors.recommend import recommend


def _row(c: ColorSpec) -> dict[str, object]:
    return {
        "name": c.name,
        "hex": c.hex_code,
        "brand": c.brand,
        "category": c.category,
        "finish": c.finish,
        "popularity": c.popularity,
    }


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--catalog", type=str, default=os.environ.get("WALLPAINT_CATALOG"))
    ap.add_argument("--hex", type=str, default=None, help="Base color to recommend around")
    ap.add_argument("--seed", type=int, default=None, help="Seed for the no-match fallback pick")
    ap.add_argument("--list", action="store_true", help="List catalog colors")
    ap.add_argument("--brands", action="store_true", help="List catalog brands")
    ap.add_argument("--brand", type=str, default=None)
    ap.add_argument("--category", type=str, default=None)
    ap.add_argument("--search", type=str, default=None)
    ap.add_argument("--limit", type=int, default=50)
    args = ap.parse_args(argv)

    if not (args.hex or args.list or args.brands):
        raise SystemExit("Nothing to do: pass --hex, --list or --brands.")

    catalog = load_catalog(Path(args.catalog) if args.catalog else None)
    out: dict[str, object] = {}

    if args.brands:
        out["brands"] = catalog.brands()
    if args.list:
        colors = catalog.colors(
            brand=args.brand, category=args.category, search=args.search, limit=args.limit
        )
        out["colors"] = [_row(c) for c in colors]
    if args.hex:
        recs = recommend(args.hex, catalog.all(), rng=random.Random(args.seed))
        if not recs:
            print(f"No recommendations for {args.hex!r}", file=sys.stderr)
            return 1
        out["recommendations"] = [
            {"kind": kind, **_row(c)}
            for kind, c in zip(("complementary", "analogous+30", "analogous-30"), recs)
        ]

    print(yaml.safe_dump(out, sort_keys=False), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
