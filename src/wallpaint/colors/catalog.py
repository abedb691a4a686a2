"""Paint color catalog records and a read-only in-memory catalog."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOG = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).with_name("colors.yaml")


@dataclass(frozen=True, slots=True)
class ColorSpec:
    """Catalog entry for a paint color."""

    name: str
    hex_code: str
    brand: str
    category: str | None = None
    finish: str | None = None
    popularity: int = 0


class SupportsCatalog(Protocol):
    """Read-only access to paint colors."""

    def all(self) -> Sequence[ColorSpec]:
        """Every color in catalog order."""
        ...

    def brands(self) -> list[str]:
        """Distinct brand names."""
        ...


class _ColorFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(min_length=1)
    hex_code: str = Field(pattern=r"^#?[0-9A-Fa-f]{6}$", alias="hexCode")
    brand: str = Field(min_length=1)
    category: str | None = None
    finish: str | None = None
    popularity: int = 0


class _CatalogFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    colors: list[_ColorFile] = Field(default_factory=list)


class InMemoryCatalog:
    """Catalog backed by a tuple of `ColorSpec`."""

    def __init__(self, colors: Iterable[ColorSpec] = ()) -> None:
        self._colors: tuple[ColorSpec, ...] = tuple(colors)

    def __len__(self) -> int:
        return len(self._colors)

    def all(self) -> Sequence[ColorSpec]:
        return self._colors

    def brands(self) -> list[str]:
        return sorted({c.brand for c in self._colors})

    def colors(
        self,
        *,
        brand: str | None = None,
        category: str | None = None,
        search: str | None = None,
        limit: int = 50,
    ) -> list[ColorSpec]:
        """Filter colors, most popular first."""
        needle = (search or "").strip().lower()
        out = [
            c
            for c in self._colors
            if (brand is None or c.brand == brand)
            and (category is None or c.category == category)
            and (
                not needle
                or needle in c.name.lower()
                or needle in c.brand.lower()
                or needle in (c.category or "").lower()
            )
        ]
        out.sort(key=lambda c: c.popularity, reverse=True)
        return out[: max(0, int(limit))]


def load_catalog(path: Path | None = None) -> InMemoryCatalog:
    """Load a YAML catalog (`colors:` list). Defaults to the bundled seed file.

    Raises:
        RuntimeError: If the file does not match the catalog schema.
    """
    path = Path(path) if path is not None else DEFAULT_CATALOG_PATH
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    try:
        doc = _CatalogFile.model_validate(raw)
    except ValidationError as e:
        raise RuntimeError(f"Invalid color catalog: {path}") from e

    colors = [
        ColorSpec(
            name=c.name,
            hex_code=c.hex_code if c.hex_code.startswith("#") else f"#{c.hex_code}",
            brand=c.brand,
            category=c.category,
            finish=c.finish,
            popularity=c.popularity,
        )
        for c in doc.colors
    ]
    LOG.info("Loaded %s colors from %s", len(colors), path)
    return InMemoryCatalog(colors)
