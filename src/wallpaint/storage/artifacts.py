"""Shared artifact directory for uploaded, generated and temporary images."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from wallpaint.vision.image import ensure_dir

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class ArtifactStore:
    """Files under `root`, published to callers as `<public_prefix>/<name>`.

    The directory is shared by concurrent requests, so every name carries a
    timestamp and a random token.
    """

    root: Path
    public_prefix: str = "/uploads"

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser()
        ensure_dir(self.root)

    def unique_path(self, stem: str, ext: str) -> Path:
        name = f"{stem}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}.{ext.lstrip('.')}"
        return self.root / name

    def save_bytes(self, data: bytes, stem: str, ext: str) -> Path:
        path = self.unique_path(stem, ext)
        path.write_bytes(data)
        return path

    def url_for(self, path: Path) -> str:
        return f"{self.public_prefix.rstrip('/')}/{Path(path).name}"

    def remove(self, paths: Iterable[Path | None]) -> None:
        """Delete temporary files; failures are logged, never raised."""
        for p in paths:
            if p is None:
                continue
            try:
                p.unlink(missing_ok=True)
            except OSError as e:
                LOG.warning("Failed to clean up temporary file %s: %s", p, e)
