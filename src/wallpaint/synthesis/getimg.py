"""getimg.ai Stable Diffusion XL inpainting client."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import httpx
from pydantic import BaseModel, ConfigDict

from wallpaint.config import DEFAULT_GETIMG_BASE, DEFAULT_GETIMG_KEY_ENV
from wallpaint.errors import SynthesisError
from wallpaint.synthesis.patterns import GenerationProfile
from wallpaint.vision.image import decode_b64_image_bytes

LOG = logging.getLogger(__name__)

PLACEHOLDER_KEYS: Final[frozenset[str]] = frozenset({"your-getimg-api-key-here"})
_RAW_B64_MIN_LEN: Final[int] = 1000
_RAW_B64_PREFIXES: Final[tuple[str, ...]] = ("/9j/", "iVBORw0KGgo", "data:image/")


@dataclass(frozen=True, slots=True)
class SynthesisOutput:
    """Synthesizer result: either decoded image bytes or a URL to fetch."""

    image_bytes: bytes | None = None
    url: str | None = None
    generation_id: str | None = None
    generation_time: float | None = None


class _InpaintResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    image: str | None = None
    images: list[str] | None = None
    output: list[str] | None = None
    generationTime: float | None = None


def parse_inpaint_response(payload: Any) -> SynthesisOutput:
    """Normalize the response shapes the inpainting endpoint is known to return.

    Accepted, in order: `{"image": b64}`, `{"output": [url]}`, `{"images": [b64]}`,
    or the bare base64 string.

    Raises:
        SynthesisError: If no image can be found or the base64 is invalid.
    """
    try:
        if isinstance(payload, str):
            text = payload.strip()
            if len(text) > _RAW_B64_MIN_LEN or text.startswith(_RAW_B64_PREFIXES):
                return SynthesisOutput(image_bytes=decode_b64_image_bytes(text))
            raise SynthesisError("No image generated - invalid API response format")

        if not isinstance(payload, dict):
            raise SynthesisError(f"Unsupported response type: {type(payload).__name__}")

        resp = _InpaintResponse.model_validate(payload)
        meta = {"generation_id": resp.id, "generation_time": resp.generationTime}
        if resp.image:
            return SynthesisOutput(image_bytes=decode_b64_image_bytes(resp.image), **meta)
        if resp.output:
            return SynthesisOutput(url=str(resp.output[0]), **meta)
        if resp.images:
            return SynthesisOutput(image_bytes=decode_b64_image_bytes(resp.images[0]), **meta)
    except ValueError as e:
        raise SynthesisError(f"Invalid image payload: {e}") from e

    LOG.error("No image found in synthesizer response: keys=%s", sorted(payload))
    raise SynthesisError("No image generated - invalid API response format")


@dataclass(slots=True)
class GetImgInpainter:
    """Call the getimg.ai SDXL inpainting endpoint.

    Attributes:
        base_url: API base URL.
        model: Model id sent in the payload.
        timeout_s: Per-request timeout.
        api_key_env: Name of the environment variable holding the API key.
        client_factory: Builds the `httpx.Client` (override in tests).
    """

    base_url: str = DEFAULT_GETIMG_BASE
    model: str = "stable-diffusion-xl-v1-0"
    timeout_s: float = 60.0
    api_key_env: str = DEFAULT_GETIMG_KEY_ENV
    client_factory: Callable[..., httpx.Client] = httpx.Client

    def _api_key(self) -> str:
        return os.getenv(self.api_key_env, "").strip()

    def is_configured(self) -> bool:
        """True when a non-placeholder API key is available."""
        key = self._api_key()
        return bool(key) and key not in PLACEHOLDER_KEYS

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
        """Repaint the white area of `mask_b64` on `image_b64`.

        Raises:
            SynthesisError: Missing key or no usable image in the response.
            httpx.HTTPError: Transport failure, timeout or non-2xx status.
        """
        if not self.is_configured():
            raise SynthesisError(f"{self.api_key_env} environment variable is not set")

        payload: dict[str, Any] = {
            "model": self.model,
            "image": image_b64,
            "mask_image": mask_b64,
            "prompt": profile.prompt,
            "negative_prompt": profile.negative_prompt,
            "strength": profile.strength,
            "guidance": profile.guidance,
            "steps": profile.steps,
            "width": int(width),
            "height": int(height),
            "response_format": "b64",
        }
        if seed is not None:
            payload["seed"] = int(seed)

        url = f"{self.base_url.rstrip('/')}/stable-diffusion-xl/inpaint"
        headers = {
            "Authorization": f"Bearer {self._api_key()}",
            "Content-Type": "application/json",
        }
        with self.client_factory(timeout=self.timeout_s) as client:
            resp = client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            body: Any = resp.text
            if "json" in resp.headers.get("content-type", ""):
                try:
                    body = resp.json()
                except ValueError as e:
                    raise SynthesisError("Malformed JSON from inpainting endpoint") from e

        out = parse_inpaint_response(body)
        LOG.info(
            "Inpaint done: id=%s generation_time=%s size=%sx%s",
            out.generation_id,
            out.generation_time,
            width,
            height,
        )
        return out

    def fetch(self, url: str) -> bytes:
        """Download a generated image.

        Raises:
            httpx.HTTPError: If the download fails.
        """
        with self.client_factory(timeout=self.timeout_s, follow_redirects=True) as client:
            resp = client.get(url)
            resp.raise_for_status()
            return resp.content
