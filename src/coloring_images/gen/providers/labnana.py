from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import LabNanaProviderConfig
from ..provider import ImageProvider, ProviderProtocolError
from ..types import ImageOptions

logger = logging.getLogger(__name__)


def image_size_for(width: Optional[int]) -> str:
    if width and width >= 4096:
        return "4K"
    if width and width >= 2048:
        return "2K"
    return "1K"


class LabNanaProvider(ImageProvider):
    def __init__(self, config: LabNanaProviderConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self._config = config
        self._api_key = config.resolve_api_key(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "labnana"

    @property
    def name(self) -> str:
        return "LabNana"

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        data = await self._request_json(
            "POST",
            f"{self._config.base_url}/openapi/v1/images/generation",
            headers={"Authorization": f"Bearer {self._api_key}"},
            payload={
                "provider": "google",
                "prompt": prompt,
                # coloring pages are always square
                "imageConfig": {"imageSize": image_size_for(options.width), "aspectRatio": "1:1"},
            },
            timeout=self._config.request_timeout,
        )

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or [{}]
        inline = parts[0].get("inlineData") or {}
        if inline.get("data"):
            mime = inline.get("mimeType") or "image/png"
            logger.debug("LabNana returned %s, %d chars", mime, len(inline["data"]))
            return f"data:{mime};base64,{inline['data']}"
        if data.get("url"):
            return data["url"]

        logger.error("Unexpected LabNana response keys: %s", sorted(data))
        raise ProviderProtocolError("No image data received from LabNana")

    def features(self) -> list[str]:
        return ["google_gemini", "high_resolution", "reference_images", "line_art"]
