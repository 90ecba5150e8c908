from __future__ import annotations

from typing import Optional

import httpx

from ..config import OpenAIProviderConfig
from ..provider import ImageProvider, ProviderProtocolError
from ..types import ImageOptions


class OpenAIProvider(ImageProvider):
    def __init__(self, config: OpenAIProviderConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self._config = config
        self._api_key = config.resolve_api_key(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def name(self) -> str:
        return "OpenAI DALL-E 3"

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        # DALL-E 3 only accepts a few sizes, so always ask for the square one
        data = await self._request_json(
            "POST",
            f"{self._config.base_url}/images/generations",
            headers={"Authorization": f"Bearer {self._api_key}"},
            payload={
                "model": self._config.model,
                "prompt": prompt,
                "n": 1,
                "size": "1024x1024",
                "quality": options.quality or "standard",
                "response_format": "url",
                "style": "natural",
            },
        )
        items = data.get("data") or []
        if not items or not items[0].get("url"):
            raise ProviderProtocolError("No image URL received from OpenAI")
        return items[0]["url"]

    def features(self) -> list[str]:
        return ["high_quality", "complex_prompts", "content_moderation"]
