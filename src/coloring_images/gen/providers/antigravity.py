from __future__ import annotations

from typing import Optional

import httpx

from ..config import AntigravityProviderConfig
from ..provider import ImageProvider, ProviderProtocolError
from ..types import ImageOptions


class AntigravityProvider(ImageProvider):
    """OpenAI-compatible local or hosted proxy."""

    def __init__(self, config: AntigravityProviderConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self._config = config
        self._api_key = config.resolve_api_key(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "antigravity"

    @property
    def name(self) -> str:
        return "Antigravity Local AI"

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
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
            },
            timeout=self._config.request_timeout,
        )
        items = data.get("data") or []
        if items:
            if items[0].get("url"):
                return items[0]["url"]
            if items[0].get("b64_json"):
                return f"data:image/png;base64,{items[0]['b64_json']}"
        raise ProviderProtocolError("No image data received from Antigravity")

    def features(self) -> list[str]:
        return ["local", "openai_compatible", "custom_models", "custom_endpoint"]
