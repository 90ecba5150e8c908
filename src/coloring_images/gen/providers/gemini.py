from __future__ import annotations

from typing import Optional

import httpx

from ..config import GeminiProviderConfig
from ..provider import ImageProvider, ProviderProtocolError
from ..types import ImageOptions


class GeminiProvider(ImageProvider):
    """Imagen through the Gemini API ``:predict`` endpoint."""

    def __init__(self, config: GeminiProviderConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self._config = config
        self._api_key = config.resolve_api_key(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def name(self) -> str:
        return "Google Gemini (Imagen 3)"

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        square = not (options.width and options.height and options.width != options.height)
        data = await self._request_json(
            "POST",
            f"{self._config.base_url}/models/{self._config.model}:predict",
            params={"key": self._api_key},
            payload={
                "instances": [{"prompt": prompt}],
                "parameters": {
                    "sampleCount": 1,
                    "aspectRatio": "1:1" if square else "3:4",
                },
            },
        )
        predictions = data.get("predictions") or []
        first = predictions[0] if predictions else {}
        if first.get("bytesBase64Encoded"):
            mime = first.get("mimeType") or "image/png"
            return f"data:{mime};base64,{first['bytesBase64Encoded']}"
        if first.get("url"):
            return first["url"]
        raise ProviderProtocolError("No image data received from Gemini")

    def features(self) -> list[str]:
        return ["high_quality", "photorealistic", "fast"]
