from __future__ import annotations

import asyncio
import io
import textwrap
from typing import TYPE_CHECKING

from PIL import Image, ImageDraw

from ..provider import ImageProvider, to_data_uri
from ..types import ImageOptions

if TYPE_CHECKING:
    from ..config import PlaceholderProviderConfig


def render_placeholder(prompt: str, width: int, height: int) -> bytes:
    img = Image.new("L", (width, height), 255)
    d = ImageDraw.Draw(img)
    margin = min(width, height) // 16
    d.rectangle(
        [margin, margin, width - margin, height - margin],
        outline=0,
        width=max(4, margin // 8),
    )
    r = min(width, height) // 5
    cx, cy = width // 2, height // 2
    d.ellipse([cx - r, cy - r, cx + r, cy + r], outline=0, width=max(3, r // 20))

    label = "\n".join(textwrap.wrap(prompt, width=40)[:4])
    d.multiline_text((margin * 2, margin * 2), label, fill=0)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class PlaceholderProvider(ImageProvider):
    """Draws an outline page locally. Used offline and in tests."""

    def __init__(self, config: "PlaceholderProviderConfig | None" = None):
        super().__init__(None)
        self._config = config

    @property
    def provider_id(self) -> str:
        return "placeholder"

    @property
    def name(self) -> str:
        return "Local placeholder"

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        if self._config is not None and self._config.latency:
            await asyncio.sleep(self._config.latency)
        png = await asyncio.to_thread(
            render_placeholder,
            prompt,
            options.width or 1024,
            options.height or 1024,
        )
        return to_data_uri(png, "image/png")

    def features(self) -> list[str]:
        return ["offline", "line_art"]
