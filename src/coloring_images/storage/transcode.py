from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from typing import Optional

from PIL import Image, features

logger = logging.getLogger(__name__)


class Transcoder(ABC):
    @abstractmethod
    def transcode(self, data: bytes, content_type: str) -> Optional[tuple[bytes, str]]:
        """Return re-encoded bytes and their mime type, or None to keep the input."""


class NoOpTranscoder(Transcoder):
    def transcode(self, data: bytes, content_type: str) -> Optional[tuple[bytes, str]]:
        return None


class WebPTranscoder(Transcoder):
    def __init__(self, quality: int = 80):
        self.quality = quality

    def transcode(self, data: bytes, content_type: str) -> Optional[tuple[bytes, str]]:
        if content_type == "image/webp":
            return None
        with Image.open(io.BytesIO(data)) as img:
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            buf = io.BytesIO()
            img.save(buf, format="WEBP", quality=self.quality)
        return buf.getvalue(), "image/webp"


def select_transcoder(enabled: bool = True) -> Transcoder:
    if enabled and features.check("webp"):
        return WebPTranscoder()
    if enabled:
        logger.info("Pillow built without WebP support, images stored as-is")
    return NoOpTranscoder()
