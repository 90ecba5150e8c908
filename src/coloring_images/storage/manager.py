from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
import unicodedata
from typing import Optional

import httpx

from .base import StorageAdapter, StorageError, StorageResult
from .noop import NoOpStorageAdapter
from .transcode import NoOpTranscoder, Transcoder

logger = logging.getLogger(__name__)

CACHE_CONTROL_SECONDS = "31536000"
MAX_SLUG_LENGTH = 50

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}
_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^,]*)?),(?P<data>.*)$", re.DOTALL)


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type.lower(), "png")


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    m = _DATA_URI.match(uri)
    if not m:
        raise StorageError("Malformed data URI")
    if ";base64" not in m.group("params"):
        raise StorageError("Only base64 data URIs are supported")
    try:
        data = base64.b64decode(m.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Invalid base64 payload: {e}") from e
    return data, m.group("mime") or "image/png"


class StorageManager:
    def __init__(
        self,
        adapter: Optional[StorageAdapter] = None,
        transcoder: Optional[Transcoder] = None,
        client: Optional[httpx.AsyncClient] = None,
        fetch_timeout: float = 60.0,
    ):
        self._adapter = adapter if adapter is not None else NoOpStorageAdapter()
        self._transcoder = transcoder if transcoder is not None else NoOpTranscoder()
        self._client = client
        self._fetch_timeout = fetch_timeout

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    @property
    def transcoder(self) -> Transcoder:
        return self._transcoder

    @property
    def enabled(self) -> bool:
        return self._adapter.enabled

    @staticmethod
    def sanitize_filename(name: str) -> str:
        """ASCII slug of at most 50 chars; ``"image"`` when nothing survives."""
        decomposed = unicodedata.normalize("NFD", name or "")
        ascii_only = "".join(
            ch for ch in decomposed if not unicodedata.combining(ch) and ord(ch) < 128
        )
        slug = re.sub(r"[^a-z0-9-]", "-", ascii_only.lower())
        slug = re.sub(r"-+", "-", slug).strip("-")
        slug = slug[:MAX_SLUG_LENGTH].strip("-")
        return slug or "image"

    async def store(self, image_ref: str, filename: str) -> StorageResult:
        """Persist an image and return its durable URL.

        Any failure leaves the original reference in place with no storage path.
        """
        try:
            data, content_type = await self._load(image_ref)
            data, content_type = await self._transcode(data, content_type)
            key = f"{int(time.time() * 1000)}-{self.sanitize_filename(filename)}.{extension_for(content_type)}"
            await self._adapter.upload(key, data, content_type, CACHE_CONTROL_SECONDS)
            url = self._adapter.public_url(key)
        except Exception:
            logger.exception("Image storage failed, keeping original URL")
            return StorageResult(image_ref, None)
        logger.info("Stored image as %s", key)
        return StorageResult(url, key)

    async def delete(self, path: Optional[str]) -> None:
        if not path:
            return
        try:
            await self._adapter.delete(path)
        except Exception:
            logger.exception("Failed to delete stored image %s", path)

    def get_public_url(self, path: str) -> str:
        return self._adapter.public_url(path)

    async def _load(self, image_ref: str) -> tuple[bytes, str]:
        if image_ref.startswith("data:"):
            return decode_data_uri(image_ref)
        if self._client is not None:
            response = await self._client.get(image_ref, timeout=self._fetch_timeout)
        else:
            async with httpx.AsyncClient(timeout=self._fetch_timeout) as client:
                response = await client.get(image_ref)
        if not response.is_success:
            raise StorageError(f"Failed to fetch image: {response.status_code} {response.reason_phrase}")
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return response.content, content_type or "image/png"

    async def _transcode(self, data: bytes, content_type: str) -> tuple[bytes, str]:
        try:
            converted = await asyncio.to_thread(self._transcoder.transcode, data, content_type)
        except Exception:
            logger.warning("Transcoding failed, storing original bytes", exc_info=True)
            return data, content_type
        return converted if converted is not None else (data, content_type)
