from __future__ import annotations

from .base import StorageAdapter


class NoOpStorageAdapter(StorageAdapter):
    """Storage disabled: images keep their provider URLs."""

    enabled = False

    async def upload(self, key: str, data: bytes, content_type: str, cache_control: str) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    def public_url(self, key: str) -> str:
        return key
