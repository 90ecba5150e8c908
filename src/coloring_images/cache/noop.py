from __future__ import annotations

import time
from datetime import datetime
from typing import Optional

from .base import CacheAdapter, CacheEntry, CacheStats, GalleryQuery, NewCacheEntry


class NoOpCacheAdapter(CacheAdapter):
    """Cache disabled: never hits, stores nothing."""

    enabled = False

    async def find_exact_match(self, prompt_hash: str, provider: str) -> Optional[CacheEntry]:
        return None

    async def insert(self, entry: NewCacheEntry) -> str:
        return f"noop-{int(time.time() * 1000)}"

    async def touch(self, entry_id: str) -> None:
        return None

    async def find_similar(
        self, theme: str, difficulty: str, subject: str, limit: int
    ) -> list[CacheEntry]:
        return []

    async def gallery(self, query: GalleryQuery) -> list[CacheEntry]:
        return []

    async def cleanup(self, cutoff: datetime, min_access_count: int) -> int:
        return 0

    async def stats(self) -> CacheStats:
        return CacheStats()
