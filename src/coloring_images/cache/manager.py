from __future__ import annotations

import asyncio
import logging
from typing import Optional

from coloring_images.gen.types import GenerationRequest

from .base import CacheAdapter, CacheEntry, CacheStats, GalleryQuery, NewCacheEntry, cleanup_cutoff
from .key import compute_fingerprint
from .noop import NoOpCacheAdapter

logger = logging.getLogger(__name__)


class CacheManager:
    """Fingerprints requests and guards every adapter call.

    Adapter failures are logged and degrade to cache-miss behavior; nothing
    here raises into the generation flow.
    """

    def __init__(self, adapter: Optional[CacheAdapter] = None):
        self._adapter = adapter if adapter is not None else NoOpCacheAdapter()
        self._background: set[asyncio.Task] = set()

    @property
    def adapter(self) -> CacheAdapter:
        return self._adapter

    @property
    def enabled(self) -> bool:
        return self._adapter.enabled

    @staticmethod
    def fingerprint(request: GenerationRequest) -> str:
        return compute_fingerprint(request)

    async def find_exact_match(
        self, request: GenerationRequest, provider_id: str
    ) -> Optional[CacheEntry]:
        try:
            entry = await self._adapter.find_exact_match(self.fingerprint(request), provider_id)
        except Exception:
            logger.exception("Cache lookup failed")
            return None
        if entry is not None:
            self._spawn(self._touch(entry.id))
        return entry

    async def store(
        self,
        request: GenerationRequest,
        prompt_text: str,
        provider_id: str,
        image_url: str,
        storage_path: Optional[str] = None,
    ) -> Optional[str]:
        entry = NewCacheEntry(
            prompt_hash=self.fingerprint(request),
            prompt_text=prompt_text,
            theme=(request.theme or "").lower().strip(),
            subject=(request.subject or "").lower().strip(),
            difficulty=request.difficulty.value,
            custom_prompt=request.custom_prompt or None,
            provider=provider_id,
            image_url=image_url,
            storage_path=storage_path or None,
        )
        try:
            return await self._adapter.insert(entry)
        except Exception:
            logger.exception("Cache store failed")
            return None

    async def find_similar(self, request: GenerationRequest, limit: int = 5) -> list[CacheEntry]:
        try:
            return await self._adapter.find_similar(
                (request.theme or "").lower().strip(),
                request.difficulty.value,
                (request.subject or "").lower().strip(),
                limit,
            )
        except Exception:
            logger.exception("Cache similarity lookup failed")
            return []

    async def get_gallery_images(self, query: Optional[GalleryQuery] = None) -> list[CacheEntry]:
        try:
            return await self._adapter.gallery(query or GalleryQuery())
        except Exception:
            logger.exception("Gallery query failed")
            return []

    async def increment_access_count(self, entry_id: str) -> None:
        await self._touch(entry_id)

    async def cleanup(self, max_age_days: float = 30, min_access_count: int = 1) -> int:
        try:
            deleted = await self._adapter.cleanup(cleanup_cutoff(max_age_days), min_access_count)
        except Exception:
            logger.exception("Cache cleanup failed")
            return 0
        logger.info("Cache cleanup removed %d entries", deleted)
        return deleted

    async def get_stats(self) -> CacheStats:
        try:
            return await self._adapter.stats()
        except Exception:
            logger.exception("Cache stats failed")
            return CacheStats()

    async def drain(self) -> None:
        """Wait for pending access-count updates."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _touch(self, entry_id: str) -> None:
        try:
            await self._adapter.touch(entry_id)
        except Exception:
            logger.warning("Access count update failed for %s", entry_id, exc_info=True)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
