from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

GalleryOrder = Literal["popular", "recent"]


class CacheError(Exception):
    """Raised by adapters when the backing store fails."""


@dataclass
class CacheEntry:
    id: str
    prompt_hash: str
    prompt_text: str
    theme: str
    subject: str
    difficulty: str
    provider: str
    image_url: str
    created_at: datetime
    last_accessed_at: datetime
    access_count: int = 0
    custom_prompt: Optional[str] = None
    storage_path: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prompt_hash": self.prompt_hash,
            "prompt_text": self.prompt_text,
            "theme": self.theme,
            "subject": self.subject,
            "difficulty": self.difficulty,
            "custom_prompt": self.custom_prompt,
            "provider": self.provider,
            "image_url": self.image_url,
            "storage_path": self.storage_path,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "access_count": self.access_count,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class NewCacheEntry:
    prompt_hash: str
    prompt_text: str
    theme: str
    subject: str
    difficulty: str
    provider: str
    image_url: str
    custom_prompt: Optional[str] = None
    storage_path: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CacheStats:
    total_entries: int = 0
    total_hits: int = 0
    top_themes: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class GalleryQuery:
    theme: Optional[str] = None
    limit: int = 20
    offset: int = 0
    order_by: GalleryOrder = "popular"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def cleanup_cutoff(max_age_days: float, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - timedelta(days=max_age_days)


class CacheAdapter(ABC):
    """Backing store for generated-image records."""

    enabled: bool = True

    @abstractmethod
    async def find_exact_match(self, prompt_hash: str, provider: str) -> Optional[CacheEntry]: ...

    @abstractmethod
    async def insert(self, entry: NewCacheEntry) -> str: ...

    @abstractmethod
    async def touch(self, entry_id: str) -> None:
        """Bump access_count and last_accessed_at."""

    @abstractmethod
    async def find_similar(
        self, theme: str, difficulty: str, subject: str, limit: int
    ) -> list[CacheEntry]: ...

    @abstractmethod
    async def gallery(self, query: GalleryQuery) -> list[CacheEntry]: ...

    @abstractmethod
    async def cleanup(self, cutoff: datetime, min_access_count: int) -> int: ...

    @abstractmethod
    async def stats(self) -> CacheStats: ...
