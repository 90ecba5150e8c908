from __future__ import annotations

from .base import CacheAdapter, CacheEntry, CacheError, CacheStats, GalleryQuery, NewCacheEntry
from .key import compute_fingerprint
from .manager import CacheManager
from .noop import NoOpCacheAdapter
from .sql import SqlCacheAdapter

__all__ = [
    "CacheAdapter",
    "CacheEntry",
    "CacheError",
    "CacheStats",
    "GalleryQuery",
    "NewCacheEntry",
    "compute_fingerprint",
    "CacheManager",
    "NoOpCacheAdapter",
    "SqlCacheAdapter",
]
