from __future__ import annotations

from .base import StorageAdapter, StorageError, StorageResult
from .local import LocalStorageAdapter
from .manager import StorageManager
from .noop import NoOpStorageAdapter
from .supabase import SupabaseStorageAdapter
from .transcode import NoOpTranscoder, Transcoder, WebPTranscoder, select_transcoder

__all__ = [
    "StorageAdapter",
    "StorageError",
    "StorageResult",
    "LocalStorageAdapter",
    "StorageManager",
    "NoOpStorageAdapter",
    "SupabaseStorageAdapter",
    "NoOpTranscoder",
    "Transcoder",
    "WebPTranscoder",
    "select_transcoder",
]
