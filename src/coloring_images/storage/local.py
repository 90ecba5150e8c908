from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from .base import StorageAdapter, StorageError


class LocalStorageAdapter(StorageAdapter):
    """Writes objects under a directory, optionally served at ``public_base_url``."""

    def __init__(self, directory: Path | str, public_base_url: Optional[str] = None):
        self.directory = Path(directory)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _path_for(self, key: str) -> Path:
        path = (self.directory / key).resolve()
        if self.directory.resolve() not in path.parents:
            raise StorageError(f"Key escapes storage directory: {key}")
        return path

    async def upload(self, key: str, data: bytes, content_type: str, cache_control: str) -> None:
        path = self._path_for(key)
        if path.exists():
            raise StorageError(f"Object already exists: {key}")

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise StorageError(f"Upload failed: {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise StorageError(f"Delete failed: {e}") from e

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return (self.directory / key).resolve().as_uri()
