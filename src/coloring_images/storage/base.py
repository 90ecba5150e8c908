from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


class StorageError(Exception):
    """Raised by adapters when an upload or delete fails."""


@dataclass(frozen=True)
class StorageResult:
    public_url: str
    storage_path: Optional[str] = None

    @property
    def stored(self) -> bool:
        return self.storage_path is not None


class StorageAdapter(ABC):
    """Durable object store for generated images."""

    enabled: bool = True

    @abstractmethod
    async def upload(
        self, key: str, data: bytes, content_type: str, cache_control: str
    ) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    def public_url(self, key: str) -> str: ...
