from __future__ import annotations

import os
from typing import Optional

import httpx

from .base import StorageAdapter, StorageError


class SupabaseStorageAdapter(StorageAdapter):
    """Supabase Storage over its REST API."""

    def __init__(
        self,
        url: str,
        key: str,
        bucket: str = "coloring-images",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.url = url.rstrip("/")
        self.bucket = bucket
        self._key = key
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_env(
        cls,
        url: str,
        key_env: str = "SUPABASE_ANON_KEY",
        bucket: str = "coloring-images",
        client: Optional[httpx.AsyncClient] = None,
    ) -> "SupabaseStorageAdapter":
        key = os.environ.get(key_env)
        if not key:
            raise StorageError(f"Supabase key not set. Set the {key_env} environment variable.")
        return cls(url, key, bucket, client)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._key}", "apikey": self._key}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, f"{self.url}{path}", timeout=self._timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, f"{self.url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"Supabase request failed: {e}") from e
        if not response.is_success:
            raise StorageError(f"Supabase storage error: {response.status_code} {response.text[:200]}")
        return response

    async def upload(self, key: str, data: bytes, content_type: str, cache_control: str) -> None:
        headers = self._headers()
        headers.update(
            {
                "Content-Type": content_type,
                "cache-control": f"max-age={cache_control}",
                "x-upsert": "false",
            }
        )
        await self._send(
            "POST", f"/storage/v1/object/{self.bucket}/{key}", content=data, headers=headers
        )

    async def delete(self, key: str) -> None:
        await self._send(
            "DELETE",
            f"/storage/v1/object/{self.bucket}",
            json={"prefixes": [key]},
            headers=self._headers(),
        )

    def public_url(self, key: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{key}"
