from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from .types import ImageOptions


class ImageProviderError(Exception):
    """Base class for failures raised by an image provider."""


class ProviderTransportError(ImageProviderError):
    """Network failure, non-success HTTP status, or timeout."""


class ProviderTimeoutError(ProviderTransportError):
    pass


class ProviderProtocolError(ImageProviderError):
    """The vendor answered but the response lacks the expected image."""


def to_data_uri(data: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def vendor_message(response: httpx.Response) -> str:
    """Best-effort extraction of a vendor error message from an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class ImageProvider(ABC):
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    @property
    @abstractmethod
    def provider_id(self) -> str: ...

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        """Generate one image and return its URL or a ``data:`` URI."""
        raise NotImplementedError

    def features(self) -> list[str]:
        return []

    @asynccontextmanager
    async def _http(self, timeout: Optional[float] = None) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=timeout) as client:
            yield client

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        payload: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        try:
            async with self._http(timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    json=payload,
                    params=params,
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"{self.name} request timeout after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"{self.name} request failed: {e}") from e

        if not response.is_success:
            raise ProviderTransportError(
                f"{self.name} API Error: {response.status_code} {vendor_message(response)}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderProtocolError(f"{self.name} returned a non-JSON response") from e

    async def _download(self, url: str, timeout: Optional[float] = None) -> tuple[bytes, str]:
        try:
            async with self._http(timeout) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"Failed to download image: {e}") from e
        if not response.is_success:
            raise ProviderTransportError(
                f"Failed to download image: {response.status_code} {response.reason_phrase}"
            )
        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return response.content, content_type or "image/png"
