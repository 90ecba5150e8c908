from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

import httpx

from ..config import ModelScopeProviderConfig
from ..provider import (
    ImageProvider,
    ProviderProtocolError,
    ProviderTimeoutError,
    ProviderTransportError,
    to_data_uri,
)
from ..types import ImageOptions

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    # the API reports PROCESSING rather than RUNNING in practice
    PROCESSING = "PROCESSING"
    SUCCEED = "SUCCEED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


IN_PROGRESS = {TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.PROCESSING}


class ModelScopeTaskError(ProviderTransportError):
    """The remote job reached a terminal failure state."""


class ModelScopeProvider(ImageProvider):
    """Asynchronous job-queue API: submit a task, then poll until it settles.

    A successful task's output is downloaded and returned inline, because
    ModelScope output URLs are short-lived and not served with CORS headers.
    """

    def __init__(self, config: ModelScopeProviderConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(client)
        self._config = config
        self._api_key = config.resolve_api_key(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "modelscope"

    @property
    def name(self) -> str:
        return "ModelScope"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", **extra}

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        try:
            return await asyncio.wait_for(self._run(prompt, options), timeout=self._config.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"ModelScope task timeout after {self._config.timeout}s"
            ) from e

    async def _run(self, prompt: str, options: ImageOptions) -> str:
        task_id = await self.submit(prompt, options)
        logger.info("ModelScope task submitted: %s", task_id)
        output_url = await self.wait_for_output(task_id)
        return await self._inline(output_url)

    async def submit(self, prompt: str, options: ImageOptions) -> str:
        payload: dict[str, Any] = {"model": self._config.model, "prompt": prompt}
        if options.width and options.height:
            payload["size"] = f"{options.width}x{options.height}"
        data = await self._request_json(
            "POST",
            f"{self._config.base_url}/v1/images/generations",
            headers=self._headers(**{"X-ModelScope-Async-Mode": "true"}),
            payload=payload,
        )
        task_id = data.get("task_id")
        if not task_id:
            raise ProviderProtocolError("No task_id received from ModelScope")
        return task_id

    async def get_status(self, task_id: str) -> dict[str, Any]:
        return await self._request_json(
            "GET",
            f"{self._config.base_url}/v1/tasks/{task_id}",
            headers=self._headers(**{"X-ModelScope-Task-Type": "image_generation"}),
        )

    async def wait_for_output(self, task_id: str) -> str:
        max_polls = self._config.max_polls
        for attempt in range(max_polls):
            if attempt > 0:
                await asyncio.sleep(self._config.poll_interval)

            try:
                data = await self.get_status(task_id)
            except ProviderTransportError as e:
                if attempt >= max_polls - 1:
                    raise
                logger.warning("ModelScope poll %d/%d failed: %s", attempt + 1, max_polls, e)
                continue

            raw_status = data.get("task_status")
            try:
                status = TaskStatus(raw_status)
            except ValueError:
                raise ProviderProtocolError(f"Unknown task status: {raw_status}") from None

            logger.debug("ModelScope task %s status %s", task_id, status.value)
            if status is TaskStatus.SUCCEED:
                images = data.get("output_images") or []
                if not images:
                    raise ProviderProtocolError("No output images in successful task")
                return images[0]
            if status is TaskStatus.FAILED:
                reason = data.get("message") or data.get("error") or "Unknown error"
                raise ModelScopeTaskError(f"ModelScope task failed: {reason}")
            if status is TaskStatus.TIMEOUT:
                raise ProviderTimeoutError("ModelScope task timeout")

        raise ProviderTimeoutError(f"ModelScope task timeout after {max_polls} polls")

    async def _inline(self, url: str) -> str:
        try:
            data, content_type = await self._download(url)
        except ProviderTransportError as e:
            logger.warning("Could not inline ModelScope output, returning remote URL: %s", e)
            return url
        return to_data_uri(data, content_type)

    def features(self) -> list[str]:
        return ["async_generation", "chinese_prompt", "free_tier", "line_art", "custom_models"]
