from __future__ import annotations

import logging
import re
import time
from typing import Optional

import httpx

from ..cache import (
    CacheAdapter,
    CacheEntry,
    CacheManager,
    CacheStats,
    GalleryQuery,
    NoOpCacheAdapter,
    SqlCacheAdapter,
)
from ..cache.base import GalleryOrder
from ..storage import (
    LocalStorageAdapter,
    NoOpStorageAdapter,
    StorageAdapter,
    StorageError,
    StorageManager,
    SupabaseStorageAdapter,
    select_transcoder,
)
from .config import ConfigError, ServiceConfig
from .orchestrator import ProviderOrchestrator
from .prompting import PromptBuilder
from .registry import ProviderRegistry
from .types import GenerateOptions, GenerationRequest, GenerationResult, ImageOptions

logger = logging.getLogger(__name__)


def storage_filename(request: GenerationRequest) -> str:
    return re.sub(r"\s+", "-", f"{request.theme}-{request.subject}")


class ImageService:
    """Cache lookup, prompt building, provider fallback and persistence in one flow."""

    def __init__(
        self,
        orchestrator: ProviderOrchestrator,
        cache: Optional[CacheManager] = None,
        storage: Optional[StorageManager] = None,
        prompts: Optional[PromptBuilder] = None,
        default_provider: Optional[str] = None,
        cache_read_enabled: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._orchestrator = orchestrator
        self._cache = cache or CacheManager()
        self._storage = storage or StorageManager()
        self._prompts = prompts or PromptBuilder()
        self._default_provider = default_provider
        self._cache_read_enabled = cache_read_enabled
        self._client = client

    @property
    def orchestrator(self) -> ProviderOrchestrator:
        return self._orchestrator

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def storage(self) -> StorageManager:
        return self._storage

    @property
    def prompts(self) -> PromptBuilder:
        return self._prompts

    @property
    def default_provider(self) -> Optional[str]:
        return self._default_provider

    async def generate(
        self, request: GenerationRequest, options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        """Produce an image for ``request``.

        Raises:
            OrchestratorExhaustedError: If no provider produced an image.
        """
        options = options or GenerateOptions()

        if self._cache_read_enabled and not options.skip_cache and not options.force_refresh:
            hit = await self.check_cache(request, options.provider)
            if hit is not None:
                logger.info("Cache hit for %s/%s (%s)", request.theme, request.subject, hit.id)
                return GenerationResult(
                    image_url=hit.image_url,
                    provider=hit.provider,
                    cached=True,
                    cache_id=hit.id,
                    storage_path=hit.storage_path,
                )

        prompt = self._prompts.build(request)
        logger.debug("Prompt: %s", prompt)
        result = await self._run(prompt, options)

        await self._persist(result, storage_filename(request))

        if self._cache.enabled:
            result.cache_id = await self._cache.store(
                request, prompt, result.provider, result.image_url, result.storage_path
            )
        return result

    async def generate_from_prompt(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> GenerationResult:
        options = options or GenerateOptions()
        result = await self._run(prompt, options)
        await self._persist(result, f"custom-{int(time.time() * 1000)}")
        return result

    async def _run(self, prompt: str, options: GenerateOptions) -> GenerationResult:
        image_options = options.image_options or ImageOptions()
        if options.provider:
            return await self._orchestrator.generate_with_provider(
                options.provider, prompt, image_options, options.timeout
            )
        return await self._orchestrator.generate(prompt, image_options)

    async def _persist(self, result: GenerationResult, filename: str) -> None:
        if not self._storage.enabled:
            return
        stored = await self._storage.store(result.image_url, filename)
        result.image_url = stored.public_url
        result.storage_path = stored.storage_path

    async def check_cache(
        self, request: GenerationRequest, provider: Optional[str] = None
    ) -> Optional[CacheEntry]:
        provider_id = provider or self._default_provider
        if not self._cache.enabled or not provider_id:
            return None
        return await self._cache.find_exact_match(request, provider_id)

    async def get_cache_stats(self) -> CacheStats:
        return await self._cache.get_stats()

    async def cleanup_cache(self, max_age_days: float = 30, min_access_count: int = 1) -> int:
        return await self._cache.cleanup(max_age_days, min_access_count)

    async def get_gallery_images(
        self,
        theme: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        order_by: GalleryOrder = "popular",
    ) -> list[CacheEntry]:
        return await self._cache.get_gallery_images(
            GalleryQuery(theme=theme, limit=limit, offset=offset, order_by=order_by)
        )

    async def increment_access_count(self, entry_id: str) -> None:
        await self._cache.increment_access_count(entry_id)

    async def aclose(self) -> None:
        await self._cache.drain()
        adapter = self._cache.adapter
        if isinstance(adapter, SqlCacheAdapter):
            adapter.dispose()
        if self._client is not None:
            await self._client.aclose()


def _cache_adapter(config: ServiceConfig) -> CacheAdapter:
    if config.cache.backend == "sql":
        return SqlCacheAdapter(config.cache.url)
    return NoOpCacheAdapter()


def _storage_adapter(config: ServiceConfig, client: httpx.AsyncClient) -> StorageAdapter:
    storage = config.storage
    if storage.backend == "local":
        return LocalStorageAdapter(storage.directory, storage.public_base_url)
    if storage.backend == "supabase":
        try:
            return SupabaseStorageAdapter.from_env(
                storage.supabase_url or "", storage.supabase_key_env, storage.bucket, client
            )
        except StorageError as e:
            raise ConfigError(str(e)) from e
    return NoOpStorageAdapter()


def create_image_service(
    config: ServiceConfig,
    client: Optional[httpx.AsyncClient] = None,
    prompts: Optional[PromptBuilder] = None,
) -> ImageService:
    """Build a fully wired service from configuration.

    When no client is passed, one shared ``httpx.AsyncClient`` is created and
    closed by ``ImageService.aclose``.
    """
    owned_client = None
    if client is None:
        client = owned_client = httpx.AsyncClient(timeout=60.0)

    registry = ProviderRegistry(config, client)
    orchestrator = ProviderOrchestrator(config.strategy)
    orchestrator.register_providers(registry.configured_providers())

    registered = set(orchestrator.registered_provider_ids())
    enabled = [pid for pid in orchestrator.enabled_provider_ids() if pid in registered]
    default_provider = enabled[0] if enabled else config.default_provider

    storage = StorageManager(
        _storage_adapter(config, client),
        select_transcoder(config.storage.transcode),
        client,
    )
    logger.info(
        "Image service ready: providers=%s default=%s cache=%s storage=%s",
        sorted(registered),
        default_provider,
        config.cache.backend,
        config.storage.backend,
    )
    return ImageService(
        orchestrator,
        cache=CacheManager(_cache_adapter(config)),
        storage=storage,
        prompts=prompts,
        default_provider=default_provider,
        cache_read_enabled=config.cache.read_enabled,
        client=owned_client,
    )
