from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from typing import Optional

import httpx
import pytest

from coloring_images.cache import CacheManager, SqlCacheAdapter
from coloring_images.gen.config import MultiProviderStrategy, ProviderPriorityConfig, ServiceConfig
from coloring_images.gen.orchestrator import OrchestratorExhaustedError, ProviderOrchestrator
from coloring_images.gen.provider import ImageProvider, ProviderTransportError
from coloring_images.gen.service import ImageService, create_image_service, storage_filename
from coloring_images.gen.types import Difficulty, GenerateOptions, GenerationRequest, ImageOptions
from coloring_images.storage import LocalStorageAdapter, StorageManager

PNG_URI = "data:image/png;base64," + base64.b64encode(b"fake-png").decode()


class StubProvider(ImageProvider):
    def __init__(self, provider_id: str, result: str = PNG_URI, error: Optional[str] = None):
        super().__init__(None)
        self._id = provider_id
        self.result = result
        self.error = error
        self.prompts: list[str] = []

    @property
    def provider_id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._id

    async def generate_image(self, prompt: str, options: ImageOptions) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise ProviderTransportError(self.error)
        return self.result


def run(coro):
    return asyncio.run(coro)


def orchestrator(*providers: StubProvider) -> ProviderOrchestrator:
    orch = ProviderOrchestrator(
        MultiProviderStrategy(
            priorities=[ProviderPriorityConfig(id=p.provider_id, priority=i) for i, p in enumerate(providers)]
        )
    )
    orch.register_providers(providers)
    return orch


@pytest.fixture
def cache(tmp_path: Path) -> CacheManager:
    adapter = SqlCacheAdapter(f"sqlite:///{tmp_path / 'cache.db'}")
    yield CacheManager(adapter)
    adapter.dispose()


class TestGenerate:
    def test_fallback_then_store_and_cache(self, tmp_path: Path, cache: CacheManager) -> None:
        p1 = StubProvider("p1", error="rate limited")
        p2 = StubProvider("p2")
        storage = StorageManager(LocalStorageAdapter(tmp_path / "images", "http://cdn.test"))
        service = ImageService(orchestrator(p1, p2), cache=cache, storage=storage)

        result = run(service.generate(GenerationRequest("animals", "cat", Difficulty.EASY)))

        assert result.provider == "p2"
        assert result.cached is False
        assert [f.provider_id for f in result.failed_providers] == ["p1"]
        assert result.failed_providers[0].error == "rate limited"
        assert result.storage_path.endswith("-animals-cat.png")
        assert result.image_url == f"http://cdn.test/{result.storage_path}"
        assert result.cache_id is not None

        gallery = run(service.get_gallery_images())
        assert len(gallery) == 1
        assert gallery[0].provider == "p2"
        assert gallery[0].image_url == result.image_url
        assert gallery[0].prompt_text == p2.prompts[0]

    def test_storage_failure_keeps_provider_url(self, tmp_path: Path) -> None:
        provider = StubProvider("p1", result="https://vendor.test/gone.png")

        async def scenario():
            transport = httpx.MockTransport(lambda r: httpx.Response(500))
            async with httpx.AsyncClient(transport=transport) as client:
                storage = StorageManager(LocalStorageAdapter(tmp_path), client=client)
                service = ImageService(orchestrator(provider), storage=storage)
                return await service.generate(GenerationRequest("animals", "cat"))

        result = run(scenario())

        assert result.image_url == "https://vendor.test/gone.png"
        assert result.storage_path is None

    def test_storage_disabled_returns_provider_output(self) -> None:
        service = ImageService(orchestrator(StubProvider("p1")))
        result = run(service.generate(GenerationRequest("animals", "cat")))
        assert result.image_url == PNG_URI
        assert result.storage_path is None
        assert result.cache_id is None

    def test_all_providers_failing_propagates(self, cache: CacheManager) -> None:
        service = ImageService(
            orchestrator(StubProvider("p1", error="down"), StubProvider("p2", error="quota")),
            cache=cache,
        )
        with pytest.raises(OrchestratorExhaustedError) as exc_info:
            run(service.generate(GenerationRequest("animals", "cat")))
        assert len(exc_info.value.failures) == 2
        assert run(cache.get_stats()).total_entries == 0

    def test_specific_provider(self) -> None:
        p1, p2 = StubProvider("p1"), StubProvider("p2", result="https://p2.test/x.png")
        service = ImageService(orchestrator(p1, p2))

        result = run(service.generate(GenerationRequest("animals", "cat"), GenerateOptions(provider="p2")))

        assert result.provider == "p2"
        assert p1.prompts == []

    def test_image_options_forwarded(self) -> None:
        seen: list[ImageOptions] = []

        class Recording(StubProvider):
            async def generate_image(self, prompt: str, options: ImageOptions) -> str:
                seen.append(options)
                return await super().generate_image(prompt, options)

        service = ImageService(orchestrator(Recording("p1")))
        opts = ImageOptions(width=512, height=768, style="cartoon", quality="hd")
        run(service.generate(GenerationRequest("animals", "cat"), GenerateOptions(image_options=opts)))
        assert seen == [opts]


class TestCacheReadPath:
    def test_gallery_only_mode_always_generates(self, cache: CacheManager) -> None:
        provider = StubProvider("p1", result="https://p1.test/a.png")
        service = ImageService(orchestrator(provider), cache=cache, default_provider="p1")
        request = GenerationRequest("animals", "cat")

        first = run(service.generate(request))
        second = run(service.generate(request))

        assert len(provider.prompts) == 2
        assert first.cached is False and second.cached is False
        assert run(service.get_cache_stats()).total_entries == 2

    def test_read_enabled_returns_hit(self, cache: CacheManager) -> None:
        provider = StubProvider("p1", result="https://p1.test/a.png")
        service = ImageService(
            orchestrator(provider), cache=cache, default_provider="p1", cache_read_enabled=True
        )

        first = run(service.generate(GenerationRequest("Animals", "Cat")))
        second = run(service.generate(GenerationRequest("animals", " cat ")))

        assert len(provider.prompts) == 1
        assert second.cached is True
        assert second.cache_id == first.cache_id
        assert second.image_url == "https://p1.test/a.png"

    def test_force_refresh_and_skip_cache_bypass(self, cache: CacheManager) -> None:
        provider = StubProvider("p1")
        service = ImageService(
            orchestrator(provider), cache=cache, default_provider="p1", cache_read_enabled=True
        )
        request = GenerationRequest("animals", "cat")

        run(service.generate(request))
        run(service.generate(request, GenerateOptions(force_refresh=True)))
        run(service.generate(request, GenerateOptions(skip_cache=True)))

        assert len(provider.prompts) == 3

    def test_check_cache_uses_given_provider(self, cache: CacheManager) -> None:
        service = ImageService(orchestrator(StubProvider("p1")), cache=cache, default_provider="p1")
        request = GenerationRequest("animals", "cat")
        run(service.generate(request))

        assert run(service.check_cache(request)) is not None
        assert run(service.check_cache(request, "other")) is None


class TestServiceOperations:
    def test_generate_from_prompt(self, tmp_path: Path, cache: CacheManager) -> None:
        provider = StubProvider("p1")
        storage = StorageManager(LocalStorageAdapter(tmp_path))
        service = ImageService(orchestrator(provider), cache=cache, storage=storage)

        result = run(service.generate_from_prompt("a lighthouse on a cliff"))

        assert provider.prompts == ["a lighthouse on a cliff"]
        assert "-custom-" in result.storage_path
        assert run(cache.get_stats()).total_entries == 0

    def test_increment_and_cleanup(self, cache: CacheManager) -> None:
        service = ImageService(orchestrator(StubProvider("p1")), cache=cache)
        result = run(service.generate(GenerationRequest("animals", "cat")))

        run(service.increment_access_count(result.cache_id))
        run(service.increment_access_count(result.cache_id))

        assert run(service.get_cache_stats()).total_hits == 2
        assert run(service.cleanup_cache(max_age_days=0, min_access_count=5)) == 1

    def test_storage_filename(self) -> None:
        assert storage_filename(GenerationRequest("sea life", "big  blue whale")) == "sea-life-big-blue-whale"


class TestCreateImageService:
    def test_wires_from_config(self, tmp_path: Path) -> None:
        config = ServiceConfig.model_validate(
            {
                "default_provider": "placeholder",
                "providers": {"placeholder": {}},
                "cache": {"backend": "sql", "url": f"sqlite:///{tmp_path / 'c.db'}"},
                "storage": {"backend": "local", "directory": str(tmp_path / "img"), "transcode": False},
            }
        )

        async def scenario():
            service = create_image_service(config)
            try:
                result = await service.generate(GenerationRequest("animals", "cat"))
                stats = await service.get_cache_stats()
            finally:
                await service.aclose()
            return service, result, stats

        service, result, stats = run(scenario())

        assert service.default_provider == "placeholder"
        assert service.cache.enabled and service.storage.enabled
        assert result.provider == "placeholder"
        assert result.storage_path.endswith(".png")
        assert (tmp_path / "img" / result.storage_path).exists()
        assert stats.total_entries == 1

    def test_default_provider_is_first_enabled_registered(self) -> None:
        config = ServiceConfig.model_validate(
            {
                "default_provider": "placeholder",
                "providers": {"placeholder": {}, "openai": {"api_key": "sk"}},
            }
        )
        service = create_image_service(config)
        run(service.aclose())

        assert service.default_provider == "openai"
        assert sorted(service.orchestrator.registered_provider_ids()) == ["openai", "placeholder"]
        assert service.cache.enabled is False
        assert service.storage.enabled is False

    def test_falls_back_to_configured_default(self) -> None:
        config = ServiceConfig.model_validate(
            {
                "default_provider": "placeholder",
                "providers": {"placeholder": {}},
                "strategy": {"priorities": [{"id": "placeholder", "enabled": False}]},
            }
        )
        service = create_image_service(config)
        run(service.aclose())

        assert service.default_provider == "placeholder"


def test_gen_package_exports_request_types() -> None:
    import coloring_images.gen as gen

    assert gen.GenerationRequest is GenerationRequest
    assert gen.Difficulty.HARD.value == "hard"
    assert "ImageOptions" in gen.__all__
