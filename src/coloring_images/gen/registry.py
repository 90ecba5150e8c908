from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from .config import ConfigError, ServiceConfig, find_config, load_config
from .provider import ImageProvider
from .providers import (
    AntigravityProvider,
    GeminiProvider,
    LabNanaProvider,
    ModelScopeProvider,
    OpenAIProvider,
    PlaceholderProvider,
)


class ProviderRegistry:
    """Instantiates providers from their config sections, once each."""

    def __init__(self, config: ServiceConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client
        self._providers: dict[str, ImageProvider] = {}

    @classmethod
    def from_config_file(
        cls, config_path: Optional[Path] = None, client: Optional[httpx.AsyncClient] = None
    ) -> "ProviderRegistry":
        if config_path is None:
            config_path = find_config()
        config = load_config(config_path)
        return cls(config, client)

    @property
    def config(self) -> ServiceConfig:
        return self._config

    def get_provider(self, name: str) -> ImageProvider:
        if name in self._providers:
            return self._providers[name]

        provider = self._instantiate_provider(name)
        self._providers[name] = provider
        return provider

    def configured_providers(self) -> list[ImageProvider]:
        return [self.get_provider(name) for name in self._config.providers.configured()]

    def _instantiate_provider(self, name: str) -> ImageProvider:
        providers = self._config.providers
        section = getattr(providers, name, None) if name in type(providers).model_fields else None

        if name == "placeholder":
            return PlaceholderProvider(section)

        if section is None:
            available = sorted(set(providers.configured()) | {"placeholder"})
            raise ConfigError(
                f"Provider '{name}' is not configured. "
                f"Add a [providers.{name}] section. Available providers: {available}"
            )

        if name == "openai":
            return OpenAIProvider(section, self._client)
        if name == "gemini":
            return GeminiProvider(section, self._client)
        if name == "antigravity":
            return AntigravityProvider(section, self._client)
        if name == "modelscope":
            return ModelScopeProvider(section, self._client)
        if name == "labnana":
            return LabNanaProvider(section, self._client)

        raise ConfigError(f"Unknown provider: '{name}'")
