from __future__ import annotations

from pathlib import Path

import pytest

from coloring_images.gen.config import ConfigError, ServiceConfig, find_config, load_config
from coloring_images.gen.providers import OpenAIProvider, PlaceholderProvider
from coloring_images.gen.registry import ProviderRegistry


class TestLoadConfig:
    def test_load_valid_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("""
default_provider = "placeholder"

[providers.placeholder]

[strategy]
auto_fallback = false
global_timeout = 30

[[strategy.priorities]]
id = "placeholder"
priority = 0
timeout = 5

[cache]
backend = "sql"
url = "sqlite:///cache.db"
read_enabled = true

[storage]
backend = "local"
directory = "out"
""")
        config = load_config(config_file)
        assert config.default_provider == "placeholder"
        assert config.providers.placeholder is not None
        assert config.providers.configured() == ["placeholder"]
        assert config.strategy.auto_fallback is False
        assert config.strategy.priorities[0].timeout == 5
        assert config.cache.read_enabled is True
        assert config.storage.directory == "out"

    def test_defaults(self) -> None:
        config = ServiceConfig()
        assert config.providers.configured() == []
        assert config.cache.backend == "none"
        assert config.cache.read_enabled is False
        assert config.storage.backend == "none"
        assert [p.id for p in config.strategy.priorities][0] == "modelscope"

    def test_missing_config_produces_helpful_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "coloring.toml")

        error_msg = str(exc_info.value)
        assert "not found" in error_msg.lower()
        assert "--config" in error_msg

    def test_invalid_toml_produces_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("this is not valid [toml")

        with pytest.raises(ConfigError, match="parse"):
            load_config(config_file)

    def test_invalid_default_provider_produces_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("""
default_provider = "nonexistent"

[providers.placeholder]
""")
        with pytest.raises(ConfigError) as exc_info:
            load_config(config_file)

        error_msg = str(exc_info.value)
        assert "nonexistent" in error_msg
        assert "placeholder" in error_msg

    def test_unknown_keys_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("""
[cache]
backend = "sql"
colour = "blue"
""")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(config_file)

    def test_supabase_requires_url(self) -> None:
        with pytest.raises(ValueError, match="supabase_url"):
            ServiceConfig.model_validate({"storage": {"backend": "supabase"}})

    def test_find_config_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / "coloring.toml").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == (tmp_path / "coloring.toml").resolve()


class TestProviderRegistry:
    def test_get_placeholder_provider(self, tmp_path: Path) -> None:
        config_file = tmp_path / "coloring.toml"
        config_file.write_text("""
default_provider = "placeholder"

[providers.placeholder]
""")
        registry = ProviderRegistry.from_config_file(config_file)
        provider = registry.get_provider("placeholder")

        assert isinstance(provider, PlaceholderProvider)
        assert provider.provider_id == "placeholder"
        assert registry.get_provider("placeholder") is provider

    def test_placeholder_available_without_section(self) -> None:
        registry = ProviderRegistry(ServiceConfig())
        assert isinstance(registry.get_provider("placeholder"), PlaceholderProvider)

    def test_unconfigured_provider_lists_available(self) -> None:
        registry = ProviderRegistry(ServiceConfig())
        with pytest.raises(ConfigError) as exc_info:
            registry.get_provider("openai")
        assert "[providers.openai]" in str(exc_info.value)
        assert "placeholder" in str(exc_info.value)

    def test_configured_providers(self) -> None:
        config = ServiceConfig.model_validate(
            {"providers": {"placeholder": {}, "openai": {"api_key": "sk-1"}}}
        )
        providers = ProviderRegistry(config).configured_providers()
        assert sorted(p.provider_id for p in providers) == ["openai", "placeholder"]
        assert any(isinstance(p, OpenAIProvider) for p in providers)
