from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CONFIG_FILENAME = "coloring.toml"


class ConfigError(Exception):
    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        if path:
            loc = f"{path}"
            if line:
                loc += f":{line}"
            message = f"{loc}: {message}"
        super().__init__(message)


class _KeyedProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    api_key_env: str
    api_key: Optional[str] = None

    def resolve_api_key(self, provider_id: str) -> str:
        key = self.api_key or os.getenv(self.api_key_env)
        if not key:
            raise ConfigError(
                f"Provider '{provider_id}' has no API key. "
                f"Set {self.api_key_env} or providers.{provider_id}.api_key."
            )
        return key


class PlaceholderProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    latency: float = Field(default=0.0, ge=0.0)


class OpenAIProviderConfig(_KeyedProviderConfig):
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str = "https://api.openai.com/v1"
    model: str = "dall-e-3"


class GeminiProviderConfig(_KeyedProviderConfig):
    api_key_env: str = "GEMINI_API_KEY"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "imagen-3.0-generate-001"


class AntigravityProviderConfig(_KeyedProviderConfig):
    api_key_env: str = "ANTIGRAVITY_API_KEY"
    base_url: str
    model: str = "dall-e-3"
    request_timeout: float = Field(default=60.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def normalize_base_url(cls, v: str) -> str:
        v = v.rstrip("/")
        if not v:
            raise ValueError("base_url cannot be empty")
        if not v.endswith("/v1"):
            v = f"{v}/v1"
        return v

    def resolve_api_key(self, provider_id: str) -> str:
        # local proxies usually run without auth
        return self.api_key or os.getenv(self.api_key_env) or "local"


class ModelScopeProviderConfig(_KeyedProviderConfig):
    api_key_env: str = "MODELSCOPE_API_KEY"
    base_url: str = "https://api-inference.modelscope.cn"
    model: str = "Qwen/Qwen-Image-2512"
    timeout: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=5.0, ge=0)
    max_polls: int = Field(default=24, ge=1)


class LabNanaProviderConfig(_KeyedProviderConfig):
    api_key_env: str = "LABNANA_API_KEY"
    base_url: str = "https://api.labnana.com"
    request_timeout: float = Field(default=120.0, gt=0)


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    placeholder: Optional[PlaceholderProviderConfig] = None
    openai: Optional[OpenAIProviderConfig] = None
    gemini: Optional[GeminiProviderConfig] = None
    antigravity: Optional[AntigravityProviderConfig] = None
    modelscope: Optional[ModelScopeProviderConfig] = None
    labnana: Optional[LabNanaProviderConfig] = None

    def configured(self) -> list[str]:
        return [name for name in type(self).model_fields if getattr(self, name) is not None]


class ProviderPriorityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    priority: int = 0
    enabled: bool = True
    timeout: Optional[float] = Field(default=None, gt=0)
    max_retries: Optional[int] = Field(default=None, ge=0)


class MultiProviderStrategy(BaseModel):
    model_config = ConfigDict(extra="forbid")
    priorities: list[ProviderPriorityConfig] = Field(default_factory=list)
    auto_fallback: bool = True
    global_timeout: Optional[float] = Field(default=None, gt=0)


def default_strategy() -> MultiProviderStrategy:
    return MultiProviderStrategy(
        priorities=[
            ProviderPriorityConfig(id="modelscope", priority=0, timeout=120.0),
            ProviderPriorityConfig(id="gemini", priority=1, timeout=60.0),
            ProviderPriorityConfig(id="antigravity", priority=2, timeout=60.0),
            ProviderPriorityConfig(id="openai", priority=3, timeout=60.0),
            ProviderPriorityConfig(id="labnana", priority=4, timeout=120.0),
            ProviderPriorityConfig(id="placeholder", priority=5, timeout=10.0),
        ],
        auto_fallback=True,
        global_timeout=180.0,
    )


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: Literal["sql", "none"] = "none"
    url: str = "sqlite:///image_cache.db"
    read_enabled: bool = False


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend: Literal["local", "supabase", "none"] = "none"
    transcode: bool = True
    directory: str = "generated"
    public_base_url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key_env: str = "SUPABASE_ANON_KEY"
    bucket: str = "coloring-images"

    @model_validator(mode="after")
    def check_backend_settings(self) -> "StorageConfig":
        if self.backend == "supabase" and not self.supabase_url:
            raise ValueError("storage.supabase_url is required for the supabase backend")
        return self


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    default_provider: Optional[str] = None
    providers: ProvidersConfig = ProvidersConfig()
    strategy: MultiProviderStrategy = Field(default_factory=default_strategy)
    cache: CacheConfig = CacheConfig()
    storage: StorageConfig = StorageConfig()

    @model_validator(mode="after")
    def check_default_provider_exists(self) -> "ServiceConfig":
        provider_names = self.providers.configured()
        if self.default_provider and provider_names and self.default_provider not in provider_names:
            raise ValueError(
                f"default_provider '{self.default_provider}' is not configured. "
                f"Available providers: {sorted(provider_names)}"
            )
        return self


def load_config(config_path: Path) -> ServiceConfig:
    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} or pass --config",
            path=config_path,
        )

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore

    try:
        text = config_path.read_text(encoding="utf-8")
        data = tomllib.loads(text)
    except Exception as e:
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path) from e

    try:
        return ServiceConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}", path=config_path) from e


def find_config(start_dir: Optional[Path] = None) -> Path:
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()
    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        current = current.parent

    return start_dir / CONFIG_FILENAME
