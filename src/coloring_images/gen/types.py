from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional

ImageStyle = Literal["line_art", "realistic", "cartoon", "sketch"]
ImageQuality = Literal["standard", "hd"]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class GenerationRequest:
    theme: str
    subject: str
    difficulty: Difficulty = Difficulty.EASY
    custom_prompt: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.difficulty, Difficulty):
            object.__setattr__(self, "difficulty", Difficulty(self.difficulty))


@dataclass(frozen=True)
class ImageOptions:
    width: Optional[int] = 1024
    height: Optional[int] = 1024
    style: ImageStyle = "line_art"
    quality: ImageQuality = "standard"


@dataclass(frozen=True)
class ProviderError:
    """One failed provider attempt, recorded in attempt order."""

    provider_id: str
    provider_name: str
    error: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class GenerationResult:
    image_url: str
    provider: str
    cached: bool = False
    cache_id: Optional[str] = None
    storage_path: Optional[str] = None
    failed_providers: list[ProviderError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "imageUrl": self.image_url,
            "provider": self.provider,
            "cached": self.cached,
            "cacheId": self.cache_id,
            "storagePath": self.storage_path,
            "failedProviders": [
                {
                    "providerId": f.provider_id,
                    "providerName": f.provider_name,
                    "error": f.error,
                    "timestamp": f.timestamp,
                }
                for f in self.failed_providers
            ],
        }


@dataclass
class GenerateOptions:
    provider: Optional[str] = None
    skip_cache: bool = False
    force_refresh: bool = False
    timeout: Optional[float] = None
    image_options: Optional[ImageOptions] = None
