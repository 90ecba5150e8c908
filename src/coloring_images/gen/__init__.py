from __future__ import annotations

from .types import (
    Difficulty,
    GenerateOptions,
    GenerationRequest,
    GenerationResult,
    ImageOptions,
    ProviderError,
)

__all__ = [
    "Difficulty",
    "GenerateOptions",
    "GenerationRequest",
    "GenerationResult",
    "ImageOptions",
    "ProviderError",
]
