from __future__ import annotations

from .antigravity import AntigravityProvider
from .gemini import GeminiProvider
from .labnana import LabNanaProvider
from .modelscope import ModelScopeProvider, TaskStatus
from .openai import OpenAIProvider
from .placeholder import PlaceholderProvider

__all__ = [
    "AntigravityProvider",
    "GeminiProvider",
    "LabNanaProvider",
    "ModelScopeProvider",
    "OpenAIProvider",
    "PlaceholderProvider",
    "TaskStatus",
]
