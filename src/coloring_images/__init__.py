from __future__ import annotations

from .gen.config import ServiceConfig, load_config
from .gen.orchestrator import OrchestratorExhaustedError, ProviderOrchestrator
from .gen.service import ImageService, create_image_service
from .gen.types import Difficulty, GenerateOptions, GenerationRequest, GenerationResult, ImageOptions

__version__ = "0.1.0"

__all__ = [
    "ServiceConfig",
    "load_config",
    "OrchestratorExhaustedError",
    "ProviderOrchestrator",
    "ImageService",
    "create_image_service",
    "Difficulty",
    "GenerateOptions",
    "GenerationRequest",
    "GenerationResult",
    "ImageOptions",
]
