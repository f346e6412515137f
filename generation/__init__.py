"""Public API for the generation package."""

from .catalog import DEFAULT_MODELS, ModelCatalog, ModelConfig
from .exceptions import (
    ConfigurationError,
    DownloadError,
    EmptyOutputError,
    GenerationError,
    InvalidImageError,
    PredictionFailedError,
    PredictionTimeoutError,
    ProviderError,
    UnknownModelError,
)
from .prediction import Prediction, PredictionClient
from .prompts import CarRow, build_prompt, make_filename, normalize_aspect_ratio
from .service import GeneratedImage, ImageGenerationService
from . import imaging

__all__ = [
    "DEFAULT_MODELS",
    "CarRow",
    "ConfigurationError",
    "DownloadError",
    "EmptyOutputError",
    "GeneratedImage",
    "GenerationError",
    "ImageGenerationService",
    "InvalidImageError",
    "ModelCatalog",
    "ModelConfig",
    "Prediction",
    "PredictionClient",
    "PredictionFailedError",
    "PredictionTimeoutError",
    "ProviderError",
    "UnknownModelError",
    "build_prompt",
    "imaging",
    "make_filename",
    "normalize_aspect_ratio",
]
