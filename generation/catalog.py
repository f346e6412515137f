"""Known generation models and their provider coordinates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import UnknownModelError


@dataclass(frozen=True)
class ModelConfig:
    key: str
    provider: str
    slug: str
    version: str
    description: str = ""
    defaults: Dict[str, Any] = field(default_factory=dict)

    def build_input(self, inputs: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the model defaults with request inputs; request values win."""
        merged = dict(self.defaults)
        merged.update({key: value for key, value in inputs.items() if value is not None})
        return merged


DEFAULT_MODELS: List[ModelConfig] = [
    ModelConfig(
        key="imagen-4",
        provider="replicate",
        slug="google/imagen-4",
        version="7a54f1d7f23abba0bd8341bd31412a06ebea759eca9e15ce5fcf4059bcc6c0f1",
        description="Imagen-4, latest Google model with improved quality and accuracy.",
        defaults={"safety_filter_level": "block_medium_and_above"},
    ),
    ModelConfig(
        key="imagen-3",
        provider="replicate",
        slug="google/imagen-3",
        version="7a54f1d7f23abba0bd8341bd31412a06ebea759eca9e15ce5fcf4059bcc6c0f1",
        description="Imagen-3, Google's previous generation image model.",
        defaults={"safety_filter_level": "block_medium_and_above"},
    ),
    ModelConfig(
        key="flux-schnell",
        provider="replicate",
        slug="black-forest-labs/flux-schnell",
        version="black-forest-labs/flux-schnell",
        description="Flux Schnell, fast text-to-image generation.",
        defaults={"output_format": "png"},
    ),
]


class ModelCatalog:
    def __init__(self, models: Optional[Iterable[ModelConfig]] = None) -> None:
        source = DEFAULT_MODELS if models is None else models
        self._models: Dict[str, ModelConfig] = {model.key: model for model in source}

    def find(self, key: str) -> Optional[ModelConfig]:
        return self._models.get(key)

    def require(self, key: str) -> ModelConfig:
        model = self._models.get(key)
        if model is None:
            raise UnknownModelError(f"Unknown model: {key}")
        return model
