"""Custom exceptions for the generation package."""

from __future__ import annotations

from typing import Optional


class GenerationError(Exception):
    """Base exception for all generation related errors."""


class ConfigurationError(GenerationError):
    """Raised when a required provider setting or model is missing."""


class UnknownModelError(ConfigurationError):
    """Raised when a model key is not present in the catalog."""


class ProviderError(GenerationError):
    """Raised when the prediction provider rejects a request or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class PredictionFailedError(GenerationError):
    """Raised when a prediction reaches a terminal status other than ``succeeded``."""

    def __init__(self, status: str, detail: Optional[str] = None) -> None:
        super().__init__(f"Prediction failed: {detail or 'Unknown error'}")
        self.status = status
        self.detail = detail


class PredictionTimeoutError(GenerationError):
    """Raised when a prediction does not reach a terminal status in time."""


class EmptyOutputError(GenerationError):
    """Raised when a successful prediction carries no output asset."""


class DownloadError(GenerationError):
    """Raised when an output asset cannot be downloaded."""


class InvalidImageError(GenerationError):
    """Raised when downloaded bytes are not a decodable image."""
