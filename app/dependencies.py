from __future__ import annotations

from typing import Optional

from app.core.config import Settings, get_settings
from app.services.generation_jobs import GenerationJobManager
from app.services.job_manager import BatchJobManager

_batch_manager: Optional[BatchJobManager] = None
_generation_manager: Optional[GenerationJobManager] = None
_settings: Optional[Settings] = None


def set_batch_manager(manager: BatchJobManager) -> None:
    global _batch_manager
    _batch_manager = manager


def get_batch_manager() -> BatchJobManager:
    if _batch_manager is None:
        raise RuntimeError("Batch job manager not initialized")
    return _batch_manager


def set_generation_manager(manager: GenerationJobManager) -> None:
    global _generation_manager
    _generation_manager = manager


def get_generation_manager() -> GenerationJobManager:
    if _generation_manager is None:
        raise RuntimeError("Generation job manager not initialized")
    return _generation_manager


def set_app_settings(settings: Settings) -> None:
    global _settings
    _settings = settings


def get_app_settings() -> Settings:
    return _settings or get_settings()
