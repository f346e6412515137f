from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = APP_DIR.parent
STORAGE_ROOT = PROJECT_ROOT / "storage"


class Settings(BaseSettings):
    app_name: str = "Car Image Batch Service"
    log_level: str = "INFO"

    storage_root: Path = Field(default_factory=lambda: STORAGE_ROOT)
    downloads_dir_name: str = "downloads"
    uploads_dir_name: str = "uploads"
    batch_temp_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "car_batch_jobs")
    archive_scratch_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "car_batch_archives")

    # Provider
    replicate_api_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("APP_REPLICATE_API_TOKEN", "REPLICATE_API_TOKEN"),
    )
    replicate_base_url: str = "https://api.replicate.com/v1"
    batch_model_key: str = "imagen-4"
    default_model_key: str = "imagen-4"
    http_timeout_seconds: float = 60.0
    prediction_poll_interval: float = 1.0
    prediction_max_poll_interval: float = 5.0
    prediction_timeout_seconds: float = 600.0

    # Batch processing
    max_batch_rows: int = 50
    queue_concurrency: int = 3
    queue_task_timeout_seconds: float = 60 * 30

    # Cleanup intervals (in seconds)
    archive_max_age_seconds: int = 60 * 60 * 6  # ZIPs older than 6 hours
    retention_interval_seconds: int = 60 * 60  # hourly
    job_retention_seconds: int = 60 * 30  # finished single jobs kept 30 minutes
    job_sweep_interval_seconds: int = 60 * 5

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = False

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def downloads_dir(self) -> Path:
        return self.storage_root / self.downloads_dir_name

    @property
    def uploads_dir(self) -> Path:
        return self.storage_root / self.uploads_dir_name

    def ensure_directories(self) -> None:
        for directory in (
            self.storage_root,
            self.downloads_dir,
            self.uploads_dir,
            self.batch_temp_root,
            self.archive_scratch_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
