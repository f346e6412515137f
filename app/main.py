from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routes import api_router
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.dependencies import set_app_settings, set_batch_manager, set_generation_manager
from app.models import BatchJob, Job
from app.services.archive import ArchiveBuilder
from app.services.batch_processor import BatchProcessor
from app.services.generation_jobs import GenerationJobManager
from app.services.job_manager import BatchJobManager
from app.services.job_registry import InMemoryJobRegistry
from app.services.retention import RetentionSweeper
from app.services.work_queue import BoundedWorkQueue
from generation import ImageGenerationService, ModelCatalog, PredictionClient

logger = logging.getLogger(__name__)

DOWNLOAD_MAX_AGE = 60 * 60 * 24
UPLOAD_MAX_AGE = 60 * 60 * 24 * 7


class CachedStaticFiles(StaticFiles):
    """Static files served with a fixed ``Cache-Control`` max-age."""

    def __init__(self, *args: Any, max_age: int, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.max_age = max_age

    def file_response(self, *args: Any, **kwargs: Any):
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = f"public, max-age={self.max_age}"
        return response


def create_app(settings: Optional[Settings] = None, client: Optional[PredictionClient] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    settings.ensure_directories()

    client = client or PredictionClient(
        settings.replicate_api_token,
        settings.replicate_base_url,
        poll_interval=settings.prediction_poll_interval,
        max_poll_interval=settings.prediction_max_poll_interval,
        wait_timeout=settings.prediction_timeout_seconds,
        request_timeout=settings.http_timeout_seconds,
    )
    catalog = ModelCatalog()
    queue = BoundedWorkQueue(
        concurrency=settings.queue_concurrency,
        task_timeout=settings.queue_task_timeout_seconds,
    )

    batch_registry: InMemoryJobRegistry[BatchJob] = InMemoryJobRegistry()
    archive_builder = ArchiveBuilder(settings.archive_scratch_dir, settings.downloads_dir, url_prefix="/downloads")
    processor = BatchProcessor(
        batch_registry,
        client,
        catalog,
        archive_builder,
        settings.batch_temp_root,
        model_key=settings.batch_model_key,
    )
    sweeper = RetentionSweeper(
        archive_dirs=[settings.downloads_dir, settings.archive_scratch_dir],
        temp_root=settings.batch_temp_root,
        max_age_seconds=settings.archive_max_age_seconds,
        interval_seconds=settings.retention_interval_seconds,
    )
    batch_manager = BatchJobManager(batch_registry, processor, queue, sweeper)

    service = ImageGenerationService(client, catalog, settings.uploads_dir, url_prefix="/uploads")
    generation_manager = GenerationJobManager(
        InMemoryJobRegistry[Job](),
        service,
        queue,
        retention_seconds=settings.job_retention_seconds,
        sweep_interval_seconds=settings.job_sweep_interval_seconds,
    )

    set_app_settings(settings)
    set_batch_manager(batch_manager)
    set_generation_manager(generation_manager)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if not client.configured:
            logger.warning("REPLICATE_API_TOKEN is not set, batch requests will be rejected")
        await batch_manager.initialize()
        await generation_manager.initialize()
        try:
            yield
        finally:
            await generation_manager.shutdown()
            await batch_manager.shutdown()
            await client.aclose()

    app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
    app.state.batch_manager = batch_manager
    app.state.generation_manager = generation_manager
    app.state.queue = queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "queue": queue.stats()}

    app.include_router(api_router)
    app.mount(
        "/downloads",
        CachedStaticFiles(directory=settings.downloads_dir, max_age=DOWNLOAD_MAX_AGE),
        name="downloads",
    )
    app.mount(
        "/uploads",
        CachedStaticFiles(directory=settings.uploads_dir, max_age=UPLOAD_MAX_AGE),
        name="uploads",
    )
    return app


app = create_app()
