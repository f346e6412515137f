from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.core.logging import job_logger
from app.models import Job, JobStatus, utcnow
from app.services.job_registry import JobRegistry
from app.services.work_queue import BoundedWorkQueue
from generation import ImageGenerationService

logger = logging.getLogger(__name__)


class GenerationJobManager:
    """Single-prompt generation jobs, run through the shared work queue."""

    def __init__(
        self,
        registry: JobRegistry[Job],
        service: ImageGenerationService,
        queue: BoundedWorkQueue,
        retention_seconds: float = 30 * 60,
        sweep_interval_seconds: float = 5 * 60,
    ) -> None:
        self.registry = registry
        self.service = service
        self.queue = queue
        self.retention_seconds = retention_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    async def initialize(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup_loop())

    async def shutdown(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    def create_job(
        self,
        model_key: str,
        prompt: str,
        *,
        aspect_ratio: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Job:
        # Unknown models are rejected before a job exists.
        self.service.catalog.require(model_key)

        job = Job()
        self.registry.set(job.id, job)
        self.queue.submit(
            job.id,
            lambda: self._run(job, model_key, prompt, aspect_ratio, seed),
            on_timeout=self._fail_timed_out,
        )
        job_logger(logger, job.id).info("Queued generation with %s", model_key)
        return job

    def get_job(self, job_id: str) -> Job:
        return self.registry.require(job_id)

    async def _run(
        self,
        job: Job,
        model_key: str,
        prompt: str,
        aspect_ratio: Optional[str],
        seed: Optional[int],
    ) -> None:
        log = job_logger(logger, job.id)
        job.status = JobStatus.PROCESSING
        try:
            job.result = await self.service.generate(model_key, prompt, aspect_ratio=aspect_ratio, seed=seed)
            job.status = JobStatus.DONE
            log.info("Generated %d image(s)", len(job.result))
        except Exception as exc:
            log.warning("Generation failed: %s", exc, exc_info=True)
            job.error = str(exc) or type(exc).__name__
            job.status = JobStatus.ERROR
        finally:
            job.completed_at = utcnow()

    def _fail_timed_out(self, job_id: str) -> None:
        job = self.registry.get(job_id)
        if job is None:
            return
        job.status = JobStatus.ERROR
        job.error = "Generation timed out"
        job.completed_at = utcnow()

    def sweep_finished(self, now: Optional[datetime] = None) -> int:
        """Drop terminal jobs created more than ``retention_seconds`` ago."""
        now = now or datetime.now(timezone.utc)
        threshold = now - timedelta(seconds=self.retention_seconds)
        expired: List[str] = [
            job_id
            for job_id, job in self.registry.items()
            if job.status.is_terminal and job.created_at < threshold
        ]
        for job_id in expired:
            self.registry.delete(job_id)
        if expired:
            logger.info("Removed %d finished generation job(s)", len(expired))
        return len(expired)

    async def _periodic_cleanup_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.sweep_interval_seconds)
                self.sweep_finished()
        except asyncio.CancelledError:
            return
