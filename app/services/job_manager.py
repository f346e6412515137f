from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from app.core.logging import job_logger
from app.models import BatchJob, BatchStatus
from app.services.batch_processor import BatchProcessor
from app.services.job_registry import JobNotFoundError, JobRegistry
from app.services.retention import RetentionSweeper
from app.services.work_queue import BoundedWorkQueue
from generation import CarRow

logger = logging.getLogger(__name__)

__all__ = ["BatchJobManager", "InvalidJobStateError", "JobNotFoundError"]


class InvalidJobStateError(Exception):
    def __init__(self, job: BatchJob, message: str) -> None:
        super().__init__(message)
        self.job = job
        self.message = message


class BatchJobManager:
    """Creates batch jobs, hands them to the shared queue and serves their state."""

    def __init__(
        self,
        registry: JobRegistry[BatchJob],
        processor: BatchProcessor,
        queue: BoundedWorkQueue,
        sweeper: RetentionSweeper,
    ) -> None:
        self.registry = registry
        self.processor = processor
        self.queue = queue
        self.sweeper = sweeper

    async def initialize(self) -> None:
        self.processor.temp_root.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self.sweeper.sweep)
        self.sweeper.start()

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.queue.shutdown()

    def create_job(self, rows: Sequence[CarRow]) -> BatchJob:
        """Register a pending job for ``rows`` and enqueue it; returns immediately."""
        if not rows:
            raise ValueError("No rows provided")

        job = BatchJob(total=len(rows))
        self.registry.set(job.id, job)
        job_logger(logger, job.id).info("Created batch job for %d rows", job.total)

        frozen_rows = tuple(rows)
        self.queue.submit(
            job.id,
            lambda: self.processor.process(job.id, frozen_rows),
            on_timeout=self._fail_timed_out,
        )
        return job

    def get_job(self, job_id: str) -> BatchJob:
        return self.registry.require(job_id)

    def stop_job(self, job_id: str) -> BatchJob:
        job = self.registry.require(job_id)
        if job.status != BatchStatus.PROCESSING:
            raise InvalidJobStateError(
                job,
                f"Cannot stop job with status {job.status.value}. "
                "Job must be in 'processing' status to be stopped.",
            )
        job.status = BatchStatus.STOPPED
        job_logger(logger, job_id).info("Marked for stopping after %d of %d rows", job.attempted, job.total)
        return job

    def _fail_timed_out(self, job_id: str) -> None:
        job = self.registry.get(job_id)
        if job is None:
            return
        log = job_logger(logger, job_id)
        if job.status == BatchStatus.STOPPED and job.zip_url is not None:
            log.warning("Timed out after a stop request, keeping the partial archive")
            return
        # Rows the processor never reached count as failed, so done + failed == total.
        job.fail_remaining(f"Batch processing timed out after {self.queue.task_timeout:g} seconds")
        job.status = BatchStatus.FAILED
        job.mark_completed_at()
        log.error("Marked failed after timing out with %d done and %d failed", job.done, job.failed)
