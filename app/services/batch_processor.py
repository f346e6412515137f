"""Run one CSV batch job row by row against the prediction provider.

Rows are attempted strictly in input order, one at a time. A row failure is
recorded and never aborts the batch. The job's ``status`` field doubles as
the stop signal: the HTTP layer flips it to ``stopped`` and the loop checks it
before each row and again after each prediction wait. A cancellation is
finalized like an ordinary finish, with unattempted rows counted as failed,
and then re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Sequence

from app.core.logging import JobLogAdapter, job_logger
from app.models import BatchJob, BatchRowError, BatchStatus
from app.services.archive import ArchiveBuilder
from app.services.job_registry import JobRegistry
from generation import (
    CarRow,
    EmptyOutputError,
    ModelCatalog,
    ModelConfig,
    PredictionClient,
    PredictionFailedError,
    build_prompt,
    imaging,
    make_filename,
    normalize_aspect_ratio,
)

logger = logging.getLogger(__name__)

# Error records use the CSV line number: data row ``i`` sits on line ``i + 2``.
CSV_LINE_OFFSET = 2


class _StopRequested(Exception):
    pass


class BatchProcessor:
    def __init__(
        self,
        registry: JobRegistry[BatchJob],
        client: PredictionClient,
        catalog: ModelCatalog,
        archive_builder: ArchiveBuilder,
        temp_root: Path,
        model_key: str = "imagen-4",
    ) -> None:
        self.registry = registry
        self.client = client
        self.catalog = catalog
        self.archive_builder = archive_builder
        self.temp_root = temp_root
        self.model_key = model_key

    def temp_dir(self, job_id: str) -> Path:
        return self.temp_root / f"batch_{job_id}"

    async def process(self, job_id: str, rows: Sequence[CarRow]) -> None:
        job = self.registry.require(job_id)
        log = job_logger(logger, job_id)
        tmp_dir = self.temp_dir(job_id)
        interrupted = False

        try:
            tmp_dir.mkdir(parents=True, exist_ok=True)
            log.info("Starting batch with %d rows in %s", len(rows), tmp_dir)
            job.status = BatchStatus.PROCESSING

            model = self.catalog.find(self.model_key)
            if model is None:
                log.error("Model %s is not configured, failing the whole batch", self.model_key)
                job.failed = job.total
                job.errors.append(BatchRowError(row=0, reason=f"{self.model_key} model not properly configured"))
                job.status = BatchStatus.FAILED
            else:
                try:
                    await self._run_rows(job, rows, model, tmp_dir, log)
                except asyncio.CancelledError:
                    # Finalize what was produced before letting the cancellation through.
                    interrupted = True
                    if job.status != BatchStatus.STOPPED:
                        unattempted = job.total - job.attempted
                        log.warning("Interrupted with %d of %d rows not attempted", unattempted, job.total)
                        job.fail_remaining(f"Batch processing interrupted with {unattempted} row(s) not attempted")
                        job.status = BatchStatus.FAILED

            if job.status == BatchStatus.PROCESSING:
                all_rows_failed = job.done == 0 and job.failed > 0
                job.status = BatchStatus.FAILED if all_rows_failed else BatchStatus.COMPLETED
            job.mark_completed_at()

            result = await self.archive_builder.build(job_id, job, tmp_dir)
            if not result.success:
                log.error("Archive creation failed, marking job failed")
                job.status = BatchStatus.FAILED
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            log.info("Cleaned up temp directory %s", tmp_dir)

        log.info("Batch finished with status %s: %d done, %d failed", job.status.value, job.done, job.failed)
        if interrupted:
            raise asyncio.CancelledError()

    async def _run_rows(
        self,
        job: BatchJob,
        rows: Sequence[CarRow],
        model: ModelConfig,
        tmp_dir: Path,
        log: JobLogAdapter,
    ) -> None:
        for index, row in enumerate(rows):
            if job.status == BatchStatus.STOPPED:
                log.info("Stopped after %d of %d rows", index, len(rows))
                return

            log.info("Processing row %d/%d", index + 1, len(rows))
            try:
                await self._run_row(job, row, index, model, tmp_dir, log)
            except _StopRequested:
                log.info("Stop requested while row %d was generating, discarding its result", index + 1)
                return
            except Exception as exc:
                log.warning("Row %d failed: %s", index + 1, exc, exc_info=True)
                job.record_failure(
                    row=index + CSV_LINE_OFFSET,
                    reason=(str(exc) or type(exc).__name__)[:200],
                    details=repr(exc)[:500],
                )

    async def _run_row(
        self,
        job: BatchJob,
        row: CarRow,
        index: int,
        model: ModelConfig,
        tmp_dir: Path,
        log: JobLogAdapter,
    ) -> None:
        prompt = build_prompt(row)
        aspect_ratio = normalize_aspect_ratio(row.aspect_ratio, row_number=index + 1)
        log.debug("Row %d prompt: %.50s... aspect_ratio=%s", index + 1, prompt, aspect_ratio)

        prediction = await self.client.create(
            model.version,
            model.build_input({"prompt": prompt, "aspect_ratio": aspect_ratio}),
        )
        result = await self.client.wait_until_terminal(prediction)

        if job.status == BatchStatus.STOPPED:
            raise _StopRequested()
        if not result.succeeded:
            raise PredictionFailedError(result.status, result.error)
        urls = result.output_urls()
        if not urls:
            raise EmptyOutputError("Prediction result has no output")

        data = await self.client.download(urls[0])
        png = await asyncio.to_thread(imaging.ensure_png, data)
        filename = make_filename(row, index)
        await asyncio.to_thread((tmp_dir / filename).write_bytes, png)
        job.done += 1
        log.info("Saved row %d as %s", index + 1, filename)
