from __future__ import annotations

import asyncio
import zipfile
from datetime import timedelta
from pathlib import Path

import pytest

from app.models import BatchJob, BatchStatus, Job, JobStatus, utcnow
from app.services.archive import ArchiveBuilder
from app.services.batch_processor import BatchProcessor
from app.services.generation_jobs import GenerationJobManager
from app.services.job_manager import BatchJobManager, InvalidJobStateError
from app.services.job_registry import InMemoryJobRegistry, JobNotFoundError
from app.services.retention import RetentionSweeper
from app.services.work_queue import BoundedWorkQueue
from conftest import FakeProvider
from generation import CarRow, ImageGenerationService, ModelCatalog, UnknownModelError


def _batch_manager(tmp_path: Path, provider: FakeProvider, task_timeout: float = 30.0) -> BatchJobManager:
    registry: InMemoryJobRegistry[BatchJob] = InMemoryJobRegistry()
    processor = BatchProcessor(
        registry,
        provider.client(),
        ModelCatalog(),
        ArchiveBuilder(tmp_path / "scratch", tmp_path / "downloads"),
        tmp_path / "jobs",
    )
    sweeper = RetentionSweeper([tmp_path / "downloads"], tmp_path / "jobs", max_age_seconds=3600, interval_seconds=3600)
    return BatchJobManager(registry, processor, BoundedWorkQueue(concurrency=2, task_timeout=task_timeout), sweeper)


def test_create_job_returns_pending_and_processes_in_background(tmp_path: Path) -> None:
    manager = _batch_manager(tmp_path, FakeProvider())

    async def scenario() -> BatchJob:
        await manager.initialize()
        job = manager.create_job([CarRow(make="Kia"), CarRow(make="Ford")])
        assert job.status == BatchStatus.PENDING
        assert manager.get_job(job.id) is job
        await manager.queue.join()
        await manager.shutdown()
        await manager.processor.client.aclose()
        return job

    job = asyncio.run(scenario())

    assert job.status == BatchStatus.COMPLETED
    assert job.done == 2
    assert job.zip_url is not None


def test_unknown_job_raises(tmp_path: Path) -> None:
    manager = _batch_manager(tmp_path, FakeProvider())

    with pytest.raises(JobNotFoundError):
        manager.get_job("missing")
    with pytest.raises(JobNotFoundError):
        manager.stop_job("missing")


def test_stop_requires_processing_status(tmp_path: Path) -> None:
    manager = _batch_manager(tmp_path, FakeProvider())
    job = BatchJob(total=2)
    manager.registry.set(job.id, job)

    with pytest.raises(InvalidJobStateError) as excinfo:
        manager.stop_job(job.id)
    assert "Cannot stop job with status pending" in excinfo.value.message

    job.status = BatchStatus.PROCESSING
    assert manager.stop_job(job.id).status == BatchStatus.STOPPED


def test_queue_timeout_fails_the_job(tmp_path: Path) -> None:
    manager = _batch_manager(tmp_path, FakeProvider(outcomes=["never"]), task_timeout=0.1)

    async def scenario() -> BatchJob:
        job = manager.create_job([CarRow(make="Kia")])
        await manager.queue.join()
        await manager.processor.client.aclose()
        return job

    job = asyncio.run(scenario())

    assert job.status == BatchStatus.FAILED
    assert job.completed_at is not None
    assert (job.done, job.failed) == (0, 1)
    assert job.errors[-1].row == 0
    assert job.errors[-1].reason == "Batch processing timed out after 0.1 seconds"
    assert job.zip_url is not None
    assert not manager.processor.temp_dir(job.id).exists()


def test_queue_timeout_still_archives_finished_rows(tmp_path: Path) -> None:
    manager = _batch_manager(tmp_path, FakeProvider(outcomes=["ok", "never"]), task_timeout=0.5)

    async def scenario() -> BatchJob:
        job = manager.create_job([CarRow(make="Kia", model="Rio"), CarRow(make="Kia", model="Ceed")])
        await manager.queue.join()
        await manager.processor.client.aclose()
        return job

    job = asyncio.run(scenario())

    assert job.status == BatchStatus.FAILED
    assert (job.done, job.failed) == (1, 1)
    assert job.done + job.failed == job.total
    assert "_partial_with_errors_1of2" in job.zip_url
    with zipfile.ZipFile(job.zip_path) as archive:
        names = sorted(archive.namelist())
    assert [name for name in names if name.endswith(".png")] == ["Kia-Rio-1.png"]
    assert "failed_rows.json" in names
    assert job.errors[-1].reason == "Batch processing timed out after 0.5 seconds"
    assert not manager.processor.temp_dir(job.id).exists()


def _generation_manager(tmp_path: Path, provider: FakeProvider) -> GenerationJobManager:
    service = ImageGenerationService(provider.client(), ModelCatalog(), tmp_path / "uploads")
    return GenerationJobManager(
        InMemoryJobRegistry[Job](),
        service,
        BoundedWorkQueue(concurrency=1, task_timeout=30),
        retention_seconds=60,
        sweep_interval_seconds=3600,
    )


def test_generation_job_completes_with_result(tmp_path: Path) -> None:
    manager = _generation_manager(tmp_path, FakeProvider())

    async def scenario() -> Job:
        job = manager.create_job("imagen-4", "a red coupe", aspect_ratio="4:3")
        await manager.queue.join()
        await manager.service.client.aclose()
        return job

    job = asyncio.run(scenario())

    assert job.status == JobStatus.DONE
    assert job.result and job.result[0].aspect_ratio == "4:3"
    assert job.completed_at is not None
    assert job.to_dict()["result"][0]["thumbUrl"].startswith("/uploads/thumb/")


def test_generation_job_failure_is_reported(tmp_path: Path) -> None:
    manager = _generation_manager(tmp_path, FakeProvider(outcomes=["fail"]))

    async def scenario() -> Job:
        job = manager.create_job("imagen-4", "a red coupe")
        await manager.queue.join()
        await manager.service.client.aclose()
        return job

    job = asyncio.run(scenario())

    assert job.status == JobStatus.ERROR
    assert job.error == "Prediction failed: NSFW content detected"
    assert "result" not in job.to_dict()


def test_generation_rejects_unknown_model(tmp_path: Path) -> None:
    manager = _generation_manager(tmp_path, FakeProvider())

    with pytest.raises(UnknownModelError):
        manager.create_job("nope", "a red coupe")
    assert len(manager.registry) == 0


def test_sweep_removes_old_terminal_jobs_only(tmp_path: Path) -> None:
    manager = _generation_manager(tmp_path, FakeProvider())
    old = utcnow() - timedelta(minutes=5)
    old_done = Job(status=JobStatus.DONE, created_at=old)
    old_running = Job(status=JobStatus.PROCESSING, created_at=old)
    fresh_error = Job(status=JobStatus.ERROR)
    for job in (old_done, old_running, fresh_error):
        manager.registry.set(job.id, job)

    removed = manager.sweep_finished()

    assert removed == 1
    assert old_done.id not in manager.registry
    assert old_running.id in manager.registry
    assert fresh_error.id in manager.registry
