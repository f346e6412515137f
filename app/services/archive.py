"""Package a batch job's outputs into a downloadable ZIP archive."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

from app.core.logging import job_logger
from app.models import BatchJob, BatchRowError, BatchStatus, utcnow
from app.services.utils import compact_timestamp, unique_filename

logger = logging.getLogger(__name__)

SUMMARY_NAME = "summary.json"
FAILED_ROWS_NAME = "failed_rows.json"


@dataclass
class ArchiveResult:
    success: bool
    zip_url: Optional[str] = None
    zip_path: Optional[Path] = None


def completion_tag(status: BatchStatus) -> str:
    if status == BatchStatus.STOPPED:
        return "partial"
    if status == BatchStatus.FAILED:
        return "partial_with_errors"
    return "complete"


def build_summary(job_id: str, job: BatchJob) -> Dict[str, Any]:
    completed_at = job.completed_at or utcnow()
    return {
        "jobId": job_id,
        "total": job.total,
        "completed": job.done,
        "failed": job.failed,
        "status": job.status.value,
        "createdAt": job.created_at.isoformat(),
        "completedAt": completed_at.isoformat(),
        "errors": len(job.errors),
    }


class ArchiveBuilder:
    """Write ``car_batch_<timestamp>_<tag>_<done>of<total>_<id8>.zip`` and publish it.

    The archive is first written to ``scratch_dir`` and then copied into
    ``download_dir``, which is served under ``url_prefix``. A name is reserved
    from the moment it is chosen until its copy lands in ``download_dir``, so
    builds running at the same time never share a file.
    """

    def __init__(self, scratch_dir: Path, download_dir: Path, url_prefix: str = "/downloads") -> None:
        self.scratch_dir = scratch_dir
        self.download_dir = download_dir
        self.url_prefix = url_prefix.rstrip("/")
        self._reserved: Set[str] = set()

    def archive_name(self, job_id: str, job: BatchJob) -> str:
        desired = (
            f"car_batch_{compact_timestamp(utcnow())}_{completion_tag(job.status)}"
            f"_{job.done}of{job.total}_{job_id[:8]}.zip"
        )
        existing = [path.name for path in self.download_dir.glob("*.zip")] if self.download_dir.exists() else []
        return unique_filename([*existing, *self._reserved], desired)

    async def build(self, job_id: str, job: BatchJob, source_dir: Path) -> ArchiveResult:
        log = job_logger(logger, job_id)
        log.info("Creating ZIP with %d successful and %d failed rows", job.done, job.failed)

        if job.done == 0 and not source_dir.exists():
            log.error("No images were generated and no output directory exists, not creating a ZIP")
            return ArchiveResult(success=False)

        filename = self.archive_name(job_id, job)
        self._reserved.add(filename)
        scratch_path = self.scratch_dir / filename
        download_path = self.download_dir / filename
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            self.download_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._write_zip_archive, scratch_path, job_id, job, source_dir)
            await asyncio.to_thread(shutil.copyfile, scratch_path, download_path)
        except Exception as exc:
            log.exception("Failed to create ZIP file")
            job.errors.append(
                BatchRowError(
                    row=0,
                    reason=f"Failed to create ZIP file: {exc}",
                    details=repr(exc)[:500],
                )
            )
            return ArchiveResult(success=False)
        finally:
            self._reserved.discard(filename)

        zip_url = f"{self.url_prefix}/{filename}"
        job.zip_path = download_path
        job.zip_url = zip_url
        log.info("ZIP published at %s", zip_url)
        return ArchiveResult(success=True, zip_url=zip_url, zip_path=download_path)

    def _write_zip_archive(self, archive_path: Path, job_id: str, job: BatchJob, source_dir: Path) -> None:
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            if source_dir.exists():
                for path in sorted(source_dir.rglob("*")):
                    if path.is_file():
                        archive.write(path, arcname=path.relative_to(source_dir).as_posix())
            else:
                logger.warning("Output directory %s does not exist, archive holds manifests only", source_dir)

            if job.errors:
                errors = [error.to_dict() for error in job.errors]
                archive.writestr(FAILED_ROWS_NAME, json.dumps(errors, indent=2))
            archive.writestr(SUMMARY_NAME, json.dumps(build_summary(job_id, job), indent=2))
