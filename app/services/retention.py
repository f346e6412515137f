from __future__ import annotations

import asyncio
import logging
import shutil
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    archives_removed: int = 0
    temp_dirs_removed: int = 0


def _age_seconds(path: Path, now: datetime) -> float:
    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return (now - mtime).total_seconds()


class RetentionSweeper:
    """Delete expired ZIP archives and abandoned batch temp directories."""

    def __init__(
        self,
        archive_dirs: Sequence[Path],
        temp_root: Path,
        max_age_seconds: float,
        interval_seconds: float,
    ) -> None:
        self.archive_dirs = list(archive_dirs)
        self.temp_root = temp_root
        self.max_age_seconds = max_age_seconds
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()

        for directory in self.archive_dirs:
            if not directory.exists():
                continue
            for item in directory.glob("*.zip"):
                try:
                    if _age_seconds(item, now) > self.max_age_seconds:
                        item.unlink(missing_ok=True)
                        report.archives_removed += 1
                except FileNotFoundError:
                    continue
                except OSError:
                    logger.warning("Could not remove archive %s", item, exc_info=True)

        if self.temp_root.exists():
            for item in self.temp_root.glob("batch_*"):
                try:
                    if item.is_dir() and _age_seconds(item, now) > self.max_age_seconds:
                        shutil.rmtree(item, ignore_errors=True)
                        report.temp_dirs_removed += 1
                except FileNotFoundError:
                    continue

        if report.archives_removed or report.temp_dirs_removed:
            logger.info(
                "Retention sweep removed %d archive(s) and %d temp dir(s) older than %.0fs",
                report.archives_removed,
                report.temp_dirs_removed,
                self.max_age_seconds,
            )
        return report

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._periodic_cleanup_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _periodic_cleanup_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await asyncio.to_thread(self.sweep)
        except asyncio.CancelledError:
            return
