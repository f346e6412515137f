from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from generation import GeneratedImage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BatchStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.DONE, JobStatus.ERROR}


@dataclass
class BatchRowError:
    row: int
    reason: str
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"row": self.row, "reason": self.reason}
        if self.details is not None:
            data["details"] = self.details
        return data


@dataclass
class BatchJob:
    total: int
    id: str = field(default_factory=lambda: uuid4().hex)
    done: int = 0
    failed: int = 0
    status: BatchStatus = BatchStatus.PENDING
    errors: List[BatchRowError] = field(default_factory=list)
    zip_path: Optional[Path] = None
    zip_url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def attempted(self) -> int:
        return self.done + self.failed

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.attempted / self.total * 100)

    def record_failure(self, row: int, reason: str, details: Optional[str] = None) -> None:
        self.failed += 1
        self.errors.append(BatchRowError(row=row, reason=reason, details=details))

    def fail_remaining(self, reason: str) -> int:
        """Count every row not yet attempted as failed and record ``reason`` once as row 0."""
        remaining = max(self.total - self.attempted, 0)
        self.failed += remaining
        self.errors.append(BatchRowError(row=0, reason=reason))
        return remaining

    def mark_completed_at(self) -> None:
        if self.completed_at is None:
            self.completed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "total": self.total,
            "done": self.done,
            "failed": self.failed,
            "status": self.status.value,
            "errors": [error.to_dict() for error in self.errors],
            "zipPath": str(self.zip_path) if self.zip_path else None,
            "zipUrl": self.zip_url,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }


@dataclass
class Job:
    id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    result: Optional[List[GeneratedImage]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
        }
        if self.result is not None:
            data["result"] = [image.to_dict() for image in self.result]
        if self.error is not None:
            data["error"] = self.error
        if self.completed_at is not None:
            data["completedAt"] = _iso(self.completed_at)
        return data
