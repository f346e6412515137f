from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class JobNotFoundError(Exception):
    pass


class JobRegistry(ABC, Generic[T]):
    """Storage interface for job records keyed by job id."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[T]:
        ...

    @abstractmethod
    def set(self, job_id: str, job: T) -> None:
        ...

    @abstractmethod
    def delete(self, job_id: str) -> None:
        ...

    @abstractmethod
    def items(self) -> List[Tuple[str, T]]:
        ...

    def require(self, job_id: str) -> T:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def __contains__(self, job_id: object) -> bool:
        return isinstance(job_id, str) and self.get(job_id) is not None

    def __len__(self) -> int:
        return len(self.items())


class InMemoryJobRegistry(JobRegistry[T]):
    def __init__(self) -> None:
        self._jobs: Dict[str, T] = {}

    def get(self, job_id: str) -> Optional[T]:
        return self._jobs.get(job_id)

    def set(self, job_id: str, job: T) -> None:
        self._jobs[job_id] = job

    def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def items(self) -> List[Tuple[str, T]]:
        return list(self._jobs.items())
