"""Process-wide bounded-concurrency queue for provider-bound work.

Every task waits for one of ``concurrency`` slots before it starts, so the
number of jobs talking to the generation provider at once is bounded across
the whole process, not per job. Admission into free slots is FIFO.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[None]]
TimeoutHook = Callable[[str], None]


class BoundedWorkQueue:
    def __init__(self, concurrency: int = 3, task_timeout: Optional[float] = 300.0) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.task_timeout = task_timeout
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._tasks) - self._active

    def stats(self) -> Dict[str, int]:
        return {"concurrency": self.concurrency, "active": self.active, "pending": self.pending}

    def submit(self, key: str, factory: TaskFactory, on_timeout: Optional[TimeoutHook] = None) -> asyncio.Task[None]:
        """Schedule ``factory()`` to run once a slot is free and return its task.

        Must be called from within a running event loop.
        """

        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.concurrency)
        task = asyncio.create_task(self._run(key, factory, on_timeout), name=f"work-{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda _: self._tasks.pop(key, None))
        logger.info("Queued %s (active=%d, pending=%d)", key, self.active, self.pending)
        return task

    async def _run(self, key: str, factory: TaskFactory, on_timeout: Optional[TimeoutHook]) -> None:
        assert self._semaphore is not None
        async with self._semaphore:
            self._active += 1
            try:
                if self.task_timeout:
                    await asyncio.wait_for(factory(), timeout=self.task_timeout)
                else:
                    await factory()
                logger.info("Work item %s finished", key)
            except asyncio.TimeoutError:
                logger.error("Work item %s timed out after %gs", key, self.task_timeout)
                if on_timeout is not None:
                    on_timeout(key)
            except asyncio.CancelledError:
                logger.warning("Work item %s cancelled", key)
                raise
            except Exception:
                logger.exception("Work item %s failed", key)
            finally:
                self._active -= 1

    async def join(self) -> None:
        """Wait until every submitted task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._active = 0
        self._semaphore = None
