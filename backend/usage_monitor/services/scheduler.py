"""Runs the periodic jobs as background asyncio tasks."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A coroutine function run every ``interval`` seconds."""
    name: str
    interval: float
    func: Callable[[], Awaitable[object]]
    run_immediately: bool = False


class Scheduler:
    """
    One task per job. A job's next cycle starts only after its previous cycle
    returns, so the same job never overlaps itself; different jobs interleave
    on the event loop.
    """

    def __init__(self, jobs: Optional[List[Job]] = None):
        self.jobs: List[Job] = list(jobs or [])
        self._tasks: Dict[str, asyncio.Task] = {}

    def add(self, job: Job) -> None:
        self.jobs.append(job)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def run_once(self, job: Job) -> None:
        """Run a single cycle, logging instead of raising."""
        try:
            await job.func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Job {job.name} failed: {e}")

    async def _loop(self, job: Job) -> None:
        try:
            if job.run_immediately:
                await self.run_once(job)
            while True:
                await asyncio.sleep(job.interval)
                await self.run_once(job)
        except asyncio.CancelledError:
            logger.debug(f"Job {job.name} cancelled")

    def start(self) -> None:
        for job in self.jobs:
            if job.name in self._tasks and not self._tasks[job.name].done():
                continue
            self._tasks[job.name] = asyncio.create_task(self._loop(job), name=job.name)
            logger.info(f"Scheduled {job.name} every {job.interval:g}s")

    async def stop(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
