"""
Periodic Job Scheduler

Runs maintenance jobs on fixed intervals, independent of request traffic:
- Token refresh check
- Webhook log retention pruning
- Instrument catalog resync

Each job runs in its own task. A failing iteration is logged and the
job carries on with its next interval; other jobs are unaffected.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger


JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    """A periodic job and its run history."""
    name: str
    func: JobFunc
    interval_seconds: float
    run_count: int = 0
    error_count: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


class JobScheduler:
    """
    Interval scheduler over asyncio tasks.

    Usage:
        scheduler = JobScheduler()
        scheduler.add_job("log_cleanup", prune_logs, interval_seconds=86400)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self):
        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs.values())

    def add_job(self, name: str, func: JobFunc, interval_seconds: float) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        if interval_seconds <= 0:
            raise ValueError(f"Job interval must be positive: {name}")
        job = ScheduledJob(name=name, func=func, interval_seconds=interval_seconds)
        self._jobs[name] = job
        if self._running:
            job.task = asyncio.create_task(self._job_loop(job))
        return job

    async def start(self) -> None:
        """Start every registered job; the first run happens after one interval."""
        if self._running:
            return

        self._running = True
        for job in self._jobs.values():
            job.task = asyncio.create_task(self._job_loop(job))
            logger.info(f"Scheduled job '{job.name}' every {job.interval_seconds:.0f}s")

    async def stop(self) -> None:
        self._running = False

        for job in self._jobs.values():
            if job.task:
                job.task.cancel()
                try:
                    await job.task
                except asyncio.CancelledError:
                    pass
                job.task = None

        logger.info("Job scheduler stopped")

    async def run_now(self, name: str) -> bool:
        """
        Run one job immediately, outside its schedule.

        Returns:
            True if the job completed without raising
        """
        return await self._run_once(self._jobs[name])

    async def _run_once(self, job: ScheduledJob) -> bool:
        job.last_run = datetime.now()
        job.run_count += 1
        try:
            await job.func()
            return True
        except Exception as e:
            job.error_count += 1
            job.last_error = str(e)
            logger.exception(f"Scheduled job '{job.name}' failed: {e}")
            return False

    async def _job_loop(self, job: ScheduledJob) -> None:
        while self._running:
            try:
                await asyncio.sleep(job.interval_seconds)
                logger.info(f"Running scheduled job: {job.name}")
                await self._run_once(job)
            except asyncio.CancelledError:
                break

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "jobs": [job.to_dict() for job in self._jobs.values()],
        }
