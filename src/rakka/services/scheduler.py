"""APScheduler-based background job service (credit flushes, reminders)."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rakka.config import SchedulerConfig
from rakka.log import get_logger

logger = get_logger(__name__)


class SchedulerService:
    """Background job scheduler using APScheduler.

    Plain functions run in the scheduler's thread pool, so blocking disk I/O
    in a job never stalls the event loop; coroutine functions run on the loop.
    """

    def __init__(self, config: SchedulerConfig):
        self._config = config
        self._scheduler = AsyncIOScheduler(timezone=config.timezone)

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._config.timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # Shutdown completes on the next loop iteration
            await asyncio.sleep(0)
        logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        """True while the scheduler is accepting and running jobs."""
        return self._scheduler.running

    def add_interval_job(
        self,
        callback: Callable[..., Any],
        seconds: int,
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Add a job repeated every *seconds*. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        self._scheduler.add_job(
            callback,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            kwargs=kwargs,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        logger.info("interval_job_added", job_id=job_id, seconds=seconds)
        return job_id

    def add_one_shot_job(
        self,
        run_at: datetime,
        callback: Callable[..., Any],
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Add a one-time job at a specific datetime. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        trigger = DateTrigger(run_date=run_at)
        self._scheduler.add_job(callback, trigger, id=job_id, kwargs=kwargs, misfire_grace_time=None)
        logger.info("one_shot_job_added", job_id=job_id, run_at=str(run_at))
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job. Returns True if found and removed."""
        job = self._scheduler.get_job(job_id)
        if job is None:
            return False
        job.remove()
        logger.info("job_removed", job_id=job_id)
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        """List all scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": str(job.next_run_time) if job.next_run_time else None,
                    "trigger": str(job.trigger),
                }
            )
        return jobs
