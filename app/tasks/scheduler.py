"""In-process job scheduler for deployments that run without Celery beat."""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from app.core.errors import OperationCancelled

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(hours=24)

# Schedules understood by parse_schedule; anything else runs daily
SCHEDULES: Dict[str, timedelta] = {
    "@daily": timedelta(hours=24),
    "0 0 * * *": timedelta(hours=24),
    "@hourly": timedelta(hours=1),
    "0 * * * *": timedelta(hours=1),
    "@every 30m": timedelta(minutes=30),
    "@every 1h": timedelta(hours=1),
    "@every 6h": timedelta(hours=6),
    "@every 12h": timedelta(hours=12),
}

JobFunc = Callable[[Optional[asyncio.Event]], Awaitable[object]]


def parse_schedule(schedule: str) -> timedelta:
    """Interval for a schedule string such as ``@daily`` or ``@every 6h``."""
    interval = SCHEDULES.get(schedule.strip()) if schedule else None
    if interval is None:
        logger.warning(f"Unrecognized schedule '{schedule}', running daily")
        return DEFAULT_INTERVAL
    return interval


@dataclass
class Job:
    name: str
    schedule: str
    func: JobFunc

    @property
    def interval(self) -> timedelta:
        return parse_schedule(self.schedule)


class Scheduler:
    """Runs each registered job on a fixed interval until stopped.

    Jobs receive the scheduler's stop event and are expected to check it
    between units of work. A failing run is logged and the job keeps its
    schedule.
    """

    def __init__(self):
        self._jobs: List[Job] = []
        self._lock = threading.Lock()
        self._tasks: List[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def jobs(self) -> List[Job]:
        with self._lock:
            return list(self._jobs)

    def add_job(self, name: str, schedule: str, func: JobFunc) -> Job:
        job = Job(name=name, schedule=schedule, func=func)
        with self._lock:
            self._jobs.append(job)
        logger.info(f"Added job: {name} with schedule: {schedule}")
        if self.running:
            logger.info(f"Scheduler already running, job {name} starts with the next start()")
        return job

    async def start(self) -> None:
        if self.running:
            return
        jobs = self.jobs
        self._stop_event = asyncio.Event()
        self._tasks = [asyncio.create_task(self._run_job(job), name=f"job-{job.name}") for job in jobs]
        logger.info(f"Scheduler started with {len(jobs)} jobs")

    async def stop(self) -> None:
        """Signal every job loop and wait for in-flight runs to finish."""
        if not self.running:
            return
        logger.info("Stopping scheduler...")
        self._stop_event.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    async def _run_job(self, job: Job) -> None:
        interval = job.interval.total_seconds()
        logger.info(f"Job {job.name} scheduled to run every {job.interval}")
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                logger.info(f"Job {job.name} stopped")
                return
            except asyncio.TimeoutError:
                pass
            await self._execute(job)

    async def _execute(self, job: Job) -> None:
        logger.info(f"Running job: {job.name}")
        started = time.monotonic()
        try:
            await job.func(self._stop_event)
        except OperationCancelled:
            logger.info(f"Job {job.name} cancelled by shutdown")
        except Exception as e:
            logger.error(f"Job {job.name} failed: {e}", exc_info=True)
        else:
            logger.info(f"Job {job.name} completed successfully in {time.monotonic() - started:.2f}s")

    async def run_once(self, name: str):
        """Run a job immediately and return its result. Unknown names return None."""
        for job in self.jobs:
            if job.name == name:
                return await job.func(self._stop_event)
        logger.warning(f"No job named {name}")
        return None


def build_scheduler() -> Scheduler:
    """Scheduler carrying the cleanup, detection and snapshot jobs."""
    from app.core.config import settings
    from app.tasks.cleanup import cleanup_expired_async
    from app.tasks.corporate_actions import detect_corporate_actions_async
    from app.tasks.snapshots import create_daily_snapshots_async

    scheduler = Scheduler()
    scheduler.add_job("cleanup", settings.CLEANUP_SCHEDULE, cleanup_expired_async)
    scheduler.add_job("corporate_action_detection", settings.CORPORATE_ACTION_SCHEDULE, detect_corporate_actions_async)
    scheduler.add_job("snapshot_generation", settings.SNAPSHOT_SCHEDULE, create_daily_snapshots_async)
    return scheduler
