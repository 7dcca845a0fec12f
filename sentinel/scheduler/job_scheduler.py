"""Recurring job registration on top of APScheduler."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED, JobEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)

_WATCHED_EVENTS = EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED


@dataclass
class JobRegistration:
    job_id: str
    interval_seconds: int
    description: Optional[str] = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class JobScheduler:
    """Interval jobs keyed by a stable id.

    Registering an id that already exists replaces the old trigger, so a
    repeated setup call or a restart never leaves two schedules for one
    logical job. Jobs run with ``max_instances=1`` and ``coalesce=True``: a
    tick that fires while the previous run is still going is dropped.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: Dict[str, JobRegistration] = {}
        self.running = False
        self.scheduler.add_listener(self._on_job_event, _WATCHED_EVENTS)

    def _on_job_event(self, event: JobEvent):
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning("Previous run still in flight, tick skipped", job_id=event.job_id)
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("Tick missed its grace window", job_id=event.job_id)
        else:
            logger.error("Job raised", job_id=event.job_id, error=str(getattr(event, "exception", "")))

    async def start(self):
        """Start ticking. Must be called from a running event loop."""
        if self.running:
            logger.warning("Job scheduler start requested twice")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler running", jobs=sorted(self.jobs))

    async def stop(self, wait: bool = False):
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        self.running = False
        logger.info("Job scheduler shut down")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        seconds: int,
        args: Optional[tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        misfire_grace_time: Optional[int] = None,
    ):
        """Register `func` every `seconds`, replacing any job already under `job_id`."""
        if job_id in self.jobs:
            logger.info("Re-registering job", job_id=job_id)
            self.remove_job(job_id)

        grace = misfire_grace_time if misfire_grace_time is not None else max(1, seconds // 2)
        job = self.scheduler.add_job(
            func,
            IntervalTrigger(seconds=seconds, timezone=timezone.utc),
            id=job_id,
            name=description or job_id,
            args=args or (),
            kwargs=kwargs or {},
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=grace,
        )
        self.jobs[job_id] = JobRegistration(job_id=job_id, interval_seconds=seconds, description=description)
        logger.info("Registered interval job", job_id=job_id, interval_seconds=seconds)
        return job

    def remove_job(self, job_id: str) -> bool:
        if self.jobs.pop(job_id, None) is None:
            logger.warning("No such job", job_id=job_id)
            return False
        try:
            self.scheduler.remove_job(job_id)
        except Exception as e:
            logger.error("APScheduler refused job removal", job_id=job_id, error=str(e))
            return False
        return True

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Registration details plus the next fire time, or None if unknown."""
        registration = self.jobs.get(job_id)
        job = self.scheduler.get_job(job_id) if registration else None
        if job is None:
            return None

        # Pending jobs (scheduler not started yet) have no next_run_time.
        next_run = getattr(job, "next_run_time", None)
        return {
            "job_id": job_id,
            "name": job.name,
            "type": "interval",
            "interval_seconds": registration.interval_seconds,
            "description": registration.description,
            "registered_at": registration.registered_at.isoformat(),
            "next_run": next_run.isoformat() if next_run else None,
        }
