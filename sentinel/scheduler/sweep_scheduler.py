from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from sentinel.models import SweepReport
from sentinel.scheduler.job_scheduler import JobScheduler
from sentinel.sweep import SweepExecutor


logger = structlog.get_logger(__name__)

DEFAULT_JOB_ID = "ping-all-monitors"
DEFAULT_INTERVAL_SECONDS = 60


class SchedulerState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class SweepScheduler:
    """
    Owns the single recurring sweep job.

    A failing sweep is logged and kept in the run history; the job itself stays
    registered so the next tick still fires.
    """

    def __init__(
        self,
        executor: SweepExecutor,
        *,
        job_scheduler: JobScheduler | None = None,
        job_id: str = DEFAULT_JOB_ID,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        history_size: int = 50,
    ):
        self.executor = executor
        self.job_scheduler = job_scheduler or JobScheduler()
        self.job_id = job_id
        self.interval_seconds = int(interval_seconds)
        self.state = SchedulerState.IDLE
        self.last_started_at: datetime | None = None
        self.last_finished_at: datetime | None = None
        self.last_error: str | None = None
        self.runs_ok = 0
        self.runs_failed = 0
        self._in_flight = 0
        self.history: deque[dict[str, Any]] = deque(maxlen=history_size)

    def register(self) -> None:
        """Register the recurring trigger; safe to call repeatedly."""
        self.job_scheduler.add_interval_job(
            job_id=self.job_id,
            func=self._tick,
            seconds=self.interval_seconds,
            description="Probe all active monitors",
        )
        self.state = SchedulerState.SCHEDULED

    async def start(self) -> None:
        self.register()
        await self.job_scheduler.start()

    async def stop(self) -> None:
        await self.job_scheduler.stop()
        if self._in_flight == 0:
            self.state = SchedulerState.IDLE

    async def _tick(self) -> SweepReport | None:
        self._in_flight += 1
        self.state = SchedulerState.RUNNING
        started = datetime.now(timezone.utc)
        try:
            report = await self.executor.run_sweep()
        except Exception as e:
            self.runs_failed += 1
            self.last_started_at, self.last_finished_at = started, datetime.now(timezone.utc)
            self.last_error = f"{type(e).__name__}: {e}"
            self.history.append({"started_at": started.isoformat(), "ok": False, "error": self.last_error})
            logger.error("Sweep failed", job_id=self.job_id, error=self.last_error)
            return None
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self.state = SchedulerState.SCHEDULED if self.job_id in self.job_scheduler.jobs else SchedulerState.IDLE

        self.last_started_at, self.last_finished_at = report.started_at, report.finished_at
        self.runs_ok += 1
        self.last_error = None
        self.history.append({"started_at": started.isoformat(), "ok": True, **report.to_dict()})
        return report

    async def run_now(self) -> SweepReport | None:
        """Run one sweep immediately, serialized with scheduled ticks."""
        return await self._tick()

    def status(self) -> dict[str, Any]:
        job = self.job_scheduler.get_job_status(self.job_id)
        return {
            "state": self.state.value,
            "job_id": self.job_id,
            "interval_seconds": self.interval_seconds,
            "scheduler_running": self.job_scheduler.running,
            "next_run": job.get("next_run") if job else None,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
            "runs_ok": self.runs_ok,
            "runs_failed": self.runs_failed,
        }
