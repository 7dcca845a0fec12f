"""Scheduler module for the recurring sweep."""

from .job_scheduler import JobScheduler
from .sweep_scheduler import SchedulerState, SweepScheduler

__all__ = ["JobScheduler", "SchedulerState", "SweepScheduler"]
