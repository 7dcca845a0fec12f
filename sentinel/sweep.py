"""One pass over every active monitor: probe, record, alert on edges."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

import structlog

from sentinel.models import Monitor, PingResult, SweepReport, Transition, TransitionEvent, utc_now
from sentinel.notifications import AlertDispatcher
from sentinel.probe import DEFAULT_TIMEOUT_MS, Prober
from sentinel.registry import MonitorRegistry
from sentinel.storage import PingStore
from sentinel.transitions import TransitionTracker


logger = structlog.get_logger(__name__)


class SweepExecutor:
    """
    Runs Prober → TransitionTracker/PingStore → AlertDispatcher for each monitor.

    Whole sweeps are serialized by `_sweep_lock`, so an on-demand sweep and a
    scheduled tick never interleave. Within a sweep, up to `concurrency`
    monitors are processed at once; a per-monitor lock keeps the read-prior and
    append of one monitor from overlapping with another step for that monitor.
    """

    def __init__(
        self,
        registry: MonitorRegistry,
        store: PingStore,
        prober: Prober,
        dispatcher: AlertDispatcher,
        *,
        tracker: TransitionTracker | None = None,
        probe_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        concurrency: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.store = store
        self.prober = prober
        self.dispatcher = dispatcher
        self.tracker = tracker or TransitionTracker(store)
        self.probe_timeout_ms = int(probe_timeout_ms)
        self.concurrency = max(1, int(concurrency))
        self._clock = clock
        self._sweep_lock = asyncio.Lock()
        self._monitor_locks: dict[str, asyncio.Lock] = {}
        self.last_report: SweepReport | None = None

    @property
    def running(self) -> bool:
        return self._sweep_lock.locked()

    async def run_sweep(self) -> SweepReport:
        async with self._sweep_lock:
            report = SweepReport(started_at=self._clock())
            monitors = list(self.registry.list_active())
            report.monitors_total = len(monitors)
            logger.info("Starting sweep", monitors=len(monitors))

            semaphore = asyncio.Semaphore(self.concurrency)

            async def _guarded(monitor: Monitor) -> None:
                async with semaphore:
                    await self._process_isolated(monitor, report)

            await asyncio.gather(*(_guarded(m) for m in monitors))
            self._prune_locks({m.id for m in monitors})

            report.finished_at = self._clock()
            self.last_report = report
            logger.info(
                "Sweep completed",
                monitors=report.monitors_total,
                probed=report.probed,
                failed=len(report.failed_monitors),
                alerts=report.alerts_dispatched,
                duration_ms=report.duration_ms,
            )
            return report

    async def _process_isolated(self, monitor: Monitor, report: SweepReport) -> None:
        try:
            event = await self.process_monitor(monitor)
        except Exception as e:
            report.failed_monitors.append(monitor.id)
            logger.error(
                "Monitor processing failed",
                monitor_id=monitor.id,
                url=monitor.url,
                error=f"{type(e).__name__}: {e}",
            )
            return

        report.probed += 1
        report.transitions[monitor.id] = event.transition
        if event.transition is not Transition.NONE and monitor.has_channels:
            if event.transition is Transition.BECAME_DOWN or event.prior is not None:
                report.alerts_dispatched += 1

    def _prune_locks(self, active_ids: set[str]) -> None:
        for monitor_id in list(self._monitor_locks):
            if monitor_id not in active_ids and not self._monitor_locks[monitor_id].locked():
                del self._monitor_locks[monitor_id]

    def _lock_for(self, monitor_id: str) -> asyncio.Lock:
        lock = self._monitor_locks.get(monitor_id)
        if lock is None:
            lock = self._monitor_locks[monitor_id] = asyncio.Lock()
        return lock

    async def process_monitor(self, monitor: Monitor) -> TransitionEvent:
        """Probe one monitor, record the result and send any alert. May raise on store errors."""
        async with self._lock_for(monitor.id):
            outcome = await self.prober.probe(monitor.url, self.probe_timeout_ms)
            result = PingResult.from_outcome(monitor.id, outcome, timestamp=self._clock())
            # Store writes may wait on sqlite busy_timeout.
            event = await asyncio.to_thread(self.tracker.record, result)

        stored = event.result
        logger.info(
            "Probed monitor",
            monitor_id=monitor.id,
            status_code=stored.status_code,
            response_time_ms=stored.response_time_ms,
            success=stored.success,
        )

        if not monitor.has_channels:
            return event

        if event.transition is Transition.BECAME_DOWN:
            await self.dispatcher.notify_down(monitor, stored)
        elif event.transition is Transition.BECAME_UP and event.prior is not None:
            await self.dispatcher.notify_up(
                monitor,
                down_since=event.prior.timestamp,
                recovered_at=stored.timestamp,
            )
        return event
