from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Sequence

import structlog

from sentinel.models import Monitor, PingResult
from sentinel.notifications.channels import FAILED, SENT, AlertChannel
from sentinel.notifications.formatting import DownAlert, RecoveryAlert


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    status: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED


@dataclass(frozen=True)
class DispatchReport:
    kind: str
    monitor_id: str
    results: tuple[ChannelResult, ...] = field(default_factory=tuple)

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.status == SENT)

    @property
    def failures(self) -> list[ChannelResult]:
        return [r for r in self.results if r.status == FAILED]


class AlertDispatcher:
    """
    Fans an alert out to every channel configured on the monitor.

    Channels run concurrently and are joined with wait-for-all semantics: one
    channel failing neither cancels nor affects the others, and neither
    `notify_down` nor `notify_up` ever raises. Per-channel outcomes come back in
    the returned DispatchReport.
    """

    def __init__(self, channels: Sequence[AlertChannel]):
        self.channels = list(channels)

    async def notify_down(self, monitor: Monitor, result: PingResult) -> DispatchReport:
        alert = DownAlert.from_result(monitor, result)
        logger.info("Dispatching down alert", monitor_id=monitor.id, status_code=result.status_code)
        return await self._fan_out(monitor, "down", lambda ch: ch.send_down(monitor, alert))

    async def notify_up(self, monitor: Monitor, down_since: datetime, recovered_at: datetime) -> DispatchReport:
        alert = RecoveryAlert.for_monitor(monitor, down_since=down_since, recovered_at=recovered_at)
        logger.info("Dispatching recovery alert", monitor_id=monitor.id, downtime=alert.downtime_display)
        return await self._fan_out(monitor, "recovery", lambda ch: ch.send_recovery(monitor, alert))

    async def _fan_out(
        self,
        monitor: Monitor,
        kind: str,
        send: Callable[[AlertChannel], Awaitable[str]],
    ) -> DispatchReport:
        channels = [ch for ch in self.channels if ch.applies_to(monitor)]
        if not channels:
            return DispatchReport(kind=kind, monitor_id=monitor.id)

        outcomes = await asyncio.gather(*(send(ch) for ch in channels), return_exceptions=True)

        results: list[ChannelResult] = []
        for channel, outcome in zip(channels, outcomes):
            if isinstance(outcome, BaseException):
                error = f"{type(outcome).__name__}: {outcome}"[:500]
                logger.error(
                    "Alert channel failed",
                    monitor_id=monitor.id,
                    channel=channel.name,
                    kind=kind,
                    error=error,
                )
                results.append(ChannelResult(channel=channel.name, status=FAILED, error=error))
            else:
                results.append(ChannelResult(channel=channel.name, status=str(outcome)))

        return DispatchReport(kind=kind, monitor_id=monitor.id, results=tuple(results))
