from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TransportErrorKind(str, Enum):
    """Why a probe produced no HTTP response at all."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    TRANSPORT = "transport"


# Synthetic HTTP-shaped codes stored alongside transport errors so every
# PingResult carries a numeric status.
SYNTHETIC_STATUS_CODES: dict[TransportErrorKind, int] = {
    TransportErrorKind.TIMEOUT: 408,
    TransportErrorKind.UNREACHABLE: 503,
    TransportErrorKind.TRANSPORT: 500,
}


class Transition(str, Enum):
    NONE = "none"
    BECAME_DOWN = "became-down"
    BECAME_UP = "became-up"


def is_success_status(status_code: int) -> bool:
    return 200 <= int(status_code) < 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class Monitor:
    id: str
    url: str
    name: str = ""
    active: bool = True
    alert_email: str | None = None
    webhook_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.url

    @property
    def has_channels(self) -> bool:
        return bool(self.alert_email or self.webhook_url)


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of a single probe: either a real HTTP status or a transport error.

    Keeping the two apart means a server that answers 503 is never confused with
    a host we could not reach at all; `status_code` still yields a uniform number
    for storage and alerting.
    """

    response_time_ms: float
    http_status: int | None = None
    error: TransportErrorKind | None = None
    error_detail: str | None = None

    def __post_init__(self) -> None:
        if (self.http_status is None) == (self.error is None):
            raise ValueError("ProbeOutcome needs exactly one of http_status or error")
        if self.response_time_ms < 0:
            raise ValueError("response_time_ms must be non-negative")

    @classmethod
    def from_status(cls, status_code: int, response_time_ms: float) -> ProbeOutcome:
        return cls(response_time_ms=response_time_ms, http_status=int(status_code))

    @classmethod
    def from_error(cls, kind: TransportErrorKind, response_time_ms: float, detail: str | None = None) -> ProbeOutcome:
        return cls(response_time_ms=response_time_ms, error=kind, error_detail=detail)

    @property
    def status_code(self) -> int:
        if self.error is not None:
            return SYNTHETIC_STATUS_CODES[self.error]
        return int(self.http_status or 0)

    @property
    def success(self) -> bool:
        return self.error is None and is_success_status(self.status_code)


@dataclass(frozen=True)
class PingResult:
    monitor_id: str
    timestamp: datetime
    status_code: int
    response_time_ms: float
    success: bool
    error_kind: TransportErrorKind | None = None

    def __post_init__(self) -> None:
        if not self.monitor_id:
            raise ValueError("PingResult.monitor_id is required")
        if self.response_time_ms < 0:
            raise ValueError("response_time_ms must be non-negative")
        if bool(self.success) != is_success_status(self.status_code):
            raise ValueError(
                f"success={self.success} disagrees with status_code={self.status_code}"
            )
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @classmethod
    def from_outcome(cls, monitor_id: str, outcome: ProbeOutcome, *, timestamp: datetime) -> PingResult:
        return cls(
            monitor_id=monitor_id,
            timestamp=timestamp,
            status_code=outcome.status_code,
            response_time_ms=round(float(outcome.response_time_ms), 3),
            success=outcome.success,
            error_kind=outcome.error,
        )

    def restamped(self, timestamp: datetime) -> PingResult:
        return replace(self, timestamp=timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "monitorId": self.monitor_id,
            "timestamp": self.timestamp.isoformat(),
            "statusCode": self.status_code,
            "responseTimeMs": self.response_time_ms,
            "success": self.success,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }


@dataclass(frozen=True)
class TransitionEvent:
    transition: Transition
    result: PingResult
    prior: PingResult | None = None

    @property
    def down_since(self) -> datetime | None:
        if self.transition is Transition.BECAME_UP and self.prior is not None:
            return self.prior.timestamp
        return None


@dataclass
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    monitors_total: int = 0
    probed: int = 0
    alerts_dispatched: int = 0
    failed_monitors: list[str] = field(default_factory=list)
    transitions: dict[str, Transition] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds() * 1000.0, 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "monitors_total": self.monitors_total,
            "probed": self.probed,
            "failed": len(self.failed_monitors),
            "failed_monitors": list(self.failed_monitors),
            "alerts_dispatched": self.alerts_dispatched,
            "transitions": {k: v.value for k, v in self.transitions.items() if v is not Transition.NONE},
        }
