from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sentinel.models import Monitor, PingResult, ensure_utc


def format_downtime(delta: timedelta) -> str:
    """Whole minutes, with hours split out once the outage reaches an hour."""
    minutes = max(0, int(delta.total_seconds() // 60))
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def _iso(ts: datetime) -> str:
    return ensure_utc(ts).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class DownAlert:
    monitor_name: str
    url: str
    status_code: int
    response_time_ms: float
    timestamp: datetime

    @classmethod
    def from_result(cls, monitor: Monitor, result: PingResult) -> DownAlert:
        return cls(
            monitor_name=monitor.display_name,
            url=monitor.url,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            timestamp=result.timestamp,
        )

    @property
    def subject(self) -> str:
        return f"🚨 Alert: {self.monitor_name} is down"

    @property
    def response_time_display(self) -> str:
        return f"{int(round(self.response_time_ms))}ms"


@dataclass(frozen=True)
class RecoveryAlert:
    monitor_name: str
    url: str
    down_since: datetime
    recovered_at: datetime

    @classmethod
    def for_monitor(cls, monitor: Monitor, *, down_since: datetime, recovered_at: datetime) -> RecoveryAlert:
        return cls(
            monitor_name=monitor.display_name,
            url=monitor.url,
            down_since=down_since,
            recovered_at=recovered_at,
        )

    @property
    def subject(self) -> str:
        return f"✅ Recovery: {self.monitor_name} is back online"

    @property
    def downtime_display(self) -> str:
        return format_downtime(ensure_utc(self.recovered_at) - ensure_utc(self.down_since))


def _field(title: str, value: str, short: bool = True) -> dict[str, Any]:
    return {"title": title, "value": value, "short": short}


def build_down_webhook_payload(alert: DownAlert) -> dict[str, Any]:
    return {
        "text": alert.subject,
        "attachments": [
            {
                "color": "danger",
                "fields": [
                    _field("Monitor Name", alert.monitor_name),
                    _field("URL", alert.url),
                    _field("Status Code", str(alert.status_code)),
                    _field("Response Time", alert.response_time_display),
                    _field("Timestamp", _iso(alert.timestamp), short=False),
                ],
            }
        ],
    }


def build_recovery_webhook_payload(alert: RecoveryAlert) -> dict[str, Any]:
    return {
        "text": alert.subject,
        "attachments": [
            {
                "color": "good",
                "fields": [
                    _field("Monitor Name", alert.monitor_name),
                    _field("URL", alert.url),
                    _field("Status", "Back online"),
                    _field("Downtime Duration", alert.downtime_display),
                    _field("Recovered At", _iso(alert.recovered_at), short=False),
                ],
            }
        ],
    }


def build_down_email_body(alert: DownAlert) -> str:
    return "\n".join(
        [
            "Monitor Alert",
            "",
            f"Monitor Name: {alert.monitor_name}",
            f"URL: {alert.url}",
            f"Status Code: {alert.status_code}",
            f"Response Time: {alert.response_time_display}",
            f"Timestamp: {_iso(alert.timestamp)}",
            "",
            "The monitor detected that the service is not responding correctly.",
        ]
    ).strip()


def build_recovery_email_body(alert: RecoveryAlert) -> str:
    return "\n".join(
        [
            "Monitor Recovery Alert",
            "",
            f"Monitor Name: {alert.monitor_name}",
            f"URL: {alert.url}",
            "Status: Back online",
            f"Downtime Duration: {alert.downtime_display}",
            f"Recovered At: {_iso(alert.recovered_at)}",
            "",
            "The monitor detected that the service has recovered and is now responding correctly.",
        ]
    ).strip()
