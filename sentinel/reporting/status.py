from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from sentinel.cache import Cache
from sentinel.models import PingResult, utc_now
from sentinel.registry import MonitorRegistry
from sentinel.storage import PingStore


UP_MIN_UPTIME_PERCENT = 95.0
DEGRADED_MIN_UPTIME_PERCENT = 80.0


def compute_uptime_percent(items: Iterable[PingResult]) -> float | None:
    items = list(items)
    if not items:
        return None
    ok_count = sum(1 for r in items if r.success)
    return (ok_count / float(len(items))) * 100.0


def compute_avg_response_ms(items: Iterable[PingResult]) -> float | None:
    values = [float(r.response_time_ms) for r in items]
    if not values:
        return None
    return sum(values) / float(len(values))


def derive_status(latest: PingResult | None, uptime_percent: float | None) -> str:
    """`down` whenever the newest probe failed; otherwise graded by window uptime."""
    if latest is None or uptime_percent is None:
        return "unknown"
    if not latest.success:
        return "down"
    if uptime_percent >= UP_MIN_UPTIME_PERCENT:
        return "up"
    if uptime_percent >= DEGRADED_MIN_UPTIME_PERCENT:
        return "degraded"
    return "down"


def _unknown(monitor_id: str, name: str) -> dict[str, Any]:
    return {
        "monitorId": monitor_id,
        "name": name,
        "status": "unknown",
        "uptime": 0,
        "lastCheck": None,
        "avgResponseTime": 0,
    }


class StatusService:
    """Read-only summaries over the ping store for dashboards and status pages."""

    def __init__(
        self,
        store: PingStore,
        registry: MonitorRegistry,
        cache: Cache,
        *,
        window_hours: int = 24,
        cache_ttl_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.registry = registry
        self.cache = cache
        self.window = timedelta(hours=window_hours)
        self.cache_ttl_seconds = float(cache_ttl_seconds)
        self._clock = clock

    def monitor_status(self, monitor_id: str) -> tuple[bool, dict[str, Any]]:
        """Returns (found, summary). Unknown or inactive monitors are not cached."""
        key = f"status:{monitor_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return True, cached

        monitor = self.registry.get(monitor_id)
        if monitor is None or not monitor.active:
            return False, _unknown(monitor_id, "Unknown")

        since = self._clock() - self.window
        items = self.store.query(monitor_id, since=since, limit=None, descending=True)
        if not items:
            summary = _unknown(monitor.id, monitor.display_name)
        else:
            uptime = compute_uptime_percent(items)
            avg_ms = compute_avg_response_ms(items)
            summary = {
                "monitorId": monitor.id,
                "name": monitor.display_name,
                "status": derive_status(items[0], uptime),
                "uptime": round(uptime or 0.0, 2),
                "lastCheck": items[0].timestamp.isoformat(),
                "avgResponseTime": round(avg_ms or 0.0, 2),
            }

        self.cache.set(key, summary, self.cache_ttl_seconds)
        return True, summary

    def invalidate(self, monitor_id: str) -> None:
        self.cache.expire(f"status:{monitor_id}")

    def liveness(self, max_age_seconds: int) -> dict[str, Any]:
        """Whether sweeps are still landing in the store, from the fleet-wide recency index."""
        now = self._clock()
        recent = self.store.recent_across_all_monitors(now - timedelta(seconds=max_age_seconds))
        newest = recent[0].timestamp if recent else None
        return {
            "live": bool(recent),
            "max_age_seconds": int(max_age_seconds),
            "pings_in_window": len(recent),
            "monitors_in_window": len({r.monitor_id for r in recent}),
            "newest_ping_at": newest.isoformat() if newest else None,
        }
