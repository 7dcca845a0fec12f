from __future__ import annotations

import heapq
import threading
from bisect import bisect_left, bisect_right
from datetime import datetime

from sentinel.models import PingResult, ensure_utc
from sentinel.storage.base import OutOfOrderPingError, PingStore, order_after


class MemoryPingStore(PingStore):
    """Process-local store, used for tests and `store_backend: memory`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_monitor: dict[str, list[PingResult]] = {}

    def _append_locked(self, result: PingResult) -> None:
        items = self._by_monitor.setdefault(result.monitor_id, [])
        if items and result.timestamp < items[-1].timestamp:
            raise OutOfOrderPingError(
                f"ping for {result.monitor_id} at {result.timestamp.isoformat()} "
                f"is older than {items[-1].timestamp.isoformat()}"
            )
        items.append(result)

    def append(self, result: PingResult) -> None:
        with self._lock:
            self._append_locked(result)

    def most_recent(self, monitor_id: str) -> PingResult | None:
        with self._lock:
            items = self._by_monitor.get(monitor_id)
            return items[-1] if items else None

    def query(
        self,
        monitor_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = 100,
        descending: bool = True,
    ) -> list[PingResult]:
        with self._lock:
            items = list(self._by_monitor.get(monitor_id) or [])

        ts_list = [r.timestamp for r in items]
        lo = bisect_left(ts_list, ensure_utc(since)) if since is not None else 0
        hi = bisect_right(ts_list, ensure_utc(until)) if until is not None else len(items)
        window = items[lo:hi]
        if descending:
            window.reverse()
        if limit is not None:
            window = window[: max(0, int(limit))]
        return window

    def recent_across_all_monitors(self, since: datetime, *, limit: int | None = None) -> list[PingResult]:
        cutoff = ensure_utc(since)
        with self._lock:
            per_monitor = []
            for items in self._by_monitor.values():
                idx = bisect_left([r.timestamp for r in items], cutoff)
                if idx < len(items):
                    per_monitor.append(list(reversed(items[idx:])))

        merged = heapq.merge(*per_monitor, key=lambda r: r.timestamp, reverse=True)
        out: list[PingResult] = []
        for r in merged:
            if limit is not None and len(out) >= limit:
                break
            out.append(r)
        return out

    def record(self, result: PingResult) -> tuple[PingResult | None, PingResult]:
        with self._lock:
            items = self._by_monitor.get(result.monitor_id)
            prior = items[-1] if items else None
            stored = order_after(prior, result)
            self._append_locked(stored)
            return prior, stored
