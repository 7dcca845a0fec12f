from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from sentinel.models import PingResult


class PingStoreError(RuntimeError):
    """The ping store could not complete a read or write."""


class OutOfOrderPingError(PingStoreError):
    """An append would put a monitor's history out of time order."""


class PingStore(ABC):
    """
    Append-only, time-ordered log of probe outcomes.

    Implementations must keep `most_recent` strongly consistent with earlier
    appends and make `record` a single atomic read-then-append per monitor.
    """

    @abstractmethod
    def append(self, result: PingResult) -> None:
        ...

    @abstractmethod
    def most_recent(self, monitor_id: str) -> PingResult | None:
        ...

    @abstractmethod
    def query(
        self,
        monitor_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = 100,
        descending: bool = True,
    ) -> list[PingResult]:
        ...

    @abstractmethod
    def recent_across_all_monitors(self, since: datetime, *, limit: int | None = None) -> list[PingResult]:
        ...

    @abstractmethod
    def record(self, result: PingResult) -> tuple[PingResult | None, PingResult]:
        """
        Atomically fetch the latest entry for `result.monitor_id` and append `result`.

        Returns (prior, stored). If the clock stepped backwards, `stored` is the
        result re-stamped with the prior timestamp.
        """

    def close(self) -> None:
        return None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def order_after(prior: PingResult | None, result: PingResult) -> PingResult:
    if prior is not None and result.timestamp < prior.timestamp:
        return result.restamped(prior.timestamp)
    return result
