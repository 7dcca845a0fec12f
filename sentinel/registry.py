from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable

import structlog
import yaml

from sentinel.models import Monitor


logger = structlog.get_logger(__name__)


class MonitorRegistry(ABC):
    """Read-only view of the monitors owned by the configuration service."""

    @abstractmethod
    def list_active(self) -> list[Monitor]:
        ...

    def get(self, monitor_id: str) -> Monitor | None:
        for monitor in self.list_active():
            if monitor.id == monitor_id:
                return monitor
        return None


class StaticMonitorRegistry(MonitorRegistry):
    def __init__(self, monitors: Iterable[Monitor] = ()):
        self._monitors = list(monitors)

    def list_active(self) -> list[Monitor]:
        return [m for m in self._monitors if m.active]


def _opt_str(value: Any) -> str | None:
    s = str(value or "").strip()
    return s or None


def parse_monitor_entry(idx: int, entry: Any) -> Monitor:
    if isinstance(entry, str):
        url = entry.strip()
        if not url:
            raise ValueError(f"monitors[{idx}] is empty")
        return Monitor(id=url, url=url)

    if not isinstance(entry, dict):
        raise ValueError(f"monitors[{idx}] must be a string or mapping, got {type(entry).__name__}")

    url = str(entry.get("url") or "").strip()
    if not url:
        raise ValueError(f"monitors[{idx}].url is required")
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"monitors[{idx}].url must be http(s): {url!r}")

    active = not bool(entry.get("disabled")) and entry.get("active", entry.get("enabled", True)) is not False
    return Monitor(
        id=str(entry.get("id") or url).strip(),
        url=url,
        name=str(entry.get("name") or "").strip(),
        active=active,
        alert_email=_opt_str(entry.get("alert_email")),
        webhook_url=_opt_str(entry.get("webhook_url")),
    )


def parse_monitor_entries(entries: list[Any]) -> list[Monitor]:
    """Parse raw YAML entries, skipping (and logging) the invalid ones."""
    monitors: list[Monitor] = []
    seen: set[str] = set()
    for idx, entry in enumerate(entries):
        try:
            monitor = parse_monitor_entry(idx, entry)
        except ValueError as e:
            logger.warning("Skipping invalid monitor entry", index=idx, error=str(e))
            continue
        if monitor.id in seen:
            logger.warning("Skipping duplicate monitor id", index=idx, monitor_id=monitor.id)
            continue
        seen.add(monitor.id)
        monitors.append(monitor)
    return monitors


class YamlMonitorRegistry(MonitorRegistry):
    """
    Monitors listed under a top-level `monitors:` key.

    The file is re-read on every call so each sweep sees a fresh snapshot of
    whatever the configuration service last wrote.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load_entries(self) -> list[Any]:
        if not self.path.exists():
            logger.warning("Monitors file not found", path=str(self.path))
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Monitors YAML must be a mapping")
        entries = data.get("monitors") or []
        if not isinstance(entries, list):
            raise ValueError("monitors must be a list")
        return entries

    def list_active(self) -> list[Monitor]:
        return [m for m in parse_monitor_entries(self._load_entries()) if m.active]
