from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from sentinel.config import SentinelConfig, load_config
from sentinel.registry import StaticMonitorRegistry, YamlMonitorRegistry, parse_monitor_entries, parse_monitor_entry
from sentinel.models import Monitor


_ENV_VARS = [
    "SENTINEL_CONFIG",
    "SENTINEL_ENV",
    "LOG_LEVEL",
    "SENTINEL_SWEEP_INTERVAL",
    "SENTINEL_PROBE_TIMEOUT_MS",
    "SENTINEL_DB_PATH",
    "SENTINEL_MONITORS_FILE",
    "SENTINEL_API_PORT",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "SMTP_FROM",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_file_missing(tmp_path: Path) -> None:
    cfg = load_config(str(tmp_path / "missing.yaml"))
    assert cfg.sweep_job_id == "ping-all-monitors"
    assert cfg.sweep_interval_seconds == 60
    assert cfg.probe_timeout_ms == 10_000
    assert cfg.webhook_timeout_seconds == 5.0
    assert cfg.status_cache_ttl_seconds == 60.0
    assert cfg.smtp.configured is False


def test_yaml_values_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "sentinel.yaml"
    path.write_text(
        "environment: staging\n"
        "sweep_interval_seconds: 30\n"
        "store_backend: memory\n"
        "smtp:\n"
        "  port: 2525\n"
        "  use_tls: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("SENTINEL_PROBE_TIMEOUT_MS", "2500")
    monkeypatch.setenv("SENTINEL_SWEEP_INTERVAL", "15")
    monkeypatch.setenv("SMTP_HOST", "smtp.internal")
    monkeypatch.setenv("SMTP_FROM", "alerts@example.com")

    cfg = load_config(str(path))

    assert cfg.environment == "staging"
    assert cfg.store_backend == "memory"
    assert cfg.sweep_interval_seconds == 15
    assert cfg.probe_timeout_ms == 2500
    assert cfg.smtp.host == "smtp.internal"
    assert cfg.smtp.port == 2525
    assert cfg.smtp.use_tls is False
    assert cfg.smtp.configured is True


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "alt.yaml"
    path.write_text("log_level: DEBUG\n", encoding="utf-8")
    monkeypatch.setenv("SENTINEL_CONFIG", str(path))
    assert load_config().log_level == "DEBUG"


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        SentinelConfig(store_backend="mongodb")
    with pytest.raises(ValidationError):
        SentinelConfig(sweep_interval_seconds=0)


def test_parse_string_entry_uses_url_as_id() -> None:
    monitor = parse_monitor_entry(0, "https://example.com/")
    assert monitor.id == "https://example.com/"
    assert monitor.has_channels is False


@pytest.mark.parametrize(
    ("entry", "active"),
    [
        ({"url": "https://a.example"}, True),
        ({"url": "https://a.example", "active": False}, False),
        ({"url": "https://a.example", "enabled": False}, False),
        ({"url": "https://a.example", "disabled": True}, False),
    ],
)
def test_parse_active_flags(entry: dict, active: bool) -> None:
    assert parse_monitor_entry(0, entry).active is active


def test_parse_entries_skips_invalid_and_duplicates() -> None:
    monitors = parse_monitor_entries(
        [
            {"id": "a", "url": "https://a.example", "alert_email": " ops@example.com "},
            {"id": "a", "url": "https://dup.example"},
            {"id": "b", "url": "ftp://b.example"},
            {"id": "c"},
            42,
            {"id": "d", "url": "http://d.example", "webhook_url": ""},
        ]
    )
    assert [m.id for m in monitors] == ["a", "d"]
    assert monitors[0].alert_email == "ops@example.com"
    assert monitors[1].webhook_url is None


def test_yaml_registry_returns_active_monitors_and_rereads(tmp_path: Path) -> None:
    path = tmp_path / "monitors.yaml"
    path.write_text(
        "monitors:\n"
        "  - id: a\n"
        "    url: https://a.example\n"
        "  - id: b\n"
        "    url: https://b.example\n"
        "    active: false\n",
        encoding="utf-8",
    )
    registry = YamlMonitorRegistry(path)
    assert [m.id for m in registry.list_active()] == ["a"]
    assert registry.get("b") is None

    path.write_text("monitors:\n  - id: c\n    url: https://c.example\n", encoding="utf-8")
    assert [m.id for m in registry.list_active()] == ["c"]


def test_yaml_registry_missing_file_is_empty(tmp_path: Path) -> None:
    assert YamlMonitorRegistry(tmp_path / "nope.yaml").list_active() == []


def test_yaml_registry_rejects_malformed_document(tmp_path: Path) -> None:
    path = tmp_path / "monitors.yaml"
    path.write_text("monitors: not-a-list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        YamlMonitorRegistry(path).list_active()


def test_static_registry_filters_inactive() -> None:
    registry = StaticMonitorRegistry(
        [Monitor(id="a", url="https://a.example"), Monitor(id="b", url="https://b.example", active=False)]
    )
    assert [m.id for m in registry.list_active()] == ["a"]
    assert registry.get("a") is not None
