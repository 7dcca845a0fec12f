"""Configuration management for the probing service."""

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field


class SmtpConfig(BaseModel):
    """Outbound mail settings for down/recovery emails."""
    host: Optional[str] = Field(default=None, description="SMTP server; email alerts are skipped when unset")
    port: int = Field(default=587, description="SMTP port")
    username: Optional[str] = Field(default=None, description="SMTP login")
    password: Optional[str] = Field(default=None, description="SMTP password")
    from_address: Optional[str] = Field(default=None, description="Sender address for alert emails")
    use_tls: bool = Field(default=True, description="Upgrade the connection with STARTTLS")
    timeout_seconds: float = Field(default=10.0, description="SMTP connect/send timeout")

    @property
    def configured(self) -> bool:
        return bool(self.host and self.from_address)


class SentinelConfig(BaseModel):
    """Main configuration for the probing service."""

    # Environment settings
    environment: str = Field(default="production", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Sweep scheduling
    sweep_job_id: str = Field(default="ping-all-monitors", description="Stable id of the recurring sweep job")
    sweep_interval_seconds: int = Field(default=60, ge=1, description="Seconds between sweeps")
    sweep_concurrency: int = Field(default=1, ge=1, description="Monitors probed in parallel within a sweep")

    # Probing and alerting
    probe_timeout_ms: int = Field(default=10_000, ge=1, description="Per-probe timeout in milliseconds")
    webhook_timeout_seconds: float = Field(default=5.0, gt=0, description="Webhook POST timeout")

    # Storage
    store_backend: str = Field(default="sqlite", pattern="^(sqlite|memory)$", description="Ping store backend")
    db_path: str = Field(default="data/sentinel.db", description="SQLite database for ping results")
    monitors_file: str = Field(default="config/monitors.yaml", description="YAML file listing monitors")

    # Status reporting
    status_window_hours: int = Field(default=24, ge=1, description="Window for uptime/latency summaries")
    status_cache_ttl_seconds: float = Field(default=60.0, ge=0, description="TTL of cached status summaries")
    liveness_max_age_seconds: int = Field(default=180, ge=1, description="Newest ping age still considered live")

    # HTTP surface
    api_host: str = Field(default="0.0.0.0", description="Bind address for the HTTP API")
    api_port: int = Field(default=8000, description="Port for the HTTP API")

    smtp: SmtpConfig = Field(default_factory=SmtpConfig)


_INT_KEYS = {"sweep_interval_seconds", "probe_timeout_ms", "api_port"}


def load_config(config_path: Optional[str] = None) -> SentinelConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("SENTINEL_CONFIG", "config/sentinel.yaml")

    config_data: Dict[str, Any] = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

    # Override with environment variables
    env_overrides = {
        "environment": os.getenv("SENTINEL_ENV"),
        "log_level": os.getenv("LOG_LEVEL"),
        "sweep_interval_seconds": os.getenv("SENTINEL_SWEEP_INTERVAL"),
        "probe_timeout_ms": os.getenv("SENTINEL_PROBE_TIMEOUT_MS"),
        "db_path": os.getenv("SENTINEL_DB_PATH"),
        "monitors_file": os.getenv("SENTINEL_MONITORS_FILE"),
        "api_port": os.getenv("SENTINEL_API_PORT"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key in _INT_KEYS:
                value = int(value)
            config_data[key] = value

    smtp_overrides = {
        "host": os.getenv("SMTP_HOST"),
        "port": os.getenv("SMTP_PORT"),
        "username": os.getenv("SMTP_USERNAME"),
        "password": os.getenv("SMTP_PASSWORD"),
        "from_address": os.getenv("SMTP_FROM"),
    }
    smtp_data = dict(config_data.get("smtp") or {})
    for key, value in smtp_overrides.items():
        if value is not None:
            smtp_data[key] = int(value) if key == "port" else value
    if smtp_data:
        config_data["smtp"] = smtp_data

    return SentinelConfig(**config_data)


def get_config() -> SentinelConfig:
    """Get the configuration for the current process."""
    return load_config()
