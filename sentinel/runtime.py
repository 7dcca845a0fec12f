"""Wires the sweep pipeline together from configuration."""

from typing import Any, Dict, Optional

import httpx
import structlog

from .cache import MemoryTTLCache
from .config import SentinelConfig, get_config
from .notifications import AlertDispatcher, EmailChannel, WebhookChannel
from .probe import USER_AGENT, Prober
from .registry import MonitorRegistry, YamlMonitorRegistry
from .reporting import StatusService
from .scheduler import SweepScheduler
from .storage import MemoryPingStore, PingStore, SqlitePingStore
from .sweep import SweepExecutor


logger = structlog.get_logger(__name__)


def build_store(config: SentinelConfig) -> PingStore:
    if config.store_backend == "memory":
        return MemoryPingStore()
    return SqlitePingStore(config.db_path)


class SentinelRuntime:
    """Owns the long-lived objects of one process: store, HTTP client, scheduler."""

    def __init__(
        self,
        config: Optional[SentinelConfig] = None,
        *,
        registry: Optional[MonitorRegistry] = None,
        store: Optional[PingStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self.registry = registry or YamlMonitorRegistry(self.config.monitors_file)
        self._owns_store = store is None
        self.store = store or build_store(self.config)
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})

        self.prober = Prober(self.http_client, default_timeout_ms=self.config.probe_timeout_ms)
        self.dispatcher = AlertDispatcher(
            [
                EmailChannel(self.config.smtp),
                WebhookChannel(self.http_client, timeout_seconds=self.config.webhook_timeout_seconds),
            ]
        )
        self.executor = SweepExecutor(
            self.registry,
            self.store,
            self.prober,
            self.dispatcher,
            probe_timeout_ms=self.config.probe_timeout_ms,
            concurrency=self.config.sweep_concurrency,
        )
        self.scheduler = SweepScheduler(
            self.executor,
            job_id=self.config.sweep_job_id,
            interval_seconds=self.config.sweep_interval_seconds,
        )
        self.status_service = StatusService(
            self.store,
            self.registry,
            MemoryTTLCache(),
            window_hours=self.config.status_window_hours,
            cache_ttl_seconds=self.config.status_cache_ttl_seconds,
        )

    async def start(self):
        """Register the recurring sweep and start ticking."""
        await self.scheduler.start()
        logger.info(
            "Sentinel started",
            environment=self.config.environment,
            interval_seconds=self.config.sweep_interval_seconds,
            store_backend=self.config.store_backend,
        )

    async def stop(self):
        """Stop ticking and release the store and HTTP client if this runtime created them."""
        await self.scheduler.stop()
        if self._owns_client:
            await self.http_client.aclose()
        if self._owns_store:
            self.store.close()
        logger.info("Sentinel stopped")

    def get_system_status(self) -> Dict[str, Any]:
        return {
            "environment": self.config.environment,
            "scheduler": self.scheduler.status(),
            "liveness": self.status_service.liveness(self.config.liveness_max_age_seconds),
            "last_sweep": self.executor.last_report.to_dict() if self.executor.last_report else None,
        }
