from __future__ import annotations

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any, Callable

import httpx
import structlog

from sentinel.config import SmtpConfig
from sentinel.models import Monitor
from sentinel.notifications.formatting import (
    DownAlert,
    RecoveryAlert,
    build_down_email_body,
    build_down_webhook_payload,
    build_recovery_email_body,
    build_recovery_webhook_payload,
)


logger = structlog.get_logger(__name__)

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"

WEBHOOK_TIMEOUT_SECONDS = 5.0


class AlertChannel(ABC):
    """One notification medium. Sends return SENT or SKIPPED and raise on failure."""

    name: str = "channel"

    @abstractmethod
    def applies_to(self, monitor: Monitor) -> bool:
        ...

    @abstractmethod
    async def send_down(self, monitor: Monitor, alert: DownAlert) -> str:
        ...

    @abstractmethod
    async def send_recovery(self, monitor: Monitor, alert: RecoveryAlert) -> str:
        ...


class EmailChannel(AlertChannel):
    name = "email"

    def __init__(self, smtp: SmtpConfig, transport: Callable[[EmailMessage], None] | None = None):
        """
        Args:
            smtp: Server settings; without a host and sender every send is skipped.
            transport: Replaces the SMTP delivery (blocking callable, run in a thread).
        """
        self.smtp = smtp
        self._transport = transport

    def applies_to(self, monitor: Monitor) -> bool:
        return bool(monitor.alert_email)

    def _smtp_send(self, message: EmailMessage) -> None:
        cfg = self.smtp
        with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout_seconds) as client:
            if cfg.use_tls:
                client.starttls()
            if cfg.username:
                client.login(cfg.username, cfg.password or "")
            client.send_message(message)

    def _build_message(self, to_address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.smtp.from_address or ""
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)
        return message

    async def _deliver(self, monitor: Monitor, subject: str, body: str) -> str:
        if self._transport is None and not self.smtp.configured:
            logger.warning("SMTP not configured; skipping email alert", monitor_id=monitor.id)
            return SKIPPED
        message = self._build_message(str(monitor.alert_email), subject, body)
        await asyncio.to_thread(self._transport or self._smtp_send, message)
        logger.info("Email alert sent", monitor_id=monitor.id, to=monitor.alert_email)
        return SENT

    async def send_down(self, monitor: Monitor, alert: DownAlert) -> str:
        return await self._deliver(monitor, alert.subject, build_down_email_body(alert))

    async def send_recovery(self, monitor: Monitor, alert: RecoveryAlert) -> str:
        return await self._deliver(monitor, alert.subject, build_recovery_email_body(alert))


class WebhookChannel(AlertChannel):
    name = "webhook"

    def __init__(self, client: httpx.AsyncClient | None = None, *, timeout_seconds: float = WEBHOOK_TIMEOUT_SECONDS):
        self._client = client
        self.timeout_seconds = float(timeout_seconds)

    def applies_to(self, monitor: Monitor) -> bool:
        return bool(monitor.webhook_url)

    async def _post(self, monitor: Monitor, payload: dict[str, Any]) -> str:
        url = str(monitor.webhook_url)
        if self._client is not None:
            resp = await self._client.post(url, json=payload, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, json=payload, timeout=self.timeout_seconds)
        resp.raise_for_status()
        logger.info("Webhook alert sent", monitor_id=monitor.id, status_code=resp.status_code)
        return SENT

    async def send_down(self, monitor: Monitor, alert: DownAlert) -> str:
        return await self._post(monitor, build_down_webhook_payload(alert))

    async def send_recovery(self, monitor: Monitor, alert: RecoveryAlert) -> str:
        return await self._post(monitor, build_recovery_webhook_payload(alert))
