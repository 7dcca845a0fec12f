from __future__ import annotations

import asyncio
import socket
import time

import httpx
import structlog

from sentinel.models import ProbeOutcome, TransportErrorKind


logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
USER_AGENT = "sentinel-prober/1.0"

# httpx wraps the socket error raised by the resolver or the kernel; when the
# original exception is not chained we fall back to the message text.
_UNREACHABLE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
    "connection refused",
    "errno 111",
    "errno 61",
    "all connection attempts failed",
)


def _iter_causes(exc: BaseException):
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur
        # anyio reports failed connects as an exception group of per-address errors.
        grouped = getattr(cur, "exceptions", None)
        if isinstance(grouped, (tuple, list)):
            stack.extend(e for e in grouped if isinstance(e, BaseException))
        nxt = cur.__cause__ or cur.__context__
        if nxt is not None:
            stack.append(nxt)


def classify_transport_error(exc: BaseException) -> TransportErrorKind:
    """Map a transport-level exception onto the error kind stored with the ping."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return TransportErrorKind.TIMEOUT

    for cause in _iter_causes(exc):
        if isinstance(cause, (socket.gaierror, ConnectionRefusedError)):
            return TransportErrorKind.UNREACHABLE

    if isinstance(exc, httpx.ConnectError):
        msg = str(exc or "").lower()
        if any(marker in msg for marker in _UNREACHABLE_MARKERS):
            return TransportErrorKind.UNREACHABLE

    return TransportErrorKind.TRANSPORT


class Prober:
    """Performs single GET health checks. Never retries and never raises."""

    def __init__(self, client: httpx.AsyncClient | None = None, *, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self._client = client
        self._owns_client = client is None
        self.default_timeout_ms = int(default_timeout_ms)

    async def __aenter__(self) -> Prober:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def probe(self, url: str, timeout_ms: int | None = None) -> ProbeOutcome:
        timeout_s = max(1, int(timeout_ms or self.default_timeout_ms)) / 1000.0
        client = self._get_client()

        started = time.perf_counter()
        try:
            # httpx timeouts apply per phase; wait_for bounds the whole request.
            resp = await asyncio.wait_for(
                client.get(url, follow_redirects=True, timeout=timeout_s),
                timeout=timeout_s,
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            kind = classify_transport_error(e)
            detail = f"{type(e).__name__}: {e}"[:300]
            logger.debug("Probe transport error", url=url, kind=kind.value, error=detail)
            return ProbeOutcome.from_error(kind, round(elapsed_ms, 3), detail)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return ProbeOutcome.from_status(resp.status_code, round(elapsed_ms, 3))
