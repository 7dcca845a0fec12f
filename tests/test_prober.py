from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from sentinel.models import TransportErrorKind
from sentinel.probe import Prober, classify_transport_error


class _ProbeTargetHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _send(self, status: int, body: bytes = b"ok") -> None:
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/ok":
            self._send(200)
        elif self.path == "/missing":
            self._send(404, b"not found")
        elif self.path == "/broken":
            self._send(500, b"oops")
        elif self.path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/ok")
            self.send_header("Content-Length", "0")
            self.end_headers()
        elif self.path == "/slow":
            time.sleep(1.5)
            self._send(200)
        elif self.path == "/drop":
            # Close without writing a status line.
            self.close_connection = True
        else:
            self._send(404)


@pytest.fixture(scope="module")
def target_base_url() -> str:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _ProbeTargetHandler)
    httpd.daemon_threads = True
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


def _closed_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.mark.asyncio
async def test_probe_success(target_base_url: str) -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"{target_base_url}/ok", 2_000)
    assert outcome.status_code == 200
    assert outcome.success is True
    assert outcome.error is None
    assert outcome.response_time_ms >= 0


@pytest.mark.asyncio
@pytest.mark.parametrize(("path", "status"), [("/missing", 404), ("/broken", 500)])
async def test_http_error_statuses_are_returned_not_raised(target_base_url: str, path: str, status: int) -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"{target_base_url}{path}", 2_000)
    assert outcome.http_status == status
    assert outcome.error is None
    assert outcome.success is False


@pytest.mark.asyncio
async def test_redirects_are_followed(target_base_url: str) -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"{target_base_url}/redirect", 2_000)
    assert outcome.status_code == 200


@pytest.mark.asyncio
async def test_timeout_maps_to_408_and_is_bounded(target_base_url: str) -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"{target_base_url}/slow", 200)
    assert outcome.error is TransportErrorKind.TIMEOUT
    assert outcome.status_code == 408
    assert outcome.success is False
    assert 150 <= outcome.response_time_ms < 1_400


@pytest.mark.asyncio
async def test_connection_refused_maps_to_503() -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"http://127.0.0.1:{_closed_port()}/", 2_000)
    assert outcome.error is TransportErrorKind.UNREACHABLE
    assert outcome.status_code == 503


@pytest.mark.asyncio
async def test_dropped_connection_maps_to_500(target_base_url: str) -> None:
    async with Prober() as prober:
        outcome = await prober.probe(f"{target_base_url}/drop", 2_000)
    assert outcome.error is TransportErrorKind.TRANSPORT
    assert outcome.status_code == 500
    assert outcome.error_detail


@pytest.mark.asyncio
async def test_invalid_url_never_raises() -> None:
    async with Prober() as prober:
        outcome = await prober.probe("not a url at all", 1_000)
    assert outcome.success is False
    assert outcome.status_code == 500


@pytest.mark.asyncio
async def test_borrowed_client_is_not_closed(target_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        async with Prober(client) as prober:
            await prober.probe(f"{target_base_url}/ok", 2_000)
        assert client.is_closed is False


def _chained(outer: Exception, cause: BaseException) -> Exception:
    try:
        try:
            raise cause
        except BaseException as inner:
            raise outer from inner
    except Exception as e:
        return e


def test_classify_dns_failure_as_unreachable() -> None:
    exc = _chained(httpx.ConnectError("lookup failed"), socket.gaierror(-2, "Name or service not known"))
    assert classify_transport_error(exc) is TransportErrorKind.UNREACHABLE


def test_classify_refused_inside_exception_group_as_unreachable() -> None:
    group = ExceptionGroup("attempts", [ConnectionRefusedError(111, "Connection refused")])
    exc = _chained(httpx.ConnectError("All connection attempts failed"), group)
    assert classify_transport_error(exc) is TransportErrorKind.UNREACHABLE


def test_classify_other_errors() -> None:
    assert classify_transport_error(httpx.ReadTimeout("slow")) is TransportErrorKind.TIMEOUT
    assert classify_transport_error(httpx.RemoteProtocolError("bad")) is TransportErrorKind.TRANSPORT
    assert classify_transport_error(httpx.ConnectError("SSL handshake failed")) is TransportErrorKind.TRANSPORT
