"""Main entry point: HTTP API and command line."""

import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from .config import get_config
from .log_setup import configure_logging
from .runtime import SentinelRuntime


logger = structlog.get_logger(__name__)


def create_app(runtime: Optional[SentinelRuntime] = None, *, start_scheduler: bool = True) -> FastAPI:
    """Build the API. With `start_scheduler` the recurring sweep runs for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime or SentinelRuntime()
        app.state.runtime = rt
        if start_scheduler:
            await rt.start()
        try:
            yield
        finally:
            if start_scheduler:
                await rt.stop()

    app = FastAPI(title="Sentinel", version="0.1.0", lifespan=lifespan)

    def _runtime() -> SentinelRuntime:
        return app.state.runtime

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "healthy", "service": "sentinel"}

    @app.get("/status")
    async def get_status():
        """Scheduler state plus fleet liveness."""
        return _runtime().get_system_status()

    @app.post("/run/sweep")
    async def run_sweep():
        """Run a sweep now and wait for it to finish."""
        report = await _runtime().scheduler.run_now()
        if report is None:
            return JSONResponse(
                content={"error": "Sweep failed", "detail": _runtime().scheduler.last_error},
                status_code=500,
            )
        return report.to_dict()

    @app.get("/monitors/{monitor_id}/pings")
    async def list_pings(
        monitor_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = Query(default=100, ge=1, le=10_000),
        order: str = Query(default="desc", pattern="^(asc|desc)$"),
    ):
        """Stored ping results for one monitor."""
        items = _runtime().store.query(
            monitor_id, since=since, until=until, limit=limit, descending=(order == "desc")
        )
        return {"monitorId": monitor_id, "count": len(items), "pings": [r.to_dict() for r in items]}

    @app.get("/monitors/{monitor_id}/status")
    async def monitor_status(monitor_id: str):
        """Status summary (up/degraded/down/unknown) over the reporting window."""
        found, summary = _runtime().status_service.monitor_status(monitor_id)
        if not found:
            return JSONResponse(content=summary, status_code=404)
        return summary

    return app


async def run_cli_command(command: str, *args: str) -> int:
    """Run CLI commands that do not need the HTTP server."""
    runtime = SentinelRuntime()
    try:
        if command == "sweep":
            report = await runtime.executor.run_sweep()
            print(json.dumps(report.to_dict(), indent=2))
            return 1 if report.failed_monitors else 0

        if command == "worker":
            await runtime.start()
            await asyncio.Event().wait()
            return 0

        if command == "status":
            if not args:
                print("Usage: sentinel status <monitor_id>")
                return 2
            _found, summary = runtime.status_service.monitor_status(args[0])
            print(json.dumps(summary, indent=2))
            return 0

        print(f"Unknown command: {command}")
        print("Available commands: serve, worker, sweep, status <monitor_id>")
        return 2
    finally:
        await runtime.stop()


def main(argv: Optional[list] = None) -> int:
    """Main entry point with argument handling."""
    parser = argparse.ArgumentParser(prog="sentinel", description="Endpoint probing and alerting")
    parser.add_argument("command", nargs="?", default="serve", help="serve | worker | sweep | status")
    parser.add_argument("args", nargs="*")
    ns = parser.parse_args(argv)

    config = get_config()
    configure_logging(config.log_level)

    if ns.command == "serve":
        logger.info("Starting sentinel web server", port=config.api_port)
        uvicorn.run(create_app(), host=config.api_host, port=config.api_port, log_level="info")
        return 0

    try:
        return asyncio.run(run_cli_command(ns.command, *ns.args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
