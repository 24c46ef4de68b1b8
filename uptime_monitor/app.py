from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import httpx
import structlog
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from uptime_monitor import db
from uptime_monitor.config import load_config
from uptime_monitor.cycle import CycleRunner
from uptime_monitor.models import Site
from uptime_monitor.notify import build_notifier
from uptime_monitor.publisher import PagePublisher
from uptime_monitor.settings import MonitorSettings


logger = structlog.get_logger(__name__)

USER_AGENT = "uptime-monitor/0.1"


def create_app(
    settings: MonitorSettings | None = None,
    *,
    sites: list[Site] | None = None,
    run_monitor: bool = True,
) -> FastAPI:
    settings = settings or MonitorSettings()
    if sites is None:
        sites = load_config(settings.config_path).to_sites()

    app = FastAPI(title="Uptime Monitor", version="0.1.0")
    app.state.settings = settings
    app.state.sites = list(sites)
    app.state.publisher = PagePublisher()
    app.state.monitor_task = None
    app.state.http_client = None

    @app.on_event("startup")
    async def _startup() -> None:
        # Schema failures are fatal: the server must not start without storage.
        db.ensure_schema(app.state.settings)
        if not run_monitor:
            return

        client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        app.state.http_client = client
        runner = CycleRunner(
            sites=app.state.sites,
            settings=app.state.settings,
            client=client,
            notifier=build_notifier(client, app.state.settings.notify_url),
            publisher=app.state.publisher,
        )
        app.state.monitor_task = asyncio.create_task(runner.run_forever())
        logger.info("monitor_started", sites=len(app.state.sites), db_path=app.state.settings.db_path)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        task = app.state.monitor_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if app.state.http_client is not None:
            await app.state.http_client.aclose()
        logger.info("monitor_stopped")

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        # Serves the last published page only; never probes or queries storage.
        snapshot = app.state.publisher.cell.get()
        return HTMLResponse(content=snapshot.html)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        snapshot = app.state.publisher.cell.get()
        return {
            "ok": True,
            "published": not snapshot.is_placeholder,
            "published_at": snapshot.published_at_ts,
            "sites": snapshot.site_count,
        }

    return app
