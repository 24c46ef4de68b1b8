"""
Status page rendering and publication.

The rendered page is kept in a `SnapshotCell`: one immutable `Snapshot` swapped
whole under a lock, so request handlers see either the previous page or the
new one, never a partial write.
"""
from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import jinja2
import structlog

from uptime_monitor import db
from uptime_monitor.errors import RenderError, StoreError
from uptime_monitor.models import AggregatedStatus, Site
from uptime_monitor.settings import MonitorSettings


logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

PLACEHOLDER_HTML = (
    "<!doctype html><html><head><meta charset=\"utf-8\"><title>Uptime</title></head>"
    "<body><p>No status yet. The first check cycle has not completed.</p></body></html>"
)


@dataclass(frozen=True)
class Snapshot:
    html: str
    published_at_ts: float | None = None
    site_count: int = 0

    @property
    def is_placeholder(self) -> bool:
        return self.published_at_ts is None


class SnapshotCell:
    def __init__(self, initial: Snapshot | None = None):
        self._lock = threading.Lock()
        self._value = initial or Snapshot(html=PLACEHOLDER_HTML)

    def get(self) -> Snapshot:
        with self._lock:
            return self._value

    def swap(self, new: Snapshot) -> Snapshot:
        with self._lock:
            old = self._value
            self._value = new
            return old


def _build_env() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=jinja2.select_autoescape(["html"]),
        undefined=jinja2.StrictUndefined,
    )


def _format_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


class PagePublisher:
    def __init__(self, cell: SnapshotCell | None = None, *, template_name: str = "index.html"):
        self.cell = cell or SnapshotCell()
        self._env = _build_env()
        self._template_name = template_name

    def render(self, statuses: list[AggregatedStatus], *, generated_at: datetime) -> str:
        rows = [
            {
                "site": s.site,
                "name": s.name,
                "success": s.success,
                "status_code": s.status_code,
                "checked_at": _format_ts(s.timestamp),
                "uptime_percent": f"{s.uptime_percent:.2f}",
            }
            for s in sorted(statuses, key=lambda s: (s.name, s.site))
        ]
        try:
            template = self._env.get_template(self._template_name)
            return template.render(sites=rows, generated_at=_format_ts(generated_at))
        except jinja2.TemplateError as exc:
            raise RenderError(f"template {self._template_name} failed: {exc}") from exc

    async def refresh(self, sites: Iterable[Site], settings: MonitorSettings) -> bool:
        """
        Re-query the configured sites and publish a new page.

        On any failure the previous snapshot stays in place and False is returned.
        """
        keys = [s.site for s in sites]
        now = datetime.now(timezone.utc)
        try:
            statuses = await asyncio.to_thread(db.aggregated_status, settings, keys, now=now)
            html = self.render(statuses, generated_at=now)
        except (StoreError, RenderError) as e:
            logger.error("page_refresh_failed", error=str(e), code=e.code)
            return False

        self.cell.swap(Snapshot(html=html, published_at_ts=time.time(), site_count=len(statuses)))
        logger.debug("page_published", sites=len(statuses))
        return True
