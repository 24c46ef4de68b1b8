from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from uptime_monitor import db
from uptime_monitor.errors import StoreError
from uptime_monitor.models import AggregatedStatus, Site, utc_now_minute
from uptime_monitor.publisher import PLACEHOLDER_HTML, PagePublisher, Snapshot, SnapshotCell
from uptime_monitor.settings import MonitorSettings


def _status(name: str, *, success: bool = True, avg: float = 1.0) -> AggregatedStatus:
    return AggregatedStatus(
        site=f"https://{name.lower()}.example",
        name=name,
        timestamp=datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc),
        success=success,
        status_code=200 if success else 503,
        avg=avg,
    )


def test_cell_starts_with_placeholder() -> None:
    cell = SnapshotCell()
    snap = cell.get()
    assert snap.html == PLACEHOLDER_HTML
    assert snap.is_placeholder is True


def test_cell_swap_replaces_whole_value() -> None:
    cell = SnapshotCell()
    new = Snapshot(html="<p>new</p>", published_at_ts=1.0, site_count=2)
    old = cell.swap(new)
    assert old.is_placeholder
    assert cell.get() is new


def test_render_orders_by_name_and_escapes() -> None:
    publisher = PagePublisher()
    html = publisher.render(
        [_status("Zulu", avg=0.5), _status("<b>Alpha</b>", success=False, avg=0.83333)],
        generated_at=datetime(2026, 3, 10, 12, 1, tzinfo=timezone.utc),
    )
    assert html.index("Alpha") < html.index("Zulu")
    assert "<b>Alpha</b>" not in html
    assert "&lt;b&gt;Alpha&lt;/b&gt;" in html
    assert "83.33%" in html
    assert "50.00%" in html
    assert "503" in html
    assert "2026-03-10 12:01 UTC" in html


def test_render_with_no_rows() -> None:
    html = PagePublisher().render([], generated_at=datetime.now(timezone.utc))
    assert "No checks recorded" in html


@pytest.mark.asyncio
async def test_refresh_publishes_configured_sites_only(settings: MonitorSettings) -> None:
    now = utc_now_minute()
    for site, name in [("https://a.example", "Kept"), ("https://b.example", "Removed")]:
        db.upsert_site(settings, site=site, name=name)
        db.insert_fact_if_absent(settings, site=site, timestamp=now - timedelta(minutes=1), success=True, status_code=200)

    publisher = PagePublisher()
    ok = await publisher.refresh([Site(site="https://a.example", name="Kept")], settings)

    assert ok is True
    snap = publisher.cell.get()
    assert snap.is_placeholder is False
    assert snap.site_count == 1
    assert "Kept" in snap.html
    assert "Removed" not in snap.html


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_snapshot(settings: MonitorSettings, monkeypatch: pytest.MonkeyPatch) -> None:
    publisher = PagePublisher()
    previous = Snapshot(html="<p>previous</p>", published_at_ts=1.0, site_count=1)
    publisher.cell.swap(previous)

    def boom(*args, **kwargs):
        raise StoreError("aggregated_status", RuntimeError("database is locked"))

    monkeypatch.setattr(db, "aggregated_status", boom)
    ok = await publisher.refresh([Site(site="https://a.example", name="A")], settings)

    assert ok is False
    assert publisher.cell.get() is previous
