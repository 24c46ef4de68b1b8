from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable

from uptime_monitor.errors import StoreError
from uptime_monitor.models import AggregatedStatus, Fact
from uptime_monitor.settings import MonitorSettings


SCHEMA_VERSION = 2
ROLLING_WINDOW = timedelta(hours=24)


def _to_ts(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _from_ts(ts: int) -> datetime:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise StoreError("connect", ValueError("Missing db_path"))
    if p != ":memory:":
        try:
            Path(p).parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError("connect", exc) from exc
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    # WAL lets the page query run while per-site writes are in flight.
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.OperationalError:
        pass
    return conn


def ensure_schema(settings: MonitorSettings) -> None:
    try:
        conn = _connect(settings.db_path)
        try:
            _ensure_schema_conn(conn)
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise StoreError("ensure_schema", exc) from exc


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return

    if cur == 0:
        _apply_v1(conn)
        _apply_v2(conn)
        conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))
        return

    if cur == 1:
        _apply_v2(conn)
        conn.execute("UPDATE schema_meta SET v=? WHERE k='version'", (str(SCHEMA_VERSION),))
        return

    raise StoreError(
        "ensure_schema",
        RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}"),
    )


def _apply_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS site (
          site TEXT PRIMARY KEY,
          name TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS site_fact (
          site TEXT NOT NULL,
          tstamp INTEGER NOT NULL, -- unix seconds, minute aligned
          success INTEGER NOT NULL,
          status_code INTEGER NOT NULL,
          UNIQUE(site, tstamp)
        );
        """
    )


def _apply_v2(conn: sqlite3.Connection) -> None:
    """
    v2 adds the index used by the latest-fact and rolling-window lookups.
    """
    conn.execute("CREATE INDEX IF NOT EXISTS idx_site_fact_site_tstamp ON site_fact(site, tstamp DESC);")


def last_fact(settings: MonitorSettings, site: str) -> Fact | None:
    try:
        conn = _connect(settings.db_path)
        try:
            row = conn.execute(
                """
                SELECT site, tstamp, success, status_code
                FROM site_fact
                WHERE site=?
                ORDER BY tstamp DESC
                LIMIT 1
                """,
                (site,),
            ).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise StoreError("last_fact", exc) from exc

    if row is None:
        return None
    return Fact(
        site=str(row["site"]),
        timestamp=_from_ts(row["tstamp"]),
        success=bool(row["success"]),
        status_code=int(row["status_code"]),
    )


def insert_fact_if_absent(
    settings: MonitorSettings,
    *,
    site: str,
    timestamp: datetime,
    success: bool,
    status_code: int,
) -> bool:
    """
    Record one probe outcome. A second write for the same (site, minute) is ignored.
    Returns True when a new row was stored.
    """
    ts = _to_ts(timestamp)
    if ts % 60 != 0:
        raise ValueError(f"timestamp must be truncated to the minute, got {timestamp.isoformat()}")
    try:
        conn = _connect(settings.db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO site_fact (site, tstamp, success, status_code)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (site, tstamp) DO NOTHING
                """,
                (site, ts, 1 if success else 0, int(status_code)),
            )
            return cur.rowcount > 0
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise StoreError("insert_fact_if_absent", exc) from exc


def upsert_site(settings: MonitorSettings, *, site: str, name: str) -> None:
    try:
        conn = _connect(settings.db_path)
        try:
            conn.execute(
                """
                INSERT INTO site (site, name) VALUES (?, ?)
                ON CONFLICT (site) DO UPDATE SET name=excluded.name
                """,
                (site, name),
            )
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise StoreError("upsert_site", exc) from exc


def aggregated_status(
    settings: MonitorSettings,
    site_keys: Iterable[str],
    *,
    now: datetime | None = None,
) -> list[AggregatedStatus]:
    """
    Latest fact plus 24h success average for each requested site.

    Sites without any fact inside the window are left out, even if older facts exist.
    """
    keys = sorted({str(k) for k in site_keys if k})
    if not keys:
        return []

    now_ts = _to_ts(now) if now is not None else int(time.time())
    since_ts = now_ts - int(ROLLING_WINDOW.total_seconds())
    placeholders = ",".join("?" for _ in keys)

    try:
        conn = _connect(settings.db_path)
        try:
            rows = conn.execute(
                f"""
                SELECT
                  f.site AS site,
                  s.name AS name,
                  f.tstamp AS tstamp,
                  f.success AS success,
                  f.status_code AS status_code,
                  w.avg AS avg
                FROM site_fact f
                INNER JOIN (
                  SELECT site, MAX(tstamp) AS tstamp
                  FROM site_fact
                  WHERE site IN ({placeholders})
                  GROUP BY site
                ) latest ON latest.site=f.site AND latest.tstamp=f.tstamp
                INNER JOIN (
                  SELECT site, AVG(CAST(success AS REAL)) AS avg
                  FROM site_fact
                  WHERE tstamp >= ?
                  GROUP BY site
                ) w ON w.site=f.site
                INNER JOIN site s ON s.site=f.site
                ORDER BY s.name, f.site
                """,
                (*keys, since_ts),
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        raise StoreError("aggregated_status", exc) from exc

    return [
        AggregatedStatus(
            site=str(r["site"]),
            name=str(r["name"]),
            timestamp=_from_ts(r["tstamp"]),
            success=bool(r["success"]),
            status_code=int(r["status_code"]),
            avg=float(r["avg"]),
        )
        for r in rows
    ]
