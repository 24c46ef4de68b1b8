from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime

import httpx
import structlog

from uptime_monitor import db, prober, transitions
from uptime_monitor.errors import StoreError
from uptime_monitor.models import ProbeOutcome, Site, utc_now_minute
from uptime_monitor.notify import Notifier
from uptime_monitor.publisher import PagePublisher
from uptime_monitor.settings import MonitorSettings


logger = structlog.get_logger(__name__)


@dataclass
class SiteReport:
    site: str
    outcome: ProbeOutcome | None = None
    inserted: bool = False
    notified: bool = False
    probe_ms: float | None = None
    error: str | None = None


@dataclass
class CycleReport:
    timestamp: datetime
    sites: list[SiteReport] = field(default_factory=list)
    published: bool = False
    elapsed_ms: float = 0.0

    @property
    def errors(self) -> list[SiteReport]:
        return [s for s in self.sites if s.error]

    @property
    def facts_inserted(self) -> int:
        return sum(1 for s in self.sites if s.inserted)

    @property
    def notifications(self) -> int:
        return sum(1 for s in self.sites if s.notified)

    @property
    def slowest_probe_ms(self) -> float | None:
        timings = [s.probe_ms for s in self.sites if s.probe_ms is not None]
        return max(timings) if timings else None


class CycleRunner:
    """
    One monitoring pass per call to `run_cycle`; `run_forever` repeats it with a
    fixed delay between the end of a cycle and the start of the next.
    """

    def __init__(
        self,
        *,
        sites: list[Site],
        settings: MonitorSettings,
        client: httpx.AsyncClient,
        notifier: Notifier,
        publisher: PagePublisher,
        sleep: prober.Sleep = asyncio.sleep,
    ):
        self.sites = list(sites)
        self.settings = settings
        self.client = client
        self.notifier = notifier
        self.publisher = publisher
        self._sleep = sleep
        # Semaphores are created lazily so they bind to the loop that runs the cycle.
        self._probe_sem: asyncio.Semaphore | None = None
        self._persist_sem: asyncio.Semaphore | None = None

    def _semaphores(self) -> tuple[asyncio.Semaphore, asyncio.Semaphore]:
        if self._probe_sem is None or self._persist_sem is None:
            self._probe_sem = asyncio.Semaphore(max(1, int(self.settings.probe_concurrency)))
            self._persist_sem = asyncio.Semaphore(max(1, int(self.settings.persist_concurrency)))
        return self._probe_sem, self._persist_sem

    async def _check_site(self, site: Site, now: datetime) -> SiteReport:
        report = SiteReport(site=site.site)
        probe_sem, persist_sem = self._semaphores()
        try:
            async with probe_sem:
                result = await prober.probe(
                    self.client,
                    site,
                    timeout_seconds=self.settings.probe_timeout_seconds,
                    max_attempts=self.settings.probe_max_attempts,
                    sleep=self._sleep,
                )
            outcome = ProbeOutcome(
                site=site.site,
                timestamp=now,
                success=result.success,
                status_code=result.status_code,
                attempts=result.attempts,
            )
            report.outcome = outcome
            report.probe_ms = result.elapsed_ms

            # Compared against the fact as it was before this cycle's write.
            report.notified = await transitions.evaluate(site, outcome, self.settings, self.notifier)

            async with persist_sem:
                report.inserted = await asyncio.to_thread(
                    db.insert_fact_if_absent,
                    self.settings,
                    site=site.site,
                    timestamp=outcome.timestamp,
                    success=outcome.success,
                    status_code=outcome.status_code,
                )
                await asyncio.to_thread(db.upsert_site, self.settings, site=site.site, name=site.name)
        except StoreError as e:
            report.error = e.message
            logger.error("site_persist_failed", site=site.site, error=e.message)
        except Exception as e:
            report.error = f"{type(e).__name__}: {e}"
            logger.exception("site_check_failed", site=site.site)
        return report

    async def run_cycle(self) -> CycleReport:
        started = time.perf_counter()
        now = utc_now_minute()
        report = CycleReport(timestamp=now)

        report.sites = list(await asyncio.gather(*(self._check_site(site, now) for site in self.sites)))

        try:
            report.published = await self.publisher.refresh(self.sites, self.settings)
        except Exception:
            logger.exception("page_refresh_crashed")
            report.published = False

        report.elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        logger.info(
            "cycle_complete",
            sites=len(report.sites),
            inserted=report.facts_inserted,
            notifications=report.notifications,
            errors=len(report.errors),
            slowest_probe_ms=report.slowest_probe_ms,
            published=report.published,
            elapsed_ms=report.elapsed_ms,
        )
        return report

    async def run_forever(self, *, once: bool = False) -> None:
        interval = max(1, int(self.settings.interval_seconds))
        logger.info("cycle_loop_started", sites=len(self.sites), interval_seconds=interval)
        while True:
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("cycle_failed")
            if once:
                return
            await self._sleep(interval)
