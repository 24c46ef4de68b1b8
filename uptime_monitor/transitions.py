from __future__ import annotations

import asyncio

import structlog

from uptime_monitor import db
from uptime_monitor.errors import NotificationError
from uptime_monitor.models import ProbeOutcome, Site
from uptime_monitor.notify import Notifier
from uptime_monitor.settings import MonitorSettings


logger = structlog.get_logger(__name__)

UP_SYMBOL = "✅"
DOWN_SYMBOL = "❌"


def build_transition_message(site: Site, outcome: ProbeOutcome) -> str:
    if outcome.success:
        return f"{UP_SYMBOL} {site.name} is UP (HTTP {outcome.status_code})\n{site.site}"
    return f"{DOWN_SYMBOL} {site.name} is DOWN (HTTP {outcome.status_code})\n{site.site}"


async def previous_success(settings: MonitorSettings, site: Site) -> bool:
    fact = await asyncio.to_thread(db.last_fact, settings, site.site)
    # A site with no history is treated as having been up, so a new site that
    # fails on its first cycle is reported immediately.
    if fact is None:
        return True
    return fact.success


async def evaluate(
    site: Site,
    outcome: ProbeOutcome,
    settings: MonitorSettings,
    notifier: Notifier,
) -> bool:
    """
    Notify when `outcome` flips the site's last persisted success state.

    Must run before this cycle's fact is written. Returns True when a
    notification was attempted. Delivery failures are logged, never raised.
    """
    prev = await previous_success(settings, site)
    if prev == outcome.success:
        return False

    message = build_transition_message(site, outcome)
    logger.info(
        "site_transition",
        site=site.site,
        previous_success=prev,
        success=outcome.success,
        status=outcome.status_code,
    )
    try:
        await notifier.send(message)
    except NotificationError as e:
        logger.warning("notification_failed", site=site.site, error=e.message, code=e.code)
    except Exception as e:
        # The fact for this cycle must still be written.
        logger.warning("notification_failed", site=site.site, error=f"{type(e).__name__}: {e}")
    return True
