from __future__ import annotations

import argparse
import dataclasses
import sys

import structlog
import uvicorn

from uptime_monitor import db
from uptime_monitor.app import create_app
from uptime_monitor.config import load_config
from uptime_monitor.errors import ConfigError, StoreError
from uptime_monitor.logging_setup import configure_logging
from uptime_monitor.notify import parse_notify_url
from uptime_monitor.settings import MonitorSettings


logger = structlog.get_logger(__name__)


def _parse_args(argv: list[str] | None, defaults: MonitorSettings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Probe configured sites and serve an uptime page.")
    parser.add_argument("--config-path", default=defaults.config_path, help="YAML site list")
    parser.add_argument("--db-path", default=defaults.db_path, help="sqlite database file")
    parser.add_argument("--notify-url", default=defaults.notify_url, help="shoutrrr-style notification URL")
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=defaults.port)
    parser.add_argument("--interval-seconds", type=int, default=defaults.interval_seconds)
    parser.add_argument("--log-level", default=defaults.log_level)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    defaults = MonitorSettings()
    args = _parse_args(argv, defaults)
    settings = dataclasses.replace(
        defaults,
        config_path=args.config_path,
        db_path=args.db_path,
        notify_url=(args.notify_url or "").strip(),
        host=args.host,
        port=args.port,
        interval_seconds=args.interval_seconds,
        log_level=args.log_level,
    )
    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("starting", config_path=settings.config_path, db_path=settings.db_path, port=settings.port)

    try:
        config = load_config(settings.config_path)
        if settings.notify_url:
            parse_notify_url(settings.notify_url)
    except ConfigError as e:
        logger.error("invalid_configuration", error=e.message, details=e.details)
        return 2

    sites = config.to_sites()
    if not sites:
        logger.warning("no_sites_configured", config_path=settings.config_path)

    try:
        db.ensure_schema(settings)
    except StoreError as e:
        logger.error("storage_unavailable", error=e.message)
        return 3

    app = create_app(settings, sites=sites)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
