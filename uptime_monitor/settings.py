from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    s = str(raw).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


@dataclass(frozen=True)
class MonitorSettings:
    db_path: str = field(default_factory=lambda: _env_str("UPTIME_DB_PATH", "./uptime.db"))
    config_path: str = field(default_factory=lambda: _env_str("UPTIME_CONFIG_PATH", "./config.yaml"))
    # shoutrrr-style target, e.g. telegram://<token>@telegram?chats=<chat_id>. Empty disables notifications.
    notify_url: str = field(default_factory=lambda: os.getenv("UPTIME_NOTIFY_URL", "").strip())

    host: str = field(default_factory=lambda: _env_str("UPTIME_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("UPTIME_PORT", 8080))

    # Cycle cadence (fixed delay between the end of one cycle and the start of the next).
    interval_seconds: int = field(default_factory=lambda: _env_int("UPTIME_INTERVAL_SECONDS", 60))
    probe_concurrency: int = 5
    persist_concurrency: int = 5

    # Prober retry state machine.
    probe_timeout_seconds: float = 10.0
    probe_max_attempts: int = 5

    log_level: str = field(default_factory=lambda: _env_str("UPTIME_LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("UPTIME_LOG_JSON", False))
