from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


# Recorded when every probe attempt failed at transport level.
UNREACHABLE_STATUS_CODE = 502


def truncate_to_minute(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(second=0, microsecond=0)


def utc_now_minute() -> datetime:
    return truncate_to_minute(datetime.now(timezone.utc))


def is_success_status(status_code: int) -> bool:
    return 200 <= int(status_code) < 400


@dataclass(frozen=True)
class Site:
    site: str
    name: str


@dataclass(frozen=True)
class ProbeOutcome:
    site: str
    timestamp: datetime
    success: bool
    status_code: int
    attempts: int = 1


@dataclass(frozen=True)
class Fact:
    site: str
    timestamp: datetime
    success: bool
    status_code: int


@dataclass(frozen=True)
class AggregatedStatus:
    site: str
    name: str
    timestamp: datetime
    success: bool
    status_code: int
    # Mean of success over the trailing 24 hours, in [0, 1].
    avg: float

    @property
    def uptime_percent(self) -> float:
        return round(float(self.avg) * 100.0, 2)
