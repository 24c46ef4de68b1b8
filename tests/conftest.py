from __future__ import annotations

from pathlib import Path

import pytest

from uptime_monitor import db
from uptime_monitor.errors import NotificationError
from uptime_monitor.settings import MonitorSettings


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[str] = []
        self.fail = fail

    async def send(self, message: str) -> None:
        self.messages.append(message)
        if self.fail:
            raise NotificationError("delivery failed")


@pytest.fixture()
def settings(tmp_path: Path) -> MonitorSettings:
    s = MonitorSettings(db_path=str(tmp_path / "uptime.db"), notify_url="", interval_seconds=60)
    db.ensure_schema(s)
    return s


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
