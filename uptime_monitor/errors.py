"""
Exception hierarchy for the uptime monitor.

Every error carries a machine-readable `code` so log consumers can branch on it
without parsing messages.
"""
from __future__ import annotations

from typing import Any


class UptimeMonitorError(Exception):
    """Base class for all application-level errors."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigError(UptimeMonitorError, ValueError):
    code = "CONFIG_ERROR"


class StoreError(UptimeMonitorError):
    code = "STORE_ERROR"

    def __init__(self, operation: str, exc: Exception):
        super().__init__(
            message=f"{operation} failed: {type(exc).__name__}: {exc}",
            details={"operation": operation},
        )


class NotificationError(UptimeMonitorError):
    code = "NOTIFICATION_ERROR"


class RenderError(UptimeMonitorError):
    code = "RENDER_ERROR"
