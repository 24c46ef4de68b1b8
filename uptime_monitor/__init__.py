"""Site uptime monitor: probe, record, notify on transitions, serve a status page."""

__version__ = "0.1.0"
