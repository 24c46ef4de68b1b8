"""Site list configuration, loaded once at startup."""
from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from uptime_monitor.errors import ConfigError
from uptime_monitor.models import Site


class SiteConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    site: str = Field(..., min_length=1, description="URL to probe")
    name: str = Field(..., min_length=1, description="Display name on the status page")

    @field_validator("site")
    @classmethod
    def _require_http_url(cls, v: str) -> str:
        s = v.strip()
        if not s.lower().startswith(("http://", "https://")):
            raise ValueError("site must be an http(s) URL")
        return s


class MonitorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sites: list[SiteConfig] = Field(default_factory=list)

    @field_validator("sites")
    @classmethod
    def _reject_duplicates(cls, v: list[SiteConfig]) -> list[SiteConfig]:
        seen: set[str] = set()
        for entry in v:
            if entry.site in seen:
                raise ValueError(f"Duplicate site entry: {entry.site}")
            seen.add(entry.site)
        return v

    def to_sites(self) -> list[Site]:
        return [Site(site=s.site, name=s.name) for s in self.sites]


def parse_config(data: object) -> MonitorConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    try:
        return MonitorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid config: {exc.error_count()} error(s)",
            details={"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        ) from exc


def load_config(path: Path | str) -> MonitorConfig:
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config {p}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    return parse_config(data)
