from __future__ import annotations

from pathlib import Path

import pytest

from uptime_monitor.config import load_config, parse_config
from uptime_monitor.errors import ConfigError
from uptime_monitor.models import Site


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_load_config_preserves_order(tmp_path: Path) -> None:
    p = _write(
        tmp_path,
        "sites:\n"
        "  - site: https://b.example\n"
        "    name: Bravo\n"
        "  - site: https://a.example\n"
        "    name: Alpha\n",
    )
    sites = load_config(p).to_sites()
    assert sites == [Site(site="https://b.example", name="Bravo"), Site(site="https://a.example", name="Alpha")]


def test_unknown_site_field_rejected() -> None:
    with pytest.raises(ConfigError) as exc:
        parse_config({"sites": [{"site": "https://a.example", "name": "A", "interval": 5}]})
    assert exc.value.code == "CONFIG_ERROR"
    assert exc.value.details["errors"]


def test_unknown_top_level_field_rejected() -> None:
    with pytest.raises(ConfigError):
        parse_config({"sites": [], "alerts": True})


def test_duplicate_sites_rejected() -> None:
    with pytest.raises(ConfigError):
        parse_config(
            {
                "sites": [
                    {"site": "https://a.example", "name": "A"},
                    {"site": "https://a.example", "name": "A again"},
                ]
            }
        )


def test_non_http_site_rejected() -> None:
    with pytest.raises(ConfigError):
        parse_config({"sites": [{"site": "ftp://a.example", "name": "A"}]})


def test_empty_file_means_no_sites(tmp_path: Path) -> None:
    p = _write(tmp_path, "")
    assert load_config(p).to_sites() == []


def test_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_non_mapping_yaml_is_config_error(tmp_path: Path) -> None:
    p = _write(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(p)
