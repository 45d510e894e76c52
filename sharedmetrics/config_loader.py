"""Utilities to load :mod:`sharedmetrics.config` structures from YAML files."""
from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from .config import (
    HttpConfig,
    IpLocationConfig,
    LoggingConfig,
    ReportingConfig,
    SharedMetricsConfig,
    StorageConfig,
)

_DURATION_UNITS = {
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}


def load_config(path: Path) -> SharedMetricsConfig:
    """Load a configuration file into :class:`SharedMetricsConfig`.

    Durations accept human friendly values such as ``"30s"`` or ``"1h"``.
    Every section is optional except ``reporting.metrics_url``; omitted fields
    fall back to the defaults declared in :mod:`sharedmetrics.config`.
    """

    raw = _load_yaml(path)

    reporting_section = _section(raw, "reporting")
    metrics_url = str(reporting_section.get("metrics_url") or "").strip()
    if not metrics_url:
        raise ValueError("reporting.metrics_url is required")
    interval = _parse_duration(reporting_section.get("interval", "1h"))
    if interval.total_seconds() <= 0:
        raise ValueError("reporting.interval must be positive")
    reporting = ReportingConfig(metrics_url=metrics_url, interval=interval)

    location_section = _section(raw, "ip_location")
    defaults = IpLocationConfig()
    ip_location = IpLocationConfig(
        base_url=str(location_section.get("base_url", defaults.base_url)),
        timeout=float(location_section.get("timeout", defaults.timeout)),
        cache_size=int(location_section.get("cache_size", defaults.cache_size)),
    )

    storage_section = _section(raw, "storage")
    storage = StorageConfig()
    if storage_section.get("state_file"):
        storage.state_file = Path(storage_section["state_file"])
    if storage_section.get("server_config_file"):
        storage.server_config_file = Path(storage_section["server_config_file"])

    http_section = _section(raw, "http")
    http = HttpConfig(
        timeout=float(http_section.get("timeout", HttpConfig().timeout)),
        max_redirects=int(http_section.get("max_redirects", HttpConfig().max_redirects)),
    )

    logging_section = _section(raw, "logging")
    level = str(logging_section.get("level", LoggingConfig().level)).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"unknown logging level: {level}")
    logging_cfg = LoggingConfig(
        level=level,
        format=str(logging_section.get("format", LoggingConfig().format)),
    )

    return SharedMetricsConfig(
        reporting=reporting,
        ip_location=ip_location,
        storage=storage,
        http=http,
        logging=logging_cfg,
    )


def configure_logging(config: LoggingConfig) -> None:
    """Install the root handler used by the command line entry point."""

    logging.basicConfig(level=config.level, format=config.format)


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, Mapping):
        raise ValueError("configuration root must be a mapping")
    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"configuration section {name!r} must be a mapping")
    return value


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    unit = value[-1:].lower()
    if unit not in _DURATION_UNITS:
        raise ValueError(f"unknown duration unit: {value}")
    amount = float(value[:-1])
    return _DURATION_UNITS[unit] * amount
