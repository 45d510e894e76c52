"""Configuration schema for the shared metrics reporter.

The dataclasses below describe how the hourly usage reporter is wired into a
proxy server deployment: where the opt-in metrics are posted, how client
addresses are resolved to countries and where the accounting window is
persisted between restarts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

DEFAULT_IP_LOCATION_URL = "https://ipinfo.io"


@dataclass(slots=True)
class ReportingConfig:
    """Destination and cadence of the hourly reports."""

    metrics_url: str = ""
    interval: timedelta = timedelta(hours=1)


@dataclass(slots=True)
class IpLocationConfig:
    """Country lookup backend used while building a report."""

    base_url: str = DEFAULT_IP_LOCATION_URL
    timeout: float = 10.0
    cache_size: int = 1024


@dataclass(slots=True)
class StorageConfig:
    """Files holding the persisted window and the server settings."""

    state_file: Path = field(default_factory=lambda: Path("./state/shared_metrics.json"))
    server_config_file: Path = field(default_factory=lambda: Path("./state/server_config.json"))


@dataclass(slots=True)
class HttpConfig:
    """Knobs for the outbound report POST."""

    timeout: float = 30.0
    max_redirects: int = 10


@dataclass(slots=True)
class LoggingConfig:
    """Process-wide logging setup applied by the CLI."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class SharedMetricsConfig:
    """Top-level configuration bundle."""

    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    ip_location: IpLocationConfig = field(default_factory=IpLocationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
