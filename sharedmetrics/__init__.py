"""Opt-in hourly usage metrics for a self-hosted proxy server."""

from .cli import main as cli_main
from .config_loader import load_config

__all__ = [
    "cli_main",
    "load_config",
    "collectors",
    "config",
    "metrics",
    "publishers",
    "services",
    "storage",
]
