"""Outbound report delivery."""

from .http_report import post_hourly_server_metrics_report

__all__ = ["post_hourly_server_metrics_report"]
