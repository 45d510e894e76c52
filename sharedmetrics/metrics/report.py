"""Build the anonymized hourly report sent to the metrics collector."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from sharedmetrics.collectors.ip_location import IpLocationService
from sharedmetrics.metrics.persistence import PerUserMetrics, datetime_to_ms

logger = logging.getLogger(__name__)

# Countries under embargo never appear in an outbound report.
SANCTIONED_COUNTRIES = frozenset({"CU", "IR", "KP", "SY"})

LOOKUP_ERROR_COUNTRY = "ERROR"


@dataclass(slots=True)
class HourlyUserMetricsReport:
    user_id: str
    bytes_transferred: int
    countries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "userId": self.user_id,
            "bytesTransferred": self.bytes_transferred,
            "countries": list(self.countries),
        }


@dataclass(slots=True)
class HourlyServerMetricsReport:
    server_id: str
    start_utc_ms: int
    end_utc_ms: int
    user_reports: List[HourlyUserMetricsReport]

    def to_dict(self) -> Dict[str, object]:
        return {
            "serverId": self.server_id,
            "startUtcMs": self.start_utc_ms,
            "endUtcMs": self.end_utc_ms,
            "userReports": [report.to_dict() for report in self.user_reports],
        }


def without_duplicates(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def without_sanctioned_reports(
    user_reports: Iterable[HourlyUserMetricsReport],
) -> List[HourlyUserMetricsReport]:
    """Strip sanctioned countries and drop users left without any country."""

    filtered: List[HourlyUserMetricsReport] = []
    for report in user_reports:
        countries = [c for c in report.countries if c not in SANCTIONED_COUNTRIES]
        if countries:
            filtered.append(
                HourlyUserMetricsReport(report.user_id, report.bytes_transferred, countries)
            )
    return filtered


async def _country_or_error(ip_location: IpLocationService, ip: str) -> str:
    try:
        return await ip_location.country_for_ip(ip)
    except Exception as exc:  # any lookup failure maps to the sentinel
        logger.warning("Failed country_for_ip call for %s: %s", ip, exc)
        return LOOKUP_ERROR_COUNTRY


async def get_hourly_user_metrics_report(
    user_id: str, metrics: PerUserMetrics, ip_location: IpLocationService
) -> HourlyUserMetricsReport:
    countries = await asyncio.gather(
        *(_country_or_error(ip_location, ip) for ip in sorted(metrics.anonymized_ip_addresses))
    )
    return HourlyUserMetricsReport(
        user_id=user_id,
        bytes_transferred=metrics.bytes_transferred,
        countries=without_duplicates(countries),
    )


async def get_hourly_server_metrics_report(
    server_id: str,
    start_datetime: datetime,
    end_datetime: datetime,
    user_metrics: Mapping[str, PerUserMetrics],
    ip_location: IpLocationService,
) -> Optional[HourlyServerMetricsReport]:
    """Resolve, deduplicate and filter countries for every user.

    Returns ``None`` when there is nothing to report, either because no user
    was active or because every user was filtered out.
    """

    if not user_metrics:
        return None

    user_reports = await asyncio.gather(
        *(
            get_hourly_user_metrics_report(user_id, metrics, ip_location)
            for user_id, metrics in user_metrics.items()
        )
    )
    surviving = without_sanctioned_reports(user_reports)
    if not surviving:
        return None
    return HourlyServerMetricsReport(
        server_id=server_id,
        start_utc_ms=datetime_to_ms(start_datetime),
        end_utc_ms=datetime_to_ms(end_datetime),
        user_reports=surviving,
    )


__all__ = [
    "HourlyServerMetricsReport",
    "HourlyUserMetricsReport",
    "LOOKUP_ERROR_COUNTRY",
    "SANCTIONED_COUNTRIES",
    "get_hourly_server_metrics_report",
    "get_hourly_user_metrics_report",
    "without_sanctioned_reports",
]
