"""Deliver finished reports to the metrics collector over HTTP."""
from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

from sharedmetrics.metrics.report import HourlyServerMetricsReport

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_MAX_REDIRECTS = 10
JSON_HEADERS = {"Content-Type": "application/json"}


async def post_hourly_server_metrics_report(
    report: HourlyServerMetricsReport,
    metrics_url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    timeout: float = 30.0,
) -> Optional[int]:
    """POST ``report`` as JSON to ``metrics_url``.

    Redirects are followed by hand so that every hop receives the same method
    and body; ``httpx`` would otherwise turn a POST into a GET on 301/302/303.
    Failures are logged and never raised.  The final status code is returned,
    or ``None`` when no response was received.
    """

    body = json.dumps(report.to_dict(), separators=(",", ":")).encode("utf-8")
    logger.info("Posting metrics to %s: %s", metrics_url, body.decode("utf-8"))

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=False)
    try:
        url = httpx.URL(metrics_url)
        for _ in range(max(0, max_redirects) + 1):
            response = await client.post(
                url, content=body, headers=JSON_HEADERS, follow_redirects=False
            )
            location = response.headers.get("location")
            if response.status_code in REDIRECT_STATUSES and location:
                url = url.join(location)
                logger.debug("Metrics server redirected to %s", url)
                continue
            break
        else:
            logger.error("Error posting metrics: too many redirects (%d)", max_redirects)
            return response.status_code

        if response.is_success:
            logger.info("Metrics server responded with status %d", response.status_code)
        else:
            logger.error(
                "Error posting metrics: server responded with status %d", response.status_code
            )
        return response.status_code
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("Error posting metrics: %s", exc)
        return None
    finally:
        if owns_client:
            await client.aclose()


__all__ = ["post_hourly_server_metrics_report"]
