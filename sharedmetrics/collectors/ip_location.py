"""Country resolution for anonymized client addresses."""
from __future__ import annotations

import re
from collections import OrderedDict
from typing import Optional, Protocol

import httpx

from sharedmetrics.config import IpLocationConfig

UNKNOWN_COUNTRY = "ZZ"
_COUNTRY_CODE = re.compile(r"[A-Z]{2}")


class IpLocationError(RuntimeError):
    """Raised when a country lookup cannot be completed."""


class IpLocationService(Protocol):
    """Anything that maps an IP address to an ISO 3166 country code."""

    async def country_for_ip(self, ip: str) -> str:
        ...


class IpInfoLocationService:
    """Resolve countries through the ``ipinfo.io`` style ``/{ip}/country`` API.

    The endpoint answers with the bare two letter code as plain text.  An empty
    body (or the literal ``undefined``) means the address is not geolocated and
    is reported as ``ZZ``.
    """

    def __init__(
        self, config: IpLocationConfig, *, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=config.timeout,
            follow_redirects=True,
        )

    async def country_for_ip(self, ip: str) -> str:
        try:
            response = await self._client.get(f"/{ip}/country")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IpLocationError(f"country lookup failed for {ip}: {exc}") from exc
        country = response.text.strip().upper()
        if not country or country == "UNDEFINED":
            return UNKNOWN_COUNTRY
        if not _COUNTRY_CODE.fullmatch(country):
            raise IpLocationError(f"unexpected country lookup answer for {ip}: {country[:32]!r}")
        return country

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "IpInfoLocationService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class CachedIpLocationService:
    """LRU cache in front of another :class:`IpLocationService`.

    Only successful lookups are cached, so a transient failure is retried on
    the next report.
    """

    def __init__(self, backend: IpLocationService, max_size: int = 1024) -> None:
        if max_size <= 0:
            raise ValueError("cache size must be positive")
        self._backend = backend
        self._max_size = max_size
        self._cache: "OrderedDict[str, str]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._cache)

    async def country_for_ip(self, ip: str) -> str:
        country = self._cache.get(ip)
        if country is not None:
            self._cache.move_to_end(ip)
            return country
        country = await self._backend.country_for_ip(ip)
        self._cache[ip] = country
        while len(self._cache) > self._max_size:
            self._cache.popitem(last=False)
        return country


__all__ = [
    "CachedIpLocationService",
    "IpInfoLocationService",
    "IpLocationError",
    "IpLocationService",
    "UNKNOWN_COUNTRY",
]
