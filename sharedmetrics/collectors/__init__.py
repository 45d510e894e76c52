"""Lookup backends used while building reports."""

from .ip_location import (
    UNKNOWN_COUNTRY,
    CachedIpLocationService,
    IpInfoLocationService,
    IpLocationError,
    IpLocationService,
)

__all__ = [
    "CachedIpLocationService",
    "IpInfoLocationService",
    "IpLocationError",
    "IpLocationService",
    "UNKNOWN_COUNTRY",
]
