"""Coarsening of client addresses before they are stored or reported."""
from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Set

logger = logging.getLogger(__name__)

# Number of leading IPv6 hextets kept (a /48 prefix).
_IPV6_KEPT_HEXTETS = 3


class InvalidAddressError(ValueError):
    """Raised when a string cannot be parsed as an IP address."""


def anonymize_ip(ip: str) -> str:
    """Return ``ip`` with its host portion zeroed.

    IPv4 addresses lose their last octet (``5.2.79.12`` -> ``5.2.79.0``).  IPv6
    addresses keep the first 48 bits and are rendered as eight unpadded
    hextets, e.g. ``2620:0:1003:0:0:0:0:0``.  IPv4-mapped IPv6 addresses are
    treated as the embedded IPv4 address.
    """

    try:
        address = ipaddress.ip_address(ip.strip())
    except (AttributeError, ValueError) as exc:
        raise InvalidAddressError(f"invalid IP address: {ip!r}") from exc

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    if isinstance(address, ipaddress.IPv4Address):
        octets = address.packed[:3] + b"\x00"
        return str(ipaddress.IPv4Address(octets))

    packed = address.packed
    hextets = [int.from_bytes(packed[i : i + 2], "big") for i in range(0, 16, 2)]
    kept = hextets[:_IPV6_KEPT_HEXTETS] + [0] * (8 - _IPV6_KEPT_HEXTETS)
    return ":".join(format(hextet, "x") for hextet in kept)


def anonymize_and_dedupe(ip_addresses: Iterable[str]) -> Set[str]:
    """Anonymize every address, skipping (and logging) malformed entries."""

    result: Set[str] = set()
    for ip in ip_addresses:
        try:
            result.add(anonymize_ip(ip))
        except InvalidAddressError as exc:
            logger.error("Error anonymizing IP address %r: %s", ip, exc)
    return result
