"""Shared test doubles."""
from typing import Dict, List


class FakeIpLocation:
    """Maps anonymized addresses to countries; unknown addresses fail."""

    def __init__(self, countries: Dict[str, str]) -> None:
        self.countries = countries
        self.calls: List[str] = []

    async def country_for_ip(self, ip: str) -> str:
        self.calls.append(ip)
        try:
            return self.countries[ip]
        except KeyError:
            raise RuntimeError(f"no country for {ip}") from None
