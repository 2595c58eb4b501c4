"""Address -> coordinates.

Geocoders return (lat, lng) or None; None means "no rate produced",
never an error. FallbackGeocoder tries each geocoder in order.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

import httpx

from dispatch_sync.models import RateDestination

logger = logging.getLogger(__name__)

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

Coordinates = tuple[float, float]

# Approximate ZIP centroids for the Nashville service area
NASHVILLE_ZIP_CENTROIDS: dict[str, Coordinates] = {
    "37201": (36.1627, -86.7816),
    "37202": (36.1659, -86.7844),
    "37203": (36.1398, -86.7689),
    "37204": (36.1573, -86.7679),
    "37205": (36.1094, -86.8690),
    "37206": (36.1826, -86.7426),
    "37207": (36.2298, -86.7710),
    "37208": (36.1761, -86.8078),
    "37209": (36.1296, -86.8137),
    "37210": (36.1829, -86.7334),
    "37211": (36.0729, -86.7184),
    "37212": (36.1357, -86.7897),
    "37213": (36.1653, -86.7378),
    "37214": (36.1625, -86.6689),
    "37215": (36.1027, -86.8147),
    "37216": (36.2156, -86.7332),
    "37217": (36.1072, -86.6691),
    "37218": (36.2088, -86.8355),
    "37219": (36.1493, -86.7873),
    "37220": (36.0643, -86.8008),
    "37221": (36.0667, -86.9553),
    "37027": (36.0656, -86.8992),  # Brentwood
    "37064": (36.0339, -86.7903),  # Franklin
    "37067": (36.0331, -86.7889),  # Franklin
    "37115": (36.3143, -86.6914),  # Madison
    "37122": (36.3931, -86.7532),  # Mount Juliet
    "37138": (36.2728, -86.5772),  # Old Hickory
}

# "TN 37201" or "37201-1234" as a whole address segment; a street line never matches
_REGION_ZIP_RE = re.compile(r"(?:[A-Za-z][A-Za-z .]*\s+)?(\d{5})(?:-\d{4})?")


def format_address(destination: RateDestination) -> str:
    """Assemble a single-line address: street, city, province postal, country."""
    street = f"{destination.address1 or ''} {destination.address2 or ''}".strip()
    postal = destination.postal_code or destination.zip or ""
    region = f"{destination.province or ''} {postal}".strip()
    parts = [street, destination.city or "", region, destination.country or ""]
    return ", ".join(p for p in parts if p)


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Coordinates | None: ...


class GoogleGeocoder:
    """Google Maps Geocoding API."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def geocode(self, address: str) -> Coordinates | None:
        response = await self._client.get(
            GOOGLE_GEOCODE_URL, params={"address": address, "key": self._api_key}
        )
        data = response.json()
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info("Google geocoding returned %s for %r", data.get("status"), address)
            return None

        location = results[0].get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None
        return float(location["lat"]), float(location["lng"])

    async def aclose(self) -> None:
        await self._client.aclose()


class ZipTableGeocoder:
    """Offline lookup of ZIP centroids; works without any external API."""

    def __init__(self, table: dict[str, Coordinates] | None = None) -> None:
        self._table = NASHVILLE_ZIP_CENTROIDS if table is None else table

    async def geocode(self, address: str) -> Coordinates | None:
        for segment in reversed(address.split(",")):
            match = _REGION_ZIP_RE.fullmatch(segment.strip())
            if match:
                return self._table.get(match.group(1))
        return None


class FallbackGeocoder:
    """First geocoder that yields coordinates wins."""

    def __init__(self, geocoders: list[Geocoder]) -> None:
        self._geocoders = geocoders

    async def geocode(self, address: str) -> Coordinates | None:
        for geocoder in self._geocoders:
            try:
                coords = await geocoder.geocode(address)
            except Exception:
                logger.warning(
                    "Geocoder %s failed for %r", type(geocoder).__name__, address, exc_info=True
                )
                continue
            if coords is not None:
                return coords
        return None

    async def aclose(self) -> None:
        for geocoder in self._geocoders:
            close = getattr(geocoder, "aclose", None)
            if close is not None:
                await close()
