"""Delivery zone containment.

Two checkers share one contract, contains(lat, lng) -> ZoneResult:
- RadiusZone: great-circle distance from a fixed centre, inclusive radius
- ServiceAreaZone: StopSuite check-service-area endpoint (signed)
Any failure in the remote checker means "outside".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol

from dispatch_sync.clients.base import as_dict
from dispatch_sync.clients.errors import SyncError
from dispatch_sync.clients.stopsuite import StopSuiteClient

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class ZoneResult:
    inside: bool
    zone_name: str | None = None


OUTSIDE = ZoneResult(inside=False)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class ZoneChecker(Protocol):
    async def contains(self, lat: float, lng: float) -> ZoneResult: ...


class RadiusZone:
    def __init__(self, center_lat: float, center_lng: float, radius_km: float, name: str) -> None:
        self.center_lat = center_lat
        self.center_lng = center_lng
        self.radius_km = radius_km
        self.name = name

    def distance_km(self, lat: float, lng: float) -> float:
        return haversine_km(self.center_lat, self.center_lng, lat, lng)

    async def contains(self, lat: float, lng: float) -> ZoneResult:
        distance = self.distance_km(lat, lng)
        logger.info(
            "Distance from %s centre: %.2fkm (max: %.2fkm)", self.name, distance, self.radius_km
        )
        if distance <= self.radius_km:
            return ZoneResult(inside=True, zone_name=self.name)
        return OUTSIDE


class ServiceAreaZone:
    def __init__(self, client: StopSuiteClient) -> None:
        self._client = client

    async def contains(self, lat: float, lng: float) -> ZoneResult:
        if not self._client.configured:
            logger.warning("StopSuite credentials missing, treating (%s, %s) as outside", lat, lng)
            return OUTSIDE

        try:
            data = as_dict(await self._client.check_service_area(lat, lng))
        except SyncError as e:
            logger.error("Service area check failed for (%s, %s): %s", lat, lng, e)
            return OUTSIDE

        name = as_dict(data.get("service_area")).get("name")
        if name:
            logger.info("Coordinate (%s, %s) is within zone: %s", lat, lng, name)
            return ZoneResult(inside=True, zone_name=name)

        logger.info("Coordinate (%s, %s) is outside all service zones", lat, lng)
        return OUTSIDE
