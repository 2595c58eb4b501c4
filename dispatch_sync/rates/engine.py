"""Checkout-time carrier rates.

Fail-open: a destination that cannot be geocoded, a zone check that fails,
or any unexpected error yields no custom rate so Shopify falls back to its
own defaults. Inside the zone exactly one exclusive local-delivery rate is
returned and the caller suppresses platform rates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from dispatch_sync.config import Settings
from dispatch_sync.models import RateDestination
from dispatch_sync.rates.geocoding import Geocoder, format_address
from dispatch_sync.rates.zones import ZoneChecker

logger = logging.getLogger(__name__)

EXCLUSIVE_HEADER = "X-Shopify-Carrier-Exclusive"


@dataclass
class RateQuote:
    rates: list[dict[str, Any]] = field(default_factory=list)
    exclusive: bool = False
    zone_name: str | None = None


def delivery_date(days_from_now: int, today: date | None = None) -> str:
    return ((today or date.today()) + timedelta(days=days_from_now)).isoformat()


class RateEngine:
    def __init__(self, settings: Settings, geocoder: Geocoder, zone: ZoneChecker) -> None:
        self._settings = settings
        self._geocoder = geocoder
        self._zone = zone

    def local_delivery_rate(self) -> dict[str, Any]:
        s = self._settings
        rate = {
            "service_name": s.rate_service_name,
            "service_code": s.rate_service_code,
            "total_price": s.rate_total_price,
            "currency": s.rate_currency,
            "min_delivery_date": delivery_date(s.rate_min_days),
            "max_delivery_date": delivery_date(s.rate_max_days),
        }
        if s.rate_location_id:
            rate["location_id"] = s.rate_location_id
        return rate

    async def resolve_rates(self, destination: RateDestination | None) -> RateQuote:
        """Decide the custom rates for a checkout destination."""
        if destination is None:
            logger.info("Rate request without destination, no custom rates")
            return RateQuote()

        address = format_address(destination)
        try:
            coords = await self._geocoder.geocode(address)
            if coords is None:
                logger.info("Could not geocode %r, no custom rates", address)
                return RateQuote()

            result = await self._zone.contains(*coords)
        except Exception:
            logger.exception("Rate resolution failed for %r, failing open", address)
            return RateQuote()

        if not result.inside:
            logger.info("Outside delivery zone: %r", address)
            return RateQuote()

        logger.info("Inside delivery zone %s: %r", result.zone_name or "(unnamed)", address)
        return RateQuote(
            rates=[self.local_delivery_rate()],
            exclusive=True,
            zone_name=result.zone_name,
        )
