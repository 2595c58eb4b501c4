"""FastAPI application factory.

Run with:  uvicorn dispatch_sync.serve:create_app --factory
or:        dispatch-sync  (console script, reads HOST/PORT)
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from fastapi import FastAPI

from dispatch_sync.api import register_api_routes
from dispatch_sync.clients.shopify import ShopifyClient
from dispatch_sync.clients.stopsuite import StopSuiteClient
from dispatch_sync.config import Settings, get_settings
from dispatch_sync.middleware import build_limiter, install_middleware
from dispatch_sync.rates.engine import RateEngine
from dispatch_sync.rates.geocoding import FallbackGeocoder, GoogleGeocoder, ZipTableGeocoder
from dispatch_sync.rates.zones import RadiusZone, ServiceAreaZone, ZoneChecker
from dispatch_sync.reconcile.reconciler import CompletionReconciler
from dispatch_sync.sync.journal import SyncJournal
from dispatch_sync.sync.orchestrator import OrderSyncOrchestrator
from dispatch_sync.sync.readiness import ReadinessPoller
from dispatch_sync.webhooks.handlers import register_webhook_routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_dispatch_sync", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._dispatch_sync = True  # type: ignore[attr-defined]
        root.addHandler(handler)


@dataclass
class Services:
    """Everything a request handler needs, built once per app."""

    settings: Settings
    stopsuite: StopSuiteClient
    shopify: ShopifyClient
    geocoder: FallbackGeocoder
    rate_engine: RateEngine
    readiness: ReadinessPoller
    orchestrator: OrderSyncOrchestrator
    reconciler: CompletionReconciler
    journal: SyncJournal | None = None

    async def aclose(self) -> None:
        await self.stopsuite.aclose()
        await self.shopify.aclose()
        await self.geocoder.aclose()
        if self.journal is not None:
            self.journal.close()


def build_services(
    settings: Settings,
    stopsuite_transport: httpx.AsyncBaseTransport | None = None,
    shopify_transport: httpx.AsyncBaseTransport | None = None,
    geocode_transport: httpx.AsyncBaseTransport | None = None,
    journal: SyncJournal | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Services:
    """Wire the components from one Settings instance."""
    stopsuite = StopSuiteClient(settings, transport=stopsuite_transport)
    shopify = ShopifyClient(settings, transport=shopify_transport)

    geocoders: list = []
    if settings.google_maps_api_key:
        geocoders.append(
            GoogleGeocoder(
                settings.google_maps_api_key,
                timeout=settings.http_timeout_seconds,
                transport=geocode_transport,
            )
        )
    geocoders.append(ZipTableGeocoder())
    geocoder = FallbackGeocoder(geocoders)

    zone: ZoneChecker
    if settings.zone_mode == "service_area":
        zone = ServiceAreaZone(stopsuite)
    else:
        zone = RadiusZone(
            settings.zone_center_lat,
            settings.zone_center_lng,
            settings.zone_radius_km,
            settings.zone_name,
        )

    if journal is None and settings.redis_url:
        journal = SyncJournal.from_url(settings.redis_url, ttl=settings.journal_ttl_seconds)

    return Services(
        settings=settings,
        stopsuite=stopsuite,
        shopify=shopify,
        geocoder=geocoder,
        rate_engine=RateEngine(settings, geocoder, zone),
        readiness=ReadinessPoller(
            shopify,
            attempts=settings.poll_attempts,
            delay=settings.poll_delay_seconds,
            sleep=sleep,
        ),
        orchestrator=OrderSyncOrchestrator(settings, stopsuite, journal=journal),
        reconciler=CompletionReconciler(settings, shopify),
        journal=journal,
    )


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s %s starting", settings.service_name, settings.service_version)
        yield
        await services.aclose()

    app = FastAPI(title=settings.service_name, version=settings.service_version, lifespan=lifespan)
    app.state.services = services

    limiter = build_limiter()
    register_webhook_routes(app)
    register_api_routes(app, limiter)
    install_middleware(app, settings, limiter)
    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        "dispatch_sync.serve:create_app",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
    )


if __name__ == "__main__":
    main()
