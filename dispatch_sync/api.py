"""Non-webhook HTTP routes: health, carrier rates, admin diagnostics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter

from dispatch_sync.clients.errors import SyncError
from dispatch_sync.models import RateRequest
from dispatch_sync.rates.engine import EXCLUSIVE_HEADER
from dispatch_sync.sync.routes import fetch_active_routes

logger = logging.getLogger(__name__)


def register_api_routes(app: FastAPI, limiter: Limiter) -> None:
    settings = app.state.services.settings

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": settings.service_name,
            "version": settings.service_version,
        }

    @app.post("/api/shipping-rates")
    async def shipping_rates(request: Request):
        """Shopify CarrierService callback. Always answers 200."""
        services = request.app.state.services
        try:
            payload = await request.json()
            rate = RateRequest.model_validate(payload.get("rate") or {})
        except Exception:
            logger.info("Invalid rate request, returning no custom rates")
            return JSONResponse({"rates": []})

        quote = await services.rate_engine.resolve_rates(rate.destination)
        if not quote.exclusive:
            return JSONResponse({"rates": quote.rates})

        return JSONResponse(
            {"rates": quote.rates},
            headers={EXCLUSIVE_HEADER: "true", "Cache-Control": "no-store"},
        )

    @app.get("/api/admin/recheck-order")
    @limiter.limit(settings.admin_rate_limit)
    async def recheck_order(request: Request, orderId: str | None = None):
        """Report whether Shopify has routed an order (fulfillment orders + location)."""
        if not orderId:
            return JSONResponse(
                {"error": "Missing orderId. Use /api/admin/recheck-order?orderId=123"},
                status_code=400,
            )
        snapshot = await request.app.state.services.readiness.snapshot(orderId)
        return {"orderId": orderId, **snapshot.to_dict()}

    @app.get("/api/routes/active")
    @limiter.limit(settings.admin_rate_limit)
    async def active_routes(request: Request):
        """Active StopSuite routes with full detail."""
        services = request.app.state.services
        try:
            routes = await fetch_active_routes(
                services.stopsuite,
                batch_size=settings.route_batch_size,
                pause=settings.route_batch_pause_seconds,
            )
        except SyncError as e:
            logger.error("Fetching active routes failed: %s", e)
            return JSONResponse({"error": "Could not fetch routes"}, status_code=502)
        return {"routes": routes}
