"""Webhook HTTP handlers: FastAPI routes for Shopify and StopSuite.

Each handler:
1. Reads raw body (needed for HMAC verification)
2. Verifies the sender's signature scheme
3. Parses the payload
4. Runs the sync / reconciliation step
5. Acknowledges with 200 (or 202 when Shopify routing is not ready yet)

Security contract:
- Return 401 only for signature failures, before any side effect
- Never return internal error details to the sender
- Acknowledge even when processing fails; redelivery is the sender's call
- Log all webhook activity for audit trail
"""

from __future__ import annotations

import json
import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from dispatch_sync.clients.errors import AuthenticationFailure, ValidationFailure
from dispatch_sync.config import Settings
from dispatch_sync.models import CompletionEvent, ShopifyOrder
from dispatch_sync.webhooks.verification import (
    SHOPIFY_HMAC_HEADER,
    verify_shopify,
    verify_stopsuite_request,
)

logger = logging.getLogger(__name__)

AWAITING_ROUTING = "Awaiting Shopify routing – fulfillment skipped temporarily"


def _log_webhook(provider: str, event_type: str, ref: str, status: str) -> None:
    """Audit log for webhook activity."""
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s ref=%s status=%s",
        provider,
        event_type,
        ref,
        status,
    )


def _authenticate_shopify(body: bytes, headers: dict[str, str], settings: Settings) -> None:
    if not verify_shopify(body, headers.get(SHOPIFY_HMAC_HEADER), settings.shopify_webhook_secret):
        raise AuthenticationFailure("Shopify HMAC mismatch")


def _authenticate_stopsuite(body: bytes, headers: dict[str, str], settings: Settings) -> None:
    if not verify_stopsuite_request(
        body,
        headers,
        settings.stopsuite_webhook_path,
        settings.stopsuite_secret_key,
        settings.stopsuite_timestamp_tolerance,
    ):
        raise AuthenticationFailure("StopSuite signature mismatch")


def _parse(model: type, body: bytes, what: str):
    try:
        return model.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        raise ValidationFailure(f"Invalid {what} payload") from e


async def handle_order_created(request: Request) -> JSONResponse:
    """Shopify orders/create -> StopSuite sync."""
    services = request.app.state.services
    start = time.time()

    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    try:
        _authenticate_shopify(body, headers, services.settings)
        order: ShopifyOrder = _parse(ShopifyOrder, body, "order")
    except AuthenticationFailure as e:
        logger.warning("Rejected order webhook: %s", e)
        _log_webhook("shopify", "orders/create", "unknown", "signature_failed")
        return JSONResponse({"status": "unauthorized"}, status_code=401)
    except ValidationFailure as e:
        logger.warning("Rejected order webhook: %s", e)
        _log_webhook("shopify", "orders/create", "unknown", "invalid_payload")
        return JSONResponse({"error": "Missing order data"}, status_code=400)

    ref = str(order.id)
    logger.info(
        "Received new order %s (%s), shipping: %s",
        order.name or "(unnamed)",
        order.id,
        order.shipping_method or "n/a",
    )

    snapshot = await services.readiness.wait_until_ready(order.id)
    if not snapshot.ready:
        _log_webhook("shopify", "orders/create", ref, "awaiting_routing")
        return JSONResponse(
            {"message": AWAITING_ROUTING, "reason": snapshot.reason},
            status_code=202,
        )

    try:
        result = await services.orchestrator.sync(order)
    except Exception:
        logger.exception("Unexpected error syncing order %s", order.id)
        _log_webhook("shopify", "orders/create", ref, "sync_crashed")
        return JSONResponse({"status": "received"}, status_code=200)

    _log_webhook("shopify", "orders/create", ref, result.state.value)
    logger.debug("Order webhook processed in %.1fms", (time.time() - start) * 1000)
    return JSONResponse({"status": "received", "sync": result.to_dict()}, status_code=200)


async def handle_stop_completed(request: Request) -> JSONResponse:
    """StopSuite stop.completed -> Shopify fulfillment."""
    services = request.app.state.services

    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    try:
        _authenticate_stopsuite(body, headers, services.settings)
        event: CompletionEvent = _parse(CompletionEvent, body, "completion event")
    except AuthenticationFailure as e:
        logger.warning("Rejected StopSuite webhook: %s", e)
        _log_webhook("stopsuite", "unknown", "unknown", "signature_failed")
        return JSONResponse({"error": "Invalid signature"}, status_code=401)
    except ValidationFailure as e:
        logger.warning("Rejected StopSuite webhook: %s", e)
        _log_webhook("stopsuite", "unknown", "unknown", "invalid_payload")
        return JSONResponse({"error": "Invalid payload"}, status_code=400)

    event_type = event.event or "unknown"
    ref = str(event.stop.id) if event.stop else "none"

    try:
        outcome = await services.reconciler.reconcile(event)
    except Exception:
        logger.exception("Unexpected error reconciling stop %s", ref)
        _log_webhook("stopsuite", event_type, ref, "reconcile_crashed")
        return JSONResponse({"success": False}, status_code=200)

    _log_webhook("stopsuite", event_type, ref, outcome.status.value)
    return JSONResponse(outcome.to_dict(), status_code=200)


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoints, with and without trailing slash.

    The StopSuite signature is always checked against the configured
    canonical path, whichever form the request arrived on.
    """
    for path in ("/api/webhooks/order-created", "/api/webhooks/order-created/"):
        app.add_api_route(path, handle_order_created, methods=["POST"], include_in_schema=not path.endswith("/"))
    for path in ("/api/webhooks/stop-completed", "/api/webhooks/stop-completed/"):
        app.add_api_route(path, handle_stop_completed, methods=["POST"], include_in_schema=not path.endswith("/"))

    logger.info("Webhook routes registered: /api/webhooks/{order-created,stop-completed}")
