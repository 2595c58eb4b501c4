"""StopSuite stop.completed -> Shopify fulfillment.

Prefers Shopify's fulfillment-orders API. Orders without fulfillment orders,
and stores that refuse the fulfillment-orders read with a 4xx, fall back to
the legacy per-order fulfillments endpoint with the order's full line-item
list and the configured location.
A non-JSON answer to the fulfillment POST is treated as success: the
fulfillment may already exist even when the body is empty or malformed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dispatch_sync.clients.base import RawResponse
from dispatch_sync.clients.errors import SyncError, UpstreamStatusError
from dispatch_sync.clients.shopify import ShopifyClient
from dispatch_sync.config import Settings
from dispatch_sync.models import CompletionEvent, Stop
from dispatch_sync.reconcile.references import resolve_order_reference

logger = logging.getLogger(__name__)

FULFILLABLE_STATUSES = {"open", "in_progress", "scheduled"}


class ReconcileStatus(str, Enum):
    IGNORED = "ignored"
    NO_REFERENCE = "no_reference"
    ALREADY_FULFILLED = "already_fulfilled"
    NO_LINE_ITEMS = "no_line_items"
    FULFILLED = "fulfilled"
    FAILED = "failed"


@dataclass
class ReconcileOutcome:
    status: ReconcileStatus
    message: str
    order_id: str | None = None
    strategy: str | None = None
    endpoint: str | None = None
    data: Any = None

    @property
    def success(self) -> bool:
        return self.status is ReconcileStatus.FULFILLED

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message, "status": self.status.value}
        if self.status in (ReconcileStatus.FULFILLED, ReconcileStatus.FAILED):
            body["success"] = self.success
        for key in ("order_id", "strategy", "endpoint", "data"):
            value = getattr(self, key)
            if value is not None:
                body[key] = value
        return body


def _is_fulfillable(fulfillment_order: dict[str, Any]) -> bool:
    status = fulfillment_order.get("status")
    return status is None or status in FULFILLABLE_STATUSES


def fulfillment_order_line_items(fulfillment_order: dict[str, Any]) -> list[dict[str, Any]]:
    items = []
    for line in fulfillment_order.get("line_items") or []:
        quantity = line.get("fulfillable_quantity", line.get("quantity", 0))
        if line.get("id") is not None and quantity:
            items.append({"id": line["id"], "quantity": quantity})
    return items


class CompletionReconciler:
    def __init__(self, settings: Settings, shopify: ShopifyClient) -> None:
        self._settings = settings
        self._shopify = shopify

    def tracking_info(self, stop: Stop) -> dict[str, str]:
        number = stop.driver_actions[0].id if stop.driver_actions else None
        return {
            "number": str(number) if number is not None else "NA",
            "company": self._settings.carrier_name,
            "url": self._settings.stopsuite_stop_url.format(stop_id=stop.id),
        }

    async def reconcile(self, event: CompletionEvent) -> ReconcileOutcome:
        if not event.is_stop_completion:
            return ReconcileOutcome(ReconcileStatus.IGNORED, "No stop.completed event found")

        stop = event.stop
        logger.info("Stop completed: stop=%s order=%s", stop.id, stop.order)

        resolution = resolve_order_reference(event)
        if not resolution.found:
            logger.warning("No Shopify reference found for stop %s", stop.id)
            return ReconcileOutcome(ReconcileStatus.NO_REFERENCE, "No Shopify reference found")

        order_id = resolution.order_id
        logger.info("Stop %s mapped to Shopify order %s via %s", stop.id, order_id, resolution.strategy.value)

        try:
            outcome = await self._fulfill(order_id, stop)
        except SyncError as e:
            logger.error("Shopify fulfillment failed for order %s: %s", order_id, e)
            outcome = ReconcileOutcome(ReconcileStatus.FAILED, str(e), order_id=order_id)

        outcome.strategy = resolution.strategy.value
        return outcome

    async def _fulfillment_orders(self, order_id: str) -> list[dict[str, Any]]:
        """Fulfillment orders, or [] when the store does not expose them to this token."""
        try:
            return await self._shopify.get_fulfillment_orders(order_id)
        except UpstreamStatusError as e:
            if not 400 <= e.status < 500 or e.status == 429:
                raise
            logger.warning(
                "Fulfillment orders unavailable for %s (HTTP %d), using legacy fulfillments",
                order_id,
                e.status,
            )
            return []

    async def _fulfill(self, order_id: str, stop: Stop) -> ReconcileOutcome:
        fulfillment_orders = await self._fulfillment_orders(order_id)
        tracking = self.tracking_info(stop)

        if fulfillment_orders:
            open_orders = [fo for fo in fulfillment_orders if _is_fulfillable(fo)]
            if not open_orders:
                logger.info("All fulfillment orders for %s are closed", order_id)
                return ReconcileOutcome(
                    ReconcileStatus.ALREADY_FULFILLED, "Order already fulfilled", order_id=order_id
                )

            fulfillment_order = open_orders[0]
            scoped: dict[str, Any] = {"fulfillment_order_id": fulfillment_order["id"]}
            line_items = fulfillment_order_line_items(fulfillment_order)
            if line_items:
                scoped["fulfillment_order_line_items"] = line_items

            payload = {
                "fulfillment": {
                    "line_items_by_fulfillment_order": [scoped],
                    "tracking_info": tracking,
                    "notify_customer": True,
                }
            }
            endpoint = "fulfillments.json"
            response = await self._shopify.create_fulfillment(payload)
        else:
            logger.info("No fulfillment orders for %s, using legacy fulfillments", order_id)
            order = await self._shopify.get_order(order_id)
            line_items = [
                {"id": item["id"], "quantity": item.get("quantity", 1)}
                for item in order.get("line_items") or []
                if item.get("id") is not None
            ]
            if not line_items:
                logger.warning("No line items found for order %s", order_id)
                return ReconcileOutcome(
                    ReconcileStatus.NO_LINE_ITEMS,
                    "No line items found, skipping fulfillment",
                    order_id=order_id,
                )

            payload = {
                "fulfillment": {
                    "location_id": self._settings.shopify_location_id,
                    "notify_customer": True,
                    "tracking_info": tracking,
                    "line_items": line_items,
                }
            }
            endpoint = f"orders/{order_id}/fulfillments.json"
            response = await self._shopify.create_order_fulfillment(order_id, payload)

        if isinstance(response, RawResponse):
            logger.warning("Shopify returned non-JSON fulfillment response (%d)", response.status)
            data: Any = response.to_dict()
        else:
            data = response

        logger.info("Shopify fulfillment created for order %s via %s", order_id, endpoint)
        return ReconcileOutcome(
            ReconcileStatus.FULFILLED,
            "Fulfillment submitted",
            order_id=order_id,
            endpoint=endpoint,
            data=data,
        )
