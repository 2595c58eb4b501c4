"""Shopify order -> StopSuite objects.

State machine per order:

    RECEIVED -> CUSTOMER_CREATED -> LOCATION_CREATED -> SHOP_ORDER_CREATED
             -> ROUTE_ASSIGNED (optional) -> DONE

FAILED at any of the first three transitions aborts the sync. There is no
rollback: objects created before a failure stay in StopSuite, and the
journal (when configured) lets the next delivery resume from there.
Route assignment is best effort and never fails the sync.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from dispatch_sync.clients.base import as_dict
from dispatch_sync.clients.errors import SyncError, UpstreamStatusError, ValidationFailure
from dispatch_sync.clients.stopsuite import StopSuiteClient
from dispatch_sync.config import Settings
from dispatch_sync.models import LineItem, ShopifyOrder
from dispatch_sync.sync.journal import SyncJournal
from dispatch_sync.sync.routes import find_active_route

logger = logging.getLogger(__name__)

SANDBOX_FLAKE_STATUS = 502


class SyncState(str, Enum):
    RECEIVED = "received"
    CUSTOMER_CREATED = "customer_created"
    LOCATION_CREATED = "location_created"
    SHOP_ORDER_CREATED = "shop_order_created"
    ROUTE_ASSIGNED = "route_assigned"
    DONE = "done"
    FAILED = "failed"


# Journal steps after which nothing more may be created for the order
_FINISHED = {SyncState.SHOP_ORDER_CREATED, SyncState.ROUTE_ASSIGNED, SyncState.DONE}


class StepFailed(SyncError):
    """A required StopSuite step returned no usable id."""


@dataclass
class SyncResult:
    order_id: int
    state: SyncState = SyncState.RECEIVED
    customer_id: int | str | None = None
    location_id: int | str | None = None
    shop_order_id: int | str | None = None
    route_id: int | str | None = None
    driver_action_id: int | str | None = None
    placeholder: bool = False
    resumed: bool = False
    skipped: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is not SyncState.FAILED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


def map_product_id(item: LineItem, product_map: dict[str, int]) -> int:
    """SKU table first, then a numeric SKU, then the Shopify product id."""
    sku = (item.sku or "").strip()
    if sku in product_map:
        return product_map[sku]
    if sku.isdigit():
        return int(sku)
    return item.product_id or 0


def customer_payload(order: ShopifyOrder) -> dict[str, Any]:
    contact = order.contact
    billing = order.billing_address
    return {
        "name": contact.full_name,
        "contact_name": contact.first_name or "",
        "email": order.email or contact.email or "",
        "phone": contact.phone or "",
        "billing_address": (billing.address1 if billing else None) or "",
        "billing_city": (billing.city if billing else None) or "",
        "billing_state": (billing.province if billing else None) or "",
        "billing_zip": (billing.zip if billing else None) or "",
        "billing_method": "manual",
        "notes": f"Shopify Order {order.name}",
    }


def location_payload(order: ShopifyOrder, customer_id: int | str) -> dict[str, Any]:
    address = order.delivery_address
    if address is None:
        raise ValidationFailure(f"Order {order.id} has no shipping or billing address")
    return {
        "customer": customer_id,
        "address": address.address1 or "",
        "city": address.city or "",
        "state": address.province or "",
        "zip": address.zip or "",
        "position": {"lat": address.latitude or 0, "lng": address.longitude or 0},
        "nickname": "Shopify Default",
        "status": "active",
    }


def shop_order_payload(
    order: ShopifyOrder, location_id: int | str, product_map: dict[str, int]
) -> dict[str, Any]:
    return {
        "products": [
            {
                "product_id": map_product_id(item, product_map),
                "quantity": item.quantity,
                "option_id": 0,
            }
            for item in order.line_items
        ],
        "customer_location_id": location_id,
        "delivery_notes": order.note or f"Shopify Order {order.name}",
        "external_reference": order.reference,
    }


def driver_action_payload(
    order: ShopifyOrder, route_id: int | str, location_id: int | str
) -> dict[str, Any]:
    return {
        "route": route_id,
        "customer_location": location_id,
        "notes": f"Delivery for Shopify Order {order.name} ({order.reference})",
        "suppress_service_reminders": True,
        "suppress_service_records": True,
    }


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class OrderSyncOrchestrator:
    def __init__(
        self,
        settings: Settings,
        stopsuite: StopSuiteClient,
        journal: SyncJournal | None = None,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._settings = settings
        self._stopsuite = stopsuite
        self._journal = journal
        self._today = today

    def _advance(self, result: SyncResult, state: SyncState) -> None:
        result.state = state
        if self._journal is not None:
            self._journal.record(
                result.order_id,
                state.value,
                customer_id=result.customer_id,
                location_id=result.location_id,
                shop_order_id=result.shop_order_id,
            )

    def _resume(self, result: SyncResult) -> bool:
        """Apply a prior journal entry. Returns True when nothing is left to do."""
        if self._journal is None:
            return False
        entry = self._journal.load(result.order_id)
        if entry is None:
            return False

        try:
            step = SyncState(entry.step)
        except ValueError:
            return False

        result.customer_id = entry.customer_id
        result.location_id = entry.location_id
        result.shop_order_id = entry.shop_order_id
        if step in _FINISHED:
            result.state = step
            result.skipped = True
            logger.info("Order %s already synced (journal step %s), skipping", result.order_id, step.value)
            return True

        result.resumed = True
        logger.info("Resuming sync for order %s from step %s", result.order_id, step.value)
        return False

    async def _create(self, path: str, payload: dict[str, Any], what: str) -> int | str:
        created = as_dict(await self._stopsuite.post(path, payload))
        remote_id = created.get("id")
        if not remote_id:
            raise StepFailed(f"Failed to create StopSuite {what}")
        logger.info("StopSuite %s created: %s", what, remote_id)
        return remote_id

    async def _create_shop_order(self, order: ShopifyOrder, result: SyncResult) -> None:
        payload = shop_order_payload(order, result.location_id, self._settings.product_map)
        try:
            result.shop_order_id = await self._create("/shop-orders/create/", payload, "shop order")
        except UpstreamStatusError as e:
            if not (self._settings.tolerate_sandbox_flake and e.status == SANDBOX_FLAKE_STATUS):
                raise
            logger.warning("StopSuite returned %d for shop order, using placeholder", e.status)
            result.shop_order_id = f"placeholder-{e.status}-{order.id}"
            result.placeholder = True

    async def _assign_route(self, order: ShopifyOrder, result: SyncResult) -> None:
        try:
            route = await find_active_route(self._stopsuite, self._today())
            if route is None:
                logger.info("No active route today, order %s left unassigned", order.id)
                return

            action = as_dict(
                await self._stopsuite.post(
                    "/driver-actions/create/",
                    driver_action_payload(order, route["id"], result.location_id),
                )
            )
        except (SyncError, KeyError) as e:
            logger.warning("Route assignment failed for order %s: %s", order.id, e)
            return

        result.route_id = route["id"]
        result.driver_action_id = action.get("id")
        self._advance(result, SyncState.ROUTE_ASSIGNED)

    async def sync(self, order: ShopifyOrder) -> SyncResult:
        """Create the StopSuite customer, location, shop order and route stop."""
        result = SyncResult(order_id=order.id)
        logger.info("Syncing order %s (%s) to StopSuite", order.name, order.id)

        if self._resume(result):
            return result

        try:
            if not result.customer_id:
                result.customer_id = await self._create(
                    "/customers/create/", customer_payload(order), "customer"
                )
                self._advance(result, SyncState.CUSTOMER_CREATED)

            if not result.location_id:
                result.location_id = await self._create(
                    "/customer-locations/create/",
                    location_payload(order, result.customer_id),
                    "location",
                )
                self._advance(result, SyncState.LOCATION_CREATED)

            await self._create_shop_order(order, result)
            self._advance(result, SyncState.SHOP_ORDER_CREATED)
        except SyncError as e:
            result.state = SyncState.FAILED
            result.error = str(e)
            logger.error("StopSuite sync failed for order %s: %s", order.id, e)
            return result

        await self._assign_route(order, result)
        self._advance(result, SyncState.DONE)
        logger.info("StopSuite sync complete for order %s", order.id)
        return result
