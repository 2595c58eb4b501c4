"""Wait for Shopify's asynchronous order routing.

Shopify can take 10-30 seconds after orders/create to build fulfillment
orders and assign a location. The poll has a hard attempt ceiling and does
not sleep after the last attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from dispatch_sync.clients.errors import SyncError
from dispatch_sync.clients.shopify import ShopifyClient

logger = logging.getLogger(__name__)


@dataclass
class RoutingSnapshot:
    order: dict[str, Any] | None
    attempts: int = 1

    @property
    def fulfillment_orders(self) -> list[dict[str, Any]]:
        if not self.order:
            return []
        edges = (self.order.get("fulfillmentOrders") or {}).get("edges") or []
        return [edge.get("node") or {} for edge in edges]

    @property
    def physical_location(self) -> dict[str, Any] | None:
        return (self.order or {}).get("physicalLocation")

    @property
    def ready(self) -> bool:
        return bool(self.fulfillment_orders) and self.physical_location is not None

    @property
    def reason(self) -> str:
        if self.order is None:
            return "order not retrievable from Shopify"
        if not self.fulfillment_orders:
            return "no fulfillment orders yet"
        if self.physical_location is None:
            return "no physical location assigned"
        return "ready"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "reason": self.reason,
            "attempts": self.attempts,
            "physical_location": self.physical_location,
            "fulfillment_orders": self.fulfillment_orders,
            "order": self.order,
        }


class ReadinessPoller:
    def __init__(
        self,
        shopify: ShopifyClient,
        attempts: int = 3,
        delay: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._shopify = shopify
        self._attempts = max(1, attempts)
        self._delay = delay
        self._sleep = sleep

    async def snapshot(self, order_id: int | str) -> RoutingSnapshot:
        """One routing check; upstream failures read as "not ready"."""
        try:
            order = await self._shopify.get_routing_status(order_id)
        except SyncError as e:
            logger.warning("Routing status check failed for %s: %s", order_id, e)
            order = None
        return RoutingSnapshot(order=order)

    async def wait_until_ready(self, order_id: int | str) -> RoutingSnapshot:
        snapshot = RoutingSnapshot(order=None, attempts=0)
        for attempt in range(1, self._attempts + 1):
            snapshot = await self.snapshot(order_id)
            snapshot.attempts = attempt
            if snapshot.ready:
                logger.info("Order %s routed after %d check(s)", order_id, attempt)
                return snapshot
            if attempt < self._attempts:
                logger.info(
                    "Attempt %d: order %s not routed (%s), retrying in %.0fs",
                    attempt,
                    order_id,
                    snapshot.reason,
                    self._delay,
                )
                await self._sleep(self._delay)

        logger.warning(
            "Order %s still not routed after %d attempts (%s)",
            order_id,
            self._attempts,
            snapshot.reason,
        )
        return snapshot
