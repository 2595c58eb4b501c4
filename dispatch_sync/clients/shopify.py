"""Shopify Admin API client: static access-token profile.

REST for orders, fulfillment orders and fulfillments; GraphQL for the
order-routing snapshot (physicalLocation + fulfillmentOrders). Reads are
retried on transient failures, fulfillment writes are not.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from dispatch_sync.clients.base import as_dict, decode_response
from dispatch_sync.clients.errors import UpstreamUnavailable
from dispatch_sync.clients.retry import retry_with_backoff
from dispatch_sync.config import Settings

logger = logging.getLogger(__name__)

ROUTING_STATUS_QUERY = """
query ($id: ID!) {
  order(id: $id) {
    id
    name
    displayFinancialStatus
    displayFulfillmentStatus
    physicalLocation { id name }
    fulfillmentOrders(first: 5) {
      edges {
        node {
          id
          status
          assignedLocation { location { id name } }
        }
      }
    }
  }
}
"""


def order_gid(order_id: int | str) -> str:
    return f"gid://shopify/Order/{order_id}"


class ShopifyClient:
    """Async client for the Shopify Admin API."""

    service = "Shopify"

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.shopify_admin_url.rstrip("/") + "/",
            headers={
                "X-Shopify-Access-Token": settings.shopify_admin_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send an Admin API request relative to the versioned admin URL."""
        method = method.upper()
        target = path.lstrip("/")
        logger.info("Shopify %s %s", method, target)
        try:
            response = await self._client.request(method, target, json=body, params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Shopify {method} {target} failed: {e}") from e
        return decode_response(self.service, response)

    @retry_with_backoff()
    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any) -> Any:
        return await self.request("POST", path, body=body)

    @retry_with_backoff()
    async def graphql(self, query: str, variables: dict | None = None) -> dict:
        """Execute a GraphQL Admin API query (read-only use)."""
        result = as_dict(
            await self.request(
                "POST", "graphql.json", body={"query": query, "variables": variables or {}}
            )
        )
        if result.get("errors"):
            logger.warning("Shopify GraphQL errors: %s", result["errors"])
        return result

    async def get_order(self, order_id: int | str) -> dict:
        data = as_dict(await self.get(f"orders/{order_id}.json"))
        return as_dict(data.get("order"))

    async def get_fulfillment_orders(self, order_id: int | str) -> list[dict]:
        data = as_dict(await self.get(f"orders/{order_id}/fulfillment_orders.json"))
        orders = data.get("fulfillment_orders")
        return orders if isinstance(orders, list) else []

    async def get_routing_status(self, order_id: int | str) -> dict | None:
        """Fetch physicalLocation and fulfillmentOrders for one order."""
        result = await self.graphql(ROUTING_STATUS_QUERY, {"id": order_gid(order_id)})
        return as_dict(result.get("data")).get("order")

    async def create_fulfillment(self, payload: dict) -> Any:
        """Fulfill against fulfillment orders (current API)."""
        return await self.post("fulfillments.json", payload)

    async def create_order_fulfillment(self, order_id: int | str, payload: dict) -> Any:
        """Fulfill an order directly (legacy per-order API)."""
        return await self.post(f"orders/{order_id}/fulfillments.json", payload)

    async def aclose(self) -> None:
        await self._client.aclose()
