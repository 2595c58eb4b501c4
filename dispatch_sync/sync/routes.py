"""StopSuite route lookups."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

from dispatch_sync.clients.base import as_dict
from dispatch_sync.clients.errors import UpstreamUnavailable
from dispatch_sync.clients.stopsuite import StopSuiteClient

logger = logging.getLogger(__name__)


def is_active(route: dict[str, Any]) -> bool:
    return not route.get("complete") and not route.get("cancelled")


def _results(data: Any) -> list[dict[str, Any]]:
    results = as_dict(data).get("results")
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict)]


async def routes_for_date(client: StopSuiteClient, day: date) -> list[dict[str, Any]]:
    iso = day.isoformat()
    data = await client.get("/routes/", params={"date_after": iso, "date_before": iso})
    return _results(data)


async def find_active_route(client: StopSuiteClient, day: date) -> dict[str, Any] | None:
    """First route scheduled on `day` that is neither complete nor cancelled."""
    for route in await routes_for_date(client, day):
        if is_active(route):
            return route
    return None


async def fetch_active_routes(
    client: StopSuiteClient,
    batch_size: int = 5,
    pause: float = 0.2,
) -> list[dict[str, Any]]:
    """List active routes with full detail.

    Details are fetched in concurrent batches with a pause between batches.
    Failed or error-shaped detail responses are dropped, not raised.
    """
    data = await client.get("/routes/")
    if not isinstance(as_dict(data).get("results"), list):
        raise UpstreamUnavailable("StopSuite returned an unexpected route list")

    active = [r for r in _results(data) if is_active(r)]
    logger.info("Found %d active routes", len(active))

    detailed: list[dict[str, Any]] = []
    batch_size = max(1, batch_size)
    for start in range(0, len(active), batch_size):
        batch = active[start : start + batch_size]
        outcomes = await asyncio.gather(
            *(client.get(f"/routes/{route['id']}/") for route in batch),
            return_exceptions=True,
        )
        for route, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Route %s detail failed: %s", route.get("id"), outcome)
                continue
            if not isinstance(outcome, dict) or "detail" in outcome:
                continue
            detailed.append(outcome)

        logger.info("Processed route batch %d", start // batch_size + 1)
        if start + batch_size < len(active):
            await asyncio.sleep(pause)

    return detailed
