"""Shared fixtures for the sync service test suite."""

from __future__ import annotations

from typing import Any

import pytest

from dispatch_sync.config import Settings
from tests.fakes import SHOPIFY_ADMIN_URL, STOPSUITE_BASE_URL


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        stopsuite_base_url=STOPSUITE_BASE_URL,
        stopsuite_api_key="ss-key",
        stopsuite_secret_key="ss-secret",
        shopify_admin_url=SHOPIFY_ADMIN_URL,
        shopify_admin_token="shpat_test",
        shopify_webhook_secret="shop-secret",
        shopify_location_id=74583474349,
        poll_attempts=3,
        poll_delay_seconds=0,
        route_batch_pause_seconds=0,
        # pinned so a developer's environment cannot leak in
        redis_url="",
        google_maps_api_key="",
        zone_mode="radius",
        tolerate_sandbox_flake=False,
        stopsuite_timestamp_tolerance=0,
        product_map={},
        rate_location_id="",
    )


@pytest.fixture
def order_payload() -> dict[str, Any]:
    return {
        "id": 12345,
        "name": "#1001",
        "email": "ada@example.com",
        "note": None,
        "customer": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "phone": "+16155550100",
        },
        "billing_address": {
            "address1": "1 Billing Way",
            "city": "Nashville",
            "province": "TN",
            "zip": "37203",
        },
        "shipping_address": {
            "address1": "123 Broadway",
            "city": "Nashville",
            "province": "TN",
            "zip": "37201",
            "country": "US",
            "latitude": 36.1612,
            "longitude": -86.7775,
        },
        "line_items": [
            {"id": 1, "sku": "1001", "quantity": 2, "product_id": 900},
            {"id": 2, "sku": "COMPOST-BAG", "quantity": 1, "product_id": 901},
            {"id": 3, "sku": "", "quantity": 1, "product_id": 902},
        ],
        "shipping_lines": [{"title": "Carbon Negative Local Delivery"}],
    }
