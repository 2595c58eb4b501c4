"""Tests for completion events -> Shopify fulfillments.

Tests:
- Reference resolution chain (explicit, nested, notes pattern, not found)
- Fulfillment-orders path and legacy per-order path
- Already fulfilled / no line items / upstream errors
- Non-JSON fulfillment responses count as success
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from dispatch_sync.clients.shopify import ShopifyClient
from dispatch_sync.models import CompletionEvent
from dispatch_sync.reconcile.reconciler import CompletionReconciler, ReconcileStatus
from dispatch_sync.reconcile.references import (
    Strategy,
    normalize_reference,
    resolve_order_reference,
)
from tests.fakes import ADMIN_PATH, FakeAPI, json_response, text_response

FULFILLMENT_ORDERS = f"{ADMIN_PATH}/orders/12345/fulfillment_orders.json"
ORDER = f"{ADMIN_PATH}/orders/12345.json"
FULFILLMENTS = f"{ADMIN_PATH}/fulfillments.json"
LEGACY_FULFILLMENTS = f"{ADMIN_PATH}/orders/12345/fulfillments.json"


def _event(**overrides) -> CompletionEvent:
    payload = {
        "event": "stop.completed",
        "stop": {
            "id": 777,
            "order": 33,
            "driver_actions": [{"id": 44, "notes": "Delivery for Shopify Order #1001 (shopify_12345)"}],
        },
    }
    payload.update(overrides)
    return CompletionEvent.model_validate(payload)


def _reconciler(settings, api) -> CompletionReconciler:
    return CompletionReconciler(settings, ShopifyClient(settings, transport=api.transport))


class TestReferenceResolution:
    def test_explicit_field_wins(self):
        resolution = resolve_order_reference(_event(external_reference="shopify_999"))
        assert resolution.strategy is Strategy.EXPLICIT_FIELD
        assert resolution.order_id == "999"

    def test_nested_field(self):
        event = _event()
        event.stop.external_reference = "shopify_555"
        resolution = resolve_order_reference(event)
        assert resolution.strategy is Strategy.NESTED_FIELD
        assert resolution.order_id == "555"

    def test_notes_pattern(self):
        resolution = resolve_order_reference(_event())
        assert resolution.strategy is Strategy.PATTERN_MATCH
        assert resolution.order_id == "12345"

    def test_pattern_searches_every_driver_action(self):
        event = _event(
            stop={
                "id": 1,
                "driver_actions": [{"id": 1, "notes": "gate code 4411"}, {"id": 2, "notes": "ref shopify_42"}],
            }
        )
        assert resolve_order_reference(event).order_id == "42"

    def test_not_found(self):
        event = _event(stop={"id": 1, "driver_actions": [{"id": 1, "notes": "leave at door"}]})
        resolution = resolve_order_reference(event)
        assert resolution.strategy is Strategy.NOT_FOUND
        assert resolution.found is False

    def test_non_numeric_explicit_reference_falls_through(self):
        resolution = resolve_order_reference(_event(external_reference="shopify_abc"))
        assert resolution.strategy is Strategy.PATTERN_MATCH

    def test_normalize_reference(self):
        assert normalize_reference("shopify_12345") == "12345"
        assert normalize_reference(" 12345 ") == "12345"
        assert normalize_reference("") is None
        assert normalize_reference(None) is None


class TestCompletionReconciler:
    @pytest.mark.asyncio
    async def test_legacy_path_when_no_fulfillment_orders(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(200, {"fulfillment_orders": []}),
                ("GET", ORDER): json_response(
                    200,
                    {"order": {"id": 12345, "line_items": [{"id": 1, "quantity": 2}, {"id": 2, "quantity": 1}]}},
                ),
                ("POST", LEGACY_FULFILLMENTS): json_response(201, {"fulfillment": {"id": 9}}),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FULFILLED
        assert outcome.success is True
        assert outcome.endpoint == "orders/12345/fulfillments.json"
        fulfillment = api.body_of("POST", LEGACY_FULFILLMENTS)["fulfillment"]
        assert fulfillment["line_items"] == [{"id": 1, "quantity": 2}, {"id": 2, "quantity": 1}]
        assert fulfillment["location_id"] == 74583474349
        assert fulfillment["notify_customer"] is True
        assert fulfillment["tracking_info"] == {
            "number": "44",
            "company": "Enzy Delivery",
            "url": "https://demo4.stopsuite.com/stops/777",
        }

    @pytest.mark.asyncio
    async def test_fulfillment_orders_path(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(
                    200,
                    {
                        "fulfillment_orders": [
                            {"id": 100, "status": "closed"},
                            {
                                "id": 101,
                                "status": "open",
                                "line_items": [
                                    {"id": 501, "fulfillable_quantity": 2},
                                    {"id": 502, "fulfillable_quantity": 0},
                                ],
                            },
                        ]
                    },
                ),
                ("POST", FULFILLMENTS): json_response(201, {"fulfillment": {"id": 9}}),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FULFILLED
        assert outcome.endpoint == "fulfillments.json"
        body = api.body_of("POST", FULFILLMENTS)["fulfillment"]
        assert body["line_items_by_fulfillment_order"] == [
            {"fulfillment_order_id": 101, "fulfillment_order_line_items": [{"id": 501, "quantity": 2}]}
        ]
        assert api.requests_to("GET", ORDER) == []

    @pytest.mark.asyncio
    async def test_all_closed_is_already_fulfilled(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(
                    200, {"fulfillment_orders": [{"id": 100, "status": "closed"}]}
                )
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.ALREADY_FULFILLED
        assert outcome.to_dict()["message"] == "Order already fulfilled"
        assert api.requests_to("POST", FULFILLMENTS) == []

    @pytest.mark.asyncio
    async def test_no_line_items_skips(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(200, {"fulfillment_orders": []}),
                ("GET", ORDER): json_response(200, {"order": {"id": 12345, "line_items": []}}),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.NO_LINE_ITEMS
        assert outcome.message == "No line items found, skipping fulfillment"

    @pytest.mark.asyncio
    async def test_non_json_fulfillment_response_is_success(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(200, {"fulfillment_orders": []}),
                ("GET", ORDER): json_response(200, {"order": {"id": 12345, "line_items": [{"id": 1}]}}),
                ("POST", LEGACY_FULFILLMENTS): text_response(201, ""),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FULFILLED
        assert outcome.data == {"raw": "", "status": 201}

    @pytest.mark.asyncio
    async def test_shopify_error_is_reported(self, settings):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(200, {"fulfillment_orders": []}),
                ("GET", ORDER): json_response(200, {"order": {"id": 12345, "line_items": [{"id": 1}]}}),
                ("POST", LEGACY_FULFILLMENTS): json_response(422, {"errors": {"line_items": ["invalid"]}}),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FAILED
        assert outcome.to_dict()["success"] is False
        assert outcome.order_id == "12345"
        assert outcome.strategy == "pattern_match"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [403, 404])
    async def test_unavailable_fulfillment_orders_fall_back_to_legacy(self, settings, status):
        api = FakeAPI(
            {
                ("GET", FULFILLMENT_ORDERS): json_response(status, {"errors": "Not Found"}),
                ("GET", ORDER): json_response(
                    200, {"order": {"id": 12345, "line_items": [{"id": 1, "quantity": 2}]}}
                ),
                ("POST", LEGACY_FULFILLMENTS): json_response(201, {"fulfillment": {"id": 9}}),
            }
        )

        outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FULFILLED
        assert outcome.endpoint == "orders/12345/fulfillments.json"
        assert len(api.requests_to("POST", LEGACY_FULFILLMENTS)) == 1
        assert api.body_of("POST", LEGACY_FULFILLMENTS)["fulfillment"]["line_items"] == [
            {"id": 1, "quantity": 2}
        ]

    @pytest.mark.asyncio
    async def test_fulfillment_orders_outage_is_reported(self, settings):
        api = FakeAPI({("GET", FULFILLMENT_ORDERS): json_response(503, {"errors": "unavailable"})})

        with patch("dispatch_sync.clients.retry.asyncio.sleep", new_callable=AsyncMock):
            outcome = await _reconciler(settings, api).reconcile(_event())

        assert outcome.status is ReconcileStatus.FAILED
        assert api.requests_to("GET", ORDER) == []

    @pytest.mark.asyncio
    async def test_no_reference_makes_no_calls(self, settings):
        api = FakeAPI()
        event = _event(stop={"id": 1, "driver_actions": []})

        outcome = await _reconciler(settings, api).reconcile(event)

        assert outcome.status is ReconcileStatus.NO_REFERENCE
        assert outcome.message == "No Shopify reference found"
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_other_events_are_ignored(self, settings):
        api = FakeAPI()

        outcome = await _reconciler(settings, api).reconcile(_event(event="stop.created"))

        assert outcome.status is ReconcileStatus.IGNORED
        assert outcome.to_dict() == {"message": "No stop.completed event found", "status": "ignored"}
        assert api.calls == []

    def test_tracking_number_defaults_to_na(self, settings):
        event = _event(stop={"id": 9, "driver_actions": []})
        tracking = _reconciler(settings, FakeAPI()).tracking_info(event.stop)
        assert tracking["number"] == "NA"
