"""Inbound payload models for Shopify orders, checkout rate requests and
StopSuite completion events. Unknown fields are ignored."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Address(_Payload):
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    zip: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class Customer(_Payload):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class LineItem(_Payload):
    id: int | None = None
    sku: str | None = None
    quantity: int = 1
    product_id: int | None = None


class ShippingLine(_Payload):
    title: str | None = None


class ShopifyOrder(_Payload):
    id: int
    name: str = ""
    email: str | None = None
    note: str | None = None
    customer: Customer | None = None
    billing_address: Address | None = None
    shipping_address: Address | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    shipping_lines: list[ShippingLine] = Field(default_factory=list)

    @property
    def contact(self) -> Customer:
        return self.customer or Customer()

    @property
    def delivery_address(self) -> Address | None:
        return self.shipping_address or self.billing_address

    @property
    def shipping_method(self) -> str:
        return self.shipping_lines[0].title or "" if self.shipping_lines else ""

    @property
    def reference(self) -> str:
        """Join key StopSuite carries back on completion."""
        return f"shopify_{self.id}"


class RateDestination(_Payload):
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    zip: str | None = None
    country: str | None = None


class RateRequest(_Payload):
    destination: RateDestination | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)
    currency: str | None = None


class DriverAction(_Payload):
    id: int | str | None = None
    notes: str | None = None


class Stop(_Payload):
    id: int | str | None = None
    order: int | str | None = None
    external_reference: str | None = None
    driver_actions: list[DriverAction] = Field(default_factory=list)


class CompletionEvent(_Payload):
    event: str | None = None
    external_reference: str | None = None
    stop: Stop | None = None

    @property
    def is_stop_completion(self) -> bool:
        return self.event == "stop.completed" and self.stop is not None
