"""Service configuration.

One immutable Settings instance is built at startup and handed to every
component constructor. Variable names match the deployment environment
(no prefix), e.g. STOPSUITE_API_KEY, SHOPIFY_ADMIN_TOKEN.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the sync service."""

    # StopSuite (signed client API)
    stopsuite_base_url: str = "https://demo4.stopsuite.com"
    stopsuite_api_key: str = ""
    stopsuite_secret_key: str = ""
    stopsuite_webhook_path: str = "/api/webhooks/stop-completed/"
    stopsuite_timestamp_tolerance: int = 0  # seconds, 0 disables the window
    stopsuite_stop_url: str = "https://demo4.stopsuite.com/stops/{stop_id}"

    # Shopify Admin API
    shopify_admin_url: str = "https://example.myshopify.com/admin/api/2025-04"
    shopify_admin_token: str = ""
    shopify_webhook_secret: str = ""
    shopify_location_id: int = 0

    # Order sync
    poll_attempts: int = 3
    poll_delay_seconds: float = 10.0
    product_map: dict[str, int] = {}
    tolerate_sandbox_flake: bool = False
    redis_url: str = ""
    journal_ttl_seconds: int = 7 * 86400

    # Route detail fetching
    route_batch_size: int = 5
    route_batch_pause_seconds: float = 0.2

    # Completion relay
    carrier_name: str = "Enzy Delivery"

    # Carrier rates
    google_maps_api_key: str = ""
    zone_mode: str = "radius"  # radius | service_area
    zone_center_lat: float = 36.1627
    zone_center_lng: float = -86.7816
    zone_radius_km: float = 30.0
    zone_name: str = "Nashville"
    rate_service_name: str = "Carbon Negative Local Delivery"
    rate_service_code: str = "CARBON_NEGATIVE_LOCAL"
    rate_total_price: str = "499"
    rate_currency: str = "USD"
    rate_min_days: int = 1
    rate_max_days: int = 2
    rate_location_id: str = ""

    # HTTP surface
    service_name: str = "Enzy Delivery Carrier Service"
    service_version: str = "1.0.0"
    http_timeout_seconds: float = 30.0
    cors_origins: list[str] = ["*"]
    admin_rate_limit: str = "30/minute"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore", "frozen": True}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, built on first use."""
    return Settings()
