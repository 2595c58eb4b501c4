"""StopSuite client API: signed request profile.

Every request carries X-API-Key plus X-Signature / X-Timestamp / X-Nonce.
Paths are normalised once (rooted under /api/client/, single trailing
slash, no query string) and that exact string is both signed and requested.
Query parameters travel separately and are not part of the signature.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from dispatch_sync.clients.base import decode_response
from dispatch_sync.clients.errors import ConfigurationError, UpstreamUnavailable
from dispatch_sync.config import Settings
from dispatch_sync.webhooks.verification import new_nonce, new_timestamp, sign

logger = logging.getLogger(__name__)

API_ROOT = "/api/client/"
SERVICE_AREA_PATH = "/api/check-service-area/"


def normalize_path(path: str) -> str:
    """Canonicalise a client API path.

    "routes", "/routes", "api/client/routes/" and "/routes/?date=x" all
    become "/api/client/routes/". Idempotent.
    """
    path = path.split("?", 1)[0].strip("/")
    if path == "api/client" or path.startswith("api/client/"):
        path = path[len("api/client"):].strip("/")
    return f"{API_ROOT}{path}/" if path else API_ROOT


def encode_body(body: Any) -> str:
    """Serialise a request body once; the same string is signed and sent."""
    if body is None:
        return ""
    return json.dumps(body, separators=(",", ":"))


class StopSuiteClient:
    """Async client for the StopSuite API."""

    service = "StopSuite"

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = settings.stopsuite_api_key
        self._secret = settings.stopsuite_secret_key
        self._client = httpx.AsyncClient(
            base_url=settings.stopsuite_base_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._secret)

    def signed_headers(self, method: str, path: str, payload: str) -> dict[str, str]:
        """Build auth headers for one request."""
        if not self._secret:
            raise ConfigurationError("STOPSUITE_SECRET_KEY is not configured")

        timestamp = new_timestamp()
        nonce = new_nonce()
        return {
            "X-API-Key": self._api_key,
            "X-Signature": sign(method, path, timestamp, nonce, payload, self._secret),
            "X-Timestamp": timestamp,
            "X-Nonce": nonce,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        *,
        canonical: bool = True,
    ) -> Any:
        """Send a signed request.

        Args:
            method: HTTP method
            path: API path; normalised under /api/client/ unless canonical=False
            body: JSON-serialisable body
            params: Query parameters (not signed)
            canonical: Set False for endpoints outside the client API root

        Returns:
            Parsed JSON, or RawResponse for a non-JSON success body
        """
        method = method.upper()
        target = normalize_path(path) if canonical else path
        payload = encode_body(body)
        headers = self.signed_headers(method, target, payload)

        logger.info("StopSuite %s %s", method, target)
        try:
            response = await self._client.request(
                method,
                target,
                content=payload or None,
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"StopSuite {method} {target} failed: {e}") from e

        return decode_response(self.service, response)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any) -> Any:
        return await self.request("POST", path, body=body)

    async def check_service_area(self, lat: float, lng: float) -> Any:
        """Ask StopSuite which service area (if any) contains a point."""
        return await self.request(
            "POST", SERVICE_AREA_PATH, body={"lat": lat, "lng": lng}, canonical=False
        )

    async def aclose(self) -> None:
        await self._client.aclose()
