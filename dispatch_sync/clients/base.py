"""Response decoding shared by both remote clients.

Contract:
- JSON body            -> parsed value
- 2xx, non-JSON/empty  -> RawResponse(raw, status), never an exception
- non-2xx              -> UpstreamStatusError (status + raw body)
- transport failure    -> UpstreamUnavailable (raised by the callers)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from dispatch_sync.clients.errors import UpstreamStatusError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawResponse:
    """A successful response whose body was not JSON (e.g. an empty 204)."""

    raw: str
    status: int

    def to_dict(self) -> dict[str, Any]:
        return {"raw": self.raw, "status": self.status}


def decode_response(service: str, response: httpx.Response) -> Any:
    """Turn an httpx response into parsed JSON, a RawResponse, or an error."""
    text = response.text
    status = response.status_code

    if not response.is_success:
        logger.error("%s responded %d: %s", service, status, text[:500])
        raise UpstreamStatusError(
            service, status, text, response.headers.get("Retry-After")
        )

    if not text.strip():
        return RawResponse(raw=text, status=status)

    try:
        return response.json()
    except ValueError:
        logger.warning("%s returned non-JSON (%d): %s", service, status, text[:200])
        return RawResponse(raw=text, status=status)


def as_dict(value: Any) -> dict[str, Any]:
    """Return value when it is a JSON object, else an empty dict."""
    return value if isinstance(value, dict) else {}
