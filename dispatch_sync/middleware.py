"""HTTP middleware: CORS and rate limiting.

Middleware ordering (outermost first):
1. CORS -- Shopify calls the carrier endpoint cross-origin; handles OPTIONS
2. Rate limiting -- per-route limits declared with limiter.limit(...)

Webhook and carrier-rate routes carry no bearer auth: webhooks are
signature-verified by their handlers.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from dispatch_sync.config import Settings

logger = logging.getLogger(__name__)


def build_limiter() -> Limiter:
    return Limiter(key_func=get_remote_address)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = getattr(exc, "retry_after", 60)
    logger.warning("Rate limit exceeded: %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_middleware(app: FastAPI, settings: Settings, limiter: Limiter) -> None:
    """Install rate limiting and CORS. Last added runs first."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=["X-Shopify-Carrier-Exclusive"],
    )
