"""Sync journal: Redis record of how far each order's StopSuite sync got.

Contract:
- Key pattern: sync:journal:{order_id}, JSON value, TTL from settings
- Written after every completed step, never on failure
- Consulted before a sync to resume partial attempts and skip finished ones
- If Redis is down, fails open (sync proceeds as if no journal existed)
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass

import redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "sync:journal"


@dataclass
class JournalEntry:
    order_id: int
    step: str
    customer_id: int | str | None = None
    location_id: int | str | None = None
    shop_order_id: int | str | None = None
    updated_at: float = 0.0


class SyncJournal:
    """Redis-backed per-order sync progress."""

    def __init__(self, client: redis.Redis, ttl: int = 7 * 86400) -> None:
        self._redis = client
        self._ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: int = 7 * 86400) -> SyncJournal:
        return cls(redis.from_url(url, decode_responses=True), ttl=ttl)

    @staticmethod
    def key(order_id: int) -> str:
        return f"{_KEY_PREFIX}:{order_id}"

    def load(self, order_id: int) -> JournalEntry | None:
        """Return the last recorded step for an order, if any."""
        try:
            raw = self._redis.get(self.key(order_id))
        except redis.RedisError:
            logger.warning("Redis unavailable for sync journal, ignoring %s", order_id, exc_info=True)
            return None
        if raw is None:
            return None

        try:
            return JournalEntry(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable journal entry for %s", order_id)
            return None

    def record(
        self,
        order_id: int,
        step: str,
        customer_id: int | str | None = None,
        location_id: int | str | None = None,
        shop_order_id: int | str | None = None,
    ) -> None:
        entry = JournalEntry(
            order_id=order_id,
            step=step,
            customer_id=customer_id,
            location_id=location_id,
            shop_order_id=shop_order_id,
            updated_at=time.time(),
        )
        try:
            self._redis.set(self.key(order_id), json.dumps(asdict(entry)), ex=self._ttl)
        except redis.RedisError:
            logger.warning("Failed to journal %s step %s", order_id, step, exc_info=True)

    def close(self) -> None:
        self._redis.close()
