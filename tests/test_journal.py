"""Tests for the Redis sync journal.

Tests:
- Entries are written with the configured TTL
- Stored entries load back
- Redis unavailable -> fail open (load returns None, record does not raise)
- Unreadable entries are discarded
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import redis

from dispatch_sync.sync.journal import SyncJournal


class TestSyncJournal:
    def test_key_pattern(self):
        assert SyncJournal.key(12345) == "sync:journal:12345"

    def test_record_sets_value_with_ttl(self):
        client = MagicMock()
        journal = SyncJournal(client, ttl=600)

        journal.record(12345, "customer_created", customer_id=11)

        key, value = client.set.call_args.args
        assert key == "sync:journal:12345"
        assert client.set.call_args.kwargs == {"ex": 600}
        stored = json.loads(value)
        assert stored["step"] == "customer_created"
        assert stored["customer_id"] == 11
        assert stored["location_id"] is None

    def test_load_round_trips_record(self):
        store: dict[str, str] = {}
        client = MagicMock()
        client.set.side_effect = lambda key, value, ex=None: store.__setitem__(key, value)
        client.get.side_effect = store.get
        journal = SyncJournal(client)

        journal.record(12345, "location_created", customer_id=11, location_id=22)
        entry = journal.load(12345)

        assert entry is not None
        assert entry.step == "location_created"
        assert (entry.customer_id, entry.location_id) == (11, 22)

    def test_missing_entry(self):
        client = MagicMock()
        client.get.return_value = None
        assert SyncJournal(client).load(1) is None

    def test_redis_down_on_load_fails_open(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        assert SyncJournal(client).load(1) is None

    def test_redis_down_on_record_does_not_raise(self):
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("refused")
        SyncJournal(client).record(1, "done")

    def test_unreadable_entry_is_discarded(self):
        client = MagicMock()
        client.get.return_value = "{not json"
        assert SyncJournal(client).load(1) is None

    def test_foreign_shape_is_discarded(self):
        client = MagicMock()
        client.get.return_value = json.dumps({"unexpected": True})
        assert SyncJournal(client).load(1) is None
