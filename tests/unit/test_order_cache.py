"""
Unit tests for the order cache repositories.

Tests:
- Save and load of a cached order with its bookkeeping
- Last-writer-wins replacement
- Filtering by maker, type and status
- Retention pruning
- Persistence across reopen (SQLite)
"""

import os
import tempfile

import pytest

from oracle_orders.orders.types import OrderCacheEntry, OrderStatus
from oracle_orders.persistence.order_cache import (
    InMemoryOrderCache,
    SqliteOrderCache,
    retention_cutoff,
)

from tests.conftest import OTHER


class CacheContract:
    """Behaviour shared by every repository implementation."""

    def make_repo(self):
        raise NotImplementedError

    def setup_method(self):
        self.repo = self.make_repo()

    def teardown_method(self):
        self.repo.close()

    def test_get_missing(self):
        assert self.repo.get("0x" + "00" * 32) is None

    def test_put_and_get(self, make_order):
        order = make_order()
        entry = OrderCacheEntry(
            order=order,
            signature="0xsig",
            created_at=100.0,
            updated_at=101.0,
            submission_error="INSUFFICIENT_ALLOWANCE: not enough allowance",
            submission_attempts=2,
        )
        self.repo.put(entry)

        loaded = self.repo.get(order.hash)
        assert loaded.order == order
        assert loaded.signature == "0xsig"
        assert loaded.created_at == 100.0
        assert loaded.submission_error.startswith("INSUFFICIENT_ALLOWANCE")
        assert loaded.submission_attempts == 2
        assert loaded.status == OrderStatus.SUBMITTED

    def test_lookup_case_insensitive(self, make_order):
        order = make_order()
        self.repo.put(OrderCacheEntry(order=order))
        assert self.repo.get(order.hash.upper().replace("0X", "0x")) is not None

    def test_put_replaces(self, make_order):
        order = make_order()
        entry = OrderCacheEntry(order=order)
        self.repo.put(entry)
        entry.advance(OrderStatus.PENDING)
        entry.relay_accepted = True
        self.repo.put(entry)

        loaded = self.repo.get(order.hash)
        assert loaded.status == OrderStatus.PENDING
        assert loaded.relay_accepted is True
        assert len(self.repo.list()) == 1

    def test_returned_entries_are_copies(self, make_order):
        order = make_order()
        self.repo.put(OrderCacheEntry(order=order))
        loaded = self.repo.get(order.hash)
        loaded.submission_attempts = 99
        assert self.repo.get(order.hash).submission_attempts == 0

    def test_list_filters(self, make_order):
        mine = make_order()
        theirs = make_order(maker=OTHER)
        filled = make_order(nonce=1)
        self.repo.put(OrderCacheEntry(order=mine, created_at=1.0))
        self.repo.put(OrderCacheEntry(order=theirs, created_at=2.0, order_type="stop"))
        entry = OrderCacheEntry(order=filled, created_at=3.0)
        entry.advance(OrderStatus.FILLED)
        self.repo.put(entry)

        assert [e.order_hash for e in self.repo.list()] == [filled.hash, theirs.hash, mine.hash]
        assert {e.order_hash for e in self.repo.list(maker=mine.maker)} == {mine.hash, filled.hash}
        assert [e.order_hash for e in self.repo.list(order_type="stop")] == [theirs.hash]
        assert [e.order_hash for e in self.repo.list(status=OrderStatus.FILLED)] == [filled.hash]
        assert {e.order_hash for e in self.repo.list_open()} == {mine.hash, theirs.hash}

    def test_delete(self, make_order):
        order = make_order()
        self.repo.put(OrderCacheEntry(order=order))
        assert self.repo.delete(order.hash) is True
        assert self.repo.delete(order.hash) is False
        assert self.repo.get(order.hash) is None

    def test_delete_all(self, make_order):
        self.repo.put(OrderCacheEntry(order=make_order(nonce=1)))
        self.repo.put(OrderCacheEntry(order=make_order(nonce=2)))
        assert self.repo.delete_all() == 2
        assert self.repo.list() == []

    def test_prune(self, make_order):
        old = make_order(nonce=1)
        new = make_order(nonce=2)
        self.repo.put(OrderCacheEntry(order=old, created_at=1000.0))
        self.repo.put(OrderCacheEntry(order=new, created_at=5000.0))

        assert self.repo.prune(older_than=2000.0) == 1
        assert self.repo.get(old.hash) is None
        assert self.repo.get(new.hash) is not None

    def test_stats(self, make_order):
        self.repo.put(OrderCacheEntry(order=make_order(nonce=1), submission_error="REJECTED: no"))
        entry = OrderCacheEntry(order=make_order(nonce=2))
        entry.advance(OrderStatus.PENDING)
        self.repo.put(entry)

        stats = self.repo.stats()
        assert stats["total"] == 2
        assert stats["SUBMITTED"] == 1
        assert stats["PENDING"] == 1
        assert stats["rejected"] == 1


class TestInMemoryOrderCache(CacheContract):
    """Tests for the dict-backed cache."""

    def make_repo(self):
        return InMemoryOrderCache()


class TestSqliteOrderCache(CacheContract):
    """Tests for SQLite persistence."""

    def make_repo(self):
        self.temp_db = tempfile.mkstemp(suffix=".db")[1]
        return SqliteOrderCache(self.temp_db)

    def teardown_method(self):
        self.repo.close()
        try:
            os.remove(self.temp_db)
        except (PermissionError, FileNotFoundError):
            pass

    def test_survives_reopen(self, make_order):
        """Test cached orders are still there after a restart."""
        order = make_order()
        entry = OrderCacheEntry(order=order, signature="0xsig", fill_tx_hash="0xfill")
        entry.advance(OrderStatus.FILLED)
        self.repo.put(entry)
        self.repo.close()

        self.repo = SqliteOrderCache(self.temp_db)
        loaded = self.repo.get(order.hash)
        assert loaded.status == OrderStatus.FILLED
        assert loaded.fill_tx_hash == "0xfill"
        assert loaded.order.condition == order.condition
        assert loaded.order.extension == order.extension

    def test_memory_database(self, make_order):
        repo = SqliteOrderCache(":memory:")
        order = make_order()
        repo.put(OrderCacheEntry(order=order))
        assert repo.get(order.hash).order == order
        repo.close()


class TestRetentionCutoff:

    def test_cutoff(self):
        assert retention_cutoff(1, now=100_000) == 100_000 - 86400

    @pytest.mark.parametrize("days", [0, 0.5, 30])
    def test_cutoff_not_after_now(self, days):
        assert retention_cutoff(days, now=10**9) <= 10**9
