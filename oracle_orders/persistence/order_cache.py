"""
Order Cache Repository.

Local record of every order this engine built, keyed by order hash.
Writes are last-writer-wins (INSERT OR REPLACE). Entries leave the cache
only through explicit deletion or retention pruning.
"""

import copy
import json
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional

from ..orders.address import Address
from ..orders.types import Order, OrderCacheEntry, OrderStatus


class OrderCacheRepository(ABC):
    """Storage interface for cached orders."""

    @abstractmethod
    def get(self, order_hash: str) -> Optional[OrderCacheEntry]:
        pass

    @abstractmethod
    def put(self, entry: OrderCacheEntry) -> None:
        pass

    @abstractmethod
    def delete(self, order_hash: str) -> bool:
        pass

    @abstractmethod
    def delete_all(self) -> int:
        pass

    @abstractmethod
    def list(
        self,
        maker: Optional[Address] = None,
        order_type: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderCacheEntry]:
        """Entries matching all given filters, newest first."""

    @abstractmethod
    def prune(self, older_than: float) -> int:
        """Delete entries created before ``older_than`` (unix seconds)."""

    def list_open(self) -> List[OrderCacheEntry]:
        return [e for e in self.list() if not e.status.is_terminal]

    def stats(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in OrderStatus}
        entries = self.list()
        for entry in entries:
            counts[entry.status.value] += 1
        counts["total"] = len(entries)
        counts["rejected"] = sum(1 for e in entries if e.submission_error)
        return counts

    def close(self) -> None:
        pass


def _key(order_hash: str) -> str:
    return order_hash.lower()


class InMemoryOrderCache(OrderCacheRepository):
    """Dict-backed cache. Entries are copied in and out."""

    def __init__(self):
        self._lock = RLock()
        self._entries: Dict[str, OrderCacheEntry] = {}

    def get(self, order_hash: str) -> Optional[OrderCacheEntry]:
        with self._lock:
            entry = self._entries.get(_key(order_hash))
            return copy.deepcopy(entry) if entry else None

    def put(self, entry: OrderCacheEntry) -> None:
        with self._lock:
            self._entries[_key(entry.order_hash)] = copy.deepcopy(entry)

    def delete(self, order_hash: str) -> bool:
        with self._lock:
            return self._entries.pop(_key(order_hash), None) is not None

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def list(
        self,
        maker: Optional[Address] = None,
        order_type: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderCacheEntry]:
        with self._lock:
            entries = [
                copy.deepcopy(e) for e in self._entries.values()
                if (maker is None or e.order.maker == Address.of(maker))
                and (order_type is None or e.order_type == order_type)
                and (status is None or e.status == status)
            ]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def prune(self, older_than: float) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.created_at < older_than]
            for k in stale:
                del self._entries[k]
            return len(stale)


class SqliteOrderCache(OrderCacheRepository):
    """
    SQLite persistence for cached orders.

    Thread-safe with RLock.
    """

    def __init__(self, db_path: str = "logs/order_cache.db"):
        """Initialize repository.

        Args:
            db_path: Path to SQLite database (":memory:" for a private in-memory db)
        """
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._lock = RLock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row

        self._create_schema()

    def _create_schema(self):
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                order_hash TEXT PRIMARY KEY,
                maker TEXT NOT NULL,
                order_type TEXT NOT NULL,
                status TEXT NOT NULL,
                order_json TEXT NOT NULL,
                signature TEXT,
                relay_accepted INTEGER NOT NULL DEFAULT 0,
                submission_error TEXT,
                submission_attempts INTEGER NOT NULL DEFAULT 0,
                fill_tx_hash TEXT,
                cancel_tx_hash TEXT,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                last_checked_at REAL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_maker ON orders(maker)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at)")
        self.conn.commit()

    def _row_to_entry(self, row: sqlite3.Row) -> OrderCacheEntry:
        return OrderCacheEntry(
            order=Order.from_dict(json.loads(row["order_json"])),
            signature=row["signature"],
            order_type=row["order_type"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            relay_accepted=bool(row["relay_accepted"]),
            submission_error=row["submission_error"],
            submission_attempts=row["submission_attempts"],
            fill_tx_hash=row["fill_tx_hash"],
            cancel_tx_hash=row["cancel_tx_hash"],
            last_checked_at=row["last_checked_at"],
        )

    def get(self, order_hash: str) -> Optional[OrderCacheEntry]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM orders WHERE order_hash = ?", (_key(order_hash),)
            ).fetchone()
            return self._row_to_entry(row) if row else None

    def put(self, entry: OrderCacheEntry) -> None:
        with self._lock:
            self.conn.execute("""
                INSERT OR REPLACE INTO orders (
                    order_hash, maker, order_type, status, order_json, signature,
                    relay_accepted, submission_error, submission_attempts,
                    fill_tx_hash, cancel_tx_hash, created_at, updated_at, last_checked_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                _key(entry.order_hash),
                entry.order.maker.lower,
                entry.order_type,
                entry.status.value,
                json.dumps(entry.order.to_dict()),
                entry.signature,
                int(entry.relay_accepted),
                entry.submission_error,
                entry.submission_attempts,
                entry.fill_tx_hash,
                entry.cancel_tx_hash,
                entry.created_at,
                entry.updated_at,
                entry.last_checked_at,
            ))
            self.conn.commit()

    def delete(self, order_hash: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM orders WHERE order_hash = ?", (_key(order_hash),))
            self.conn.commit()
            return cursor.rowcount > 0

    def delete_all(self) -> int:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM orders")
            self.conn.commit()
            return cursor.rowcount

    def list(
        self,
        maker: Optional[Address] = None,
        order_type: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderCacheEntry]:
        clauses = []
        params = []
        if maker is not None:
            clauses.append("maker = ?")
            params.append(Address.of(maker).lower)
        if order_type is not None:
            clauses.append("order_type = ?")
            params.append(order_type)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)

        query = "SELECT * FROM orders"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"

        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def prune(self, older_than: float) -> int:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM orders WHERE created_at < ?", (older_than,))
            self.conn.commit()
            return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def retention_cutoff(retention_days: float, now: Optional[float] = None) -> float:
    return (now if now is not None else time.time()) - retention_days * 86400
