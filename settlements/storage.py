"""
In-memory ledger store and its transaction handle.

Records are plain dicts keyed by UUID, one dict per record set. Every record
carries a ``version`` that increments on each committed update; transactions
remember the version of every record they touch and refuse to commit if any of
them moved underneath (optimistic concurrency).

Usage:
    with storage.begin() as tx:
        sale = tx.find_by_id(SALES, sale_id)
        tx.update_by_id(SALES, sale_id, {"status": SaleStatus.PENDING})
"""

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from .exceptions import ConcurrencyConflictError, TransactionStateError
from .models import SaleStatus

logger = logging.getLogger(__name__)

CUSTOMERS = "customers"
SALES = "sales"
PAYOUTS = "payouts"
ADJUSTMENTS = "adjustments"

TABLES = (CUSTOMERS, SALES, PAYOUTS, ADJUSTMENTS)

DEMO_CUSTOMER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
DEMO_SALE_ID = UUID("770e8400-e29b-41d4-a716-446655440002")

_MEMBERSHIP_TYPES = (list, tuple, set, frozenset)


def _matches(record: dict, filters: dict[str, Any]) -> bool:
    for field, expected in filters.items():
        value = record.get(field)
        if isinstance(expected, _MEMBERSHIP_TYPES):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sum_field(records: Iterable[dict], field: str) -> Decimal:
    return sum((Decimal(str(r[field])) for r in records), Decimal("0"))


class InMemoryStorage:
    def __init__(self, seed: bool = False):
        self._lock = threading.RLock()
        self._tables: dict[str, dict[UUID, dict]] = {name: {} for name in TABLES}
        if seed:
            self._seed_data()

    def _seed_data(self):
        now = datetime.now(timezone.utc)
        self._tables[CUSTOMERS][DEMO_CUSTOMER_ID] = {
            "id": DEMO_CUSTOMER_ID, "name": "John", "surname": "Customer",
            "created_at": now, "version": 1,
        }
        self._tables[SALES][DEMO_SALE_ID] = {
            "id": DEMO_SALE_ID, "amount": Decimal("200.00"), "status": SaleStatus.ACTIVE,
            "customer_id": DEMO_CUSTOMER_ID, "created_at": now, "version": 1,
        }

    def begin(self) -> "Transaction":
        tx = Transaction(self)
        tx.begin()
        return tx

    # Committed reads, used directly by read-only paths

    def find_by_id(self, table: str, record_id: UUID) -> Optional[dict]:
        with self._lock:
            record = self._tables[table].get(record_id)
            return dict(record) if record is not None else None

    def find(self, table: str, **filters: Any) -> list[dict]:
        with self._lock:
            return [dict(r) for r in self._tables[table].values() if _matches(r, filters)]

    def aggregate_sum(self, table: str, field: str, **filters: Any) -> Decimal:
        return _sum_field(self.find(table, **filters), field)

    def _apply(self, observed: dict[tuple[str, UUID], Optional[int]],
               writes: dict[tuple[str, UUID], Optional[dict]]) -> None:
        with self._lock:
            for (table, record_id), version in observed.items():
                current = self._tables[table].get(record_id)
                current_version = current["version"] if current is not None else None
                if current_version != version:
                    raise ConcurrencyConflictError(
                        f"{table} record {record_id} changed since it was read "
                        f"(expected version {version}, found {current_version})"
                    )
            for (table, record_id), record in writes.items():
                if record is None:
                    self._tables[table].pop(record_id, None)
                else:
                    self._tables[table][record_id] = dict(record)


class Transaction:
    """
    Explicit unit of work over an InMemoryStorage.

    Writes are buffered on the handle and only become visible to other readers
    when commit() succeeds. Reads made through the handle see its own pending
    writes. Handles are not shared between threads; each operation opens its own.
    """

    def __init__(self, storage: InMemoryStorage):
        self._storage = storage
        self._active = False
        self.id: Optional[UUID] = None
        self._observed: dict[tuple[str, UUID], Optional[int]] = {}
        self._writes: dict[tuple[str, UUID], Optional[dict]] = {}

    @property
    def active(self) -> bool:
        return self._active

    def begin(self) -> None:
        if self._active:
            raise TransactionStateError("Transaction already open")
        self._active = True
        self.id = uuid4()
        self._observed = {}
        self._writes = {}
        logger.debug("Transaction %s started", self.id)

    def commit(self) -> None:
        if not self._active:
            raise TransactionStateError("No active transaction to commit")
        try:
            self._storage._apply(self._observed, self._writes)
            logger.debug("Transaction %s committed %d write(s)", self.id, len(self._writes))
        finally:
            self._close()

    def rollback(self) -> None:
        if not self._active:
            raise TransactionStateError("No active transaction to rollback")
        logger.debug("Transaction %s rolled back, %d write(s) discarded", self.id, len(self._writes))
        self._close()

    def _close(self) -> None:
        self._active = False
        self._observed = {}
        self._writes = {}

    def __enter__(self) -> "Transaction":
        if not self._active:
            self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._active:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    def _require_active(self) -> None:
        if not self._active:
            raise TransactionStateError("No active transaction. Call begin() first.")

    def _observe(self, table: str, record: dict) -> None:
        self._observed.setdefault((table, record["id"]), record["version"])

    # Reads

    def find_by_id(self, table: str, record_id: UUID) -> Optional[dict]:
        self._require_active()
        key = (table, record_id)
        if key in self._writes:
            staged = self._writes[key]
            return dict(staged) if staged is not None else None
        record = self._storage.find_by_id(table, record_id)
        if record is None:
            self._observed.setdefault(key, None)
            return None
        self._observe(table, record)
        return record

    def find(self, table: str, **filters: Any) -> list[dict]:
        self._require_active()
        results: dict[UUID, dict] = {}
        for record in self._storage.find(table, **filters):
            self._observe(table, record)
            results[record["id"]] = record
        for (staged_table, record_id), staged in self._writes.items():
            if staged_table != table:
                continue
            results.pop(record_id, None)
            if staged is not None and _matches(staged, filters):
                results[record_id] = dict(staged)
        return list(results.values())

    def aggregate_sum(self, table: str, field: str, **filters: Any) -> Decimal:
        return _sum_field(self.find(table, **filters), field)

    # Writes

    def insert(self, table: str, record: dict) -> dict:
        self._require_active()
        record = dict(record)
        record.setdefault("id", uuid4())
        record["version"] = 1
        key = (table, record["id"])
        self._observed.setdefault(key, None)
        self._writes[key] = record
        return dict(record)

    def update_by_id(self, table: str, record_id: UUID, changes: dict) -> Optional[dict]:
        current = self.find_by_id(table, record_id)
        if current is None:
            return None
        base_version = self._observed.get((table, record_id)) or 0
        updated = {**current, **changes, "id": record_id, "version": base_version + 1}
        self._writes[(table, record_id)] = updated
        return dict(updated)

    def delete_by_id(self, table: str, record_id: UUID) -> Optional[dict]:
        current = self.find_by_id(table, record_id)
        if current is None:
            return None
        self._writes[(table, record_id)] = None
        return current
