"""
store.py — Local Durable Store

Keyed, durable record store organized into named partitions, one SQLite
table per partition. Records go in and come out as plain dicts keyed by
column name.

Business Rules:
- A single-record write is one transaction, committed before the call returns
- upsert_many is sequential and non-transactional: a failed item is logged
  and skipped, earlier items stay committed
- replace_all is the only multi-record transaction (catalog full replace)
- Any SQLAlchemy fault surfaces as StorageUnavailable
- No cross-partition transactions

Called by: device.py, services/*, main.py
Depends on: database.py, models/
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from .database import make_engine, make_session_factory
from .exceptions import StorageUnavailable
from .models import (
    Base,
    ConflictRecord,
    LocalCustomer,
    LocalOrder,
    LocalProduct,
    LocalSetting,
    SyncLogEntry,
)

log = logging.getLogger("possync.store")


@dataclass(frozen=True)
class Partition:
    name: str
    model: type
    key: str
    order_by: tuple[str, ...]
    # Named secondary predicates: name -> fn(model, **params) -> SQL clause
    indexes: dict[str, Callable[..., Any]] = field(default_factory=dict)


PARTITIONS: dict[str, Partition] = {
    "products": Partition(
        "products", LocalProduct, "id", ("id",),
        {
            "active": lambda m: m.status == "active",
            "barcode": lambda m, barcode: m.barcode == barcode,
            "sku": lambda m, sku: m.sku == sku,
        },
    ),
    "orders": Partition(
        "orders", LocalOrder, "id", ("created_at", "id"),
        {
            "unsynced": lambda m: m.synced.is_(False),
            "synced": lambda m: m.synced.is_(True),
            "pending": lambda m: m.synced.is_(False) & (m.status == "pending"),
            "order_number": lambda m, order_number: m.order_number == order_number,
        },
    ),
    "customers": Partition(
        "customers", LocalCustomer, "id", ("id",),
        {"phone": lambda m, phone: m.phone == phone},
    ),
    "settings": Partition("settings", LocalSetting, "key", ("key",)),
    "conflicts": Partition(
        "conflicts", ConflictRecord, "id", ("detected_at", "id"),
        {
            "unresolved": lambda m: m.resolved.is_(False),
            "by_order": lambda m, order_id: m.order_id == order_id,
            "unresolved_by_order": lambda m, order_id: m.resolved.is_(False) & (m.order_id == order_id),
        },
    ),
    "sync_logs": Partition(
        "sync_logs", SyncLogEntry, "id", ("id",),
        {"by_order": lambda m, order_id: m.order_id == order_id},
    ),
}


def _to_dict(obj) -> dict:
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


class LocalStore:
    """Durable partitioned record store backed by SQLite."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        try:
            self._engine = make_engine(database_url)
            Base.metadata.create_all(bind=self._engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Cannot open local store {database_url}: {e}") from e
        self._Session = make_session_factory(self._engine)
        log.info("Local store ready at %s", database_url)

    def close(self) -> None:
        self._engine.dispose()

    # ── internals ────────────────────────────────────────────────────

    @contextmanager
    def _session(self):
        session = self._Session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageUnavailable(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _partition(name: str) -> Partition:
        try:
            return PARTITIONS[name]
        except KeyError:
            raise ValueError(f"Unknown partition: {name}") from None

    @staticmethod
    def _clean(part: Partition, record: dict) -> dict:
        columns = part.model.__table__.columns.keys()
        clean = {k: v for k, v in record.items() if k in columns}
        if clean.get(part.key) is None and part.name != "sync_logs":
            raise ValueError(f"{part.name} record is missing its key '{part.key}'")
        return clean

    def _ordered(self, part: Partition, stmt):
        return stmt.order_by(*(getattr(part.model, col) for col in part.order_by))

    def _where(self, part: Partition, index: str, params: dict):
        try:
            predicate = part.indexes[index]
        except KeyError:
            raise ValueError(f"Partition {part.name} has no index '{index}'") from None
        return predicate(part.model, **params)

    # ── writes ───────────────────────────────────────────────────────

    def upsert_one(self, partition: str, record: dict) -> dict:
        """Insert or overwrite one record. Durable when this returns."""
        part = self._partition(partition)
        with self._session() as s:
            obj = s.merge(part.model(**self._clean(part, record)))
            s.flush()
            return _to_dict(obj)

    def upsert_many(self, partition: str, records: Iterable[dict]) -> int:
        """Upsert records one at a time. Returns how many were written.

        A failing record is logged and skipped. If every record fails the
        store is considered unavailable.
        """
        written = failed = 0
        last_err: Exception | None = None
        for record in records:
            try:
                self.upsert_one(partition, record)
                written += 1
            except (StorageUnavailable, ValueError, TypeError) as e:
                failed += 1
                last_err = e
                log.warning("Skipping %s record %r: %s", partition, record.get(self._partition(partition).key), e)
        if failed and not written and isinstance(last_err, StorageUnavailable):
            raise last_err
        return written

    def replace_all(self, partition: str, records: Iterable[dict]) -> int:
        """Swap the whole partition for ``records`` in one transaction."""
        part = self._partition(partition)
        rows = [part.model(**self._clean(part, r)) for r in records]
        with self._session() as s:
            s.execute(delete(part.model))
            s.add_all(rows)
        return len(rows)

    def delete(self, partition: str, key) -> bool:
        part = self._partition(partition)
        with self._session() as s:
            obj = s.get(part.model, key)
            if obj is None:
                return False
            s.delete(obj)
            return True

    def delete_many(self, partition: str, keys: Iterable) -> int:
        part = self._partition(partition)
        keys = list(keys)
        if not keys:
            return 0
        with self._session() as s:
            result = s.execute(delete(part.model).where(getattr(part.model, part.key).in_(keys)))
            return result.rowcount or 0

    def clear(self, partition: str) -> int:
        part = self._partition(partition)
        with self._session() as s:
            result = s.execute(delete(part.model))
            return result.rowcount or 0

    def clear_all(self) -> None:
        for name in PARTITIONS:
            self.clear(name)
        log.info("Local store cleared")

    # ── reads ────────────────────────────────────────────────────────

    def get(self, partition: str, key) -> dict | None:
        part = self._partition(partition)
        with self._session() as s:
            obj = s.get(part.model, key)
            return _to_dict(obj) if obj is not None else None

    def get_all(self, partition: str) -> list[dict]:
        part = self._partition(partition)
        with self._session() as s:
            rows = s.execute(self._ordered(part, select(part.model))).scalars().all()
            return [_to_dict(r) for r in rows]

    def get_matching(self, partition: str, index: str, **params) -> list[dict]:
        """All records matching a named secondary predicate, e.g. ``unsynced``."""
        part = self._partition(partition)
        stmt = select(part.model).where(self._where(part, index, params))
        with self._session() as s:
            rows = s.execute(self._ordered(part, stmt)).scalars().all()
            return [_to_dict(r) for r in rows]

    def count(self, partition: str, index: str | None = None, **params) -> int:
        part = self._partition(partition)
        stmt = select(func.count()).select_from(part.model)
        if index:
            stmt = stmt.where(self._where(part, index, params))
        with self._session() as s:
            return s.execute(stmt).scalar_one()

    def counts(self) -> dict[str, int]:
        """Record count per partition, for diagnostics."""
        return {name: self.count(name) for name in PARTITIONS}

    # ── settings helpers ─────────────────────────────────────────────

    def get_setting(self, key: str, default=None):
        row = self.get("settings", key)
        if row is None or row["value"] is None:
            return default
        return row["value"]

    def set_setting(self, key: str, value) -> None:
        self.upsert_one("settings", {"key": key, "value": value})
