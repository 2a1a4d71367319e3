"""
services/conflicts.py — Conflict detection and resolution

Compares a pending local order with the server's snapshot of the same order
and decides which version survives.

Business Rules:
- Only total_amount, status and payment_status are compared
- conflict_fields lists exactly the mismatched fields, in that order
- first_write_wins: server version is authoritative, local copy is retired
- last_write_wins: local version is uploaded with a version above the server's
- manual: a ConflictRecord (resolved=False) parks the order until an
  operator picks keep_local or keep_server
- Every applied resolution logs conflict_resolved and stamps last_resolution_at

Called by: services/upload.py, services/orchestrator.py
Depends on: store.py, services/event_log.py
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from ..exceptions import ConflictNotFound
from ..schemas import ServerOrder

log = logging.getLogger("possync.conflicts")

CONFLICT_FIELDS = ("total_amount", "status", "payment_status")


class ConflictStrategy(str, Enum):
    FIRST_WRITE_WINS = "first_write_wins"
    LAST_WRITE_WINS = "last_write_wins"
    MANUAL = "manual"


class Outcome(str, Enum):
    UPLOAD = "upload"              # send the (resolved) local order
    ADOPT_SERVER = "adopt_server"  # server keeps its version, drop local copy
    PARK = "park"                  # wait for an operator decision


class ManualChoice(str, Enum):
    KEEP_LOCAL = "keep_local"
    KEEP_SERVER = "keep_server"


@dataclass
class ConflictInfo:
    order_id: str
    local_version: int
    server_version: int
    conflict_fields: list[str]
    strategy: ConflictStrategy


@dataclass
class Resolution:
    outcome: Outcome
    order: dict
    conflict_id: str | None = None
    notes: dict = field(default_factory=dict)


def _norm(name: str, value):
    if name == "total_amount" and value is not None:
        try:
            return round(float(value), 2)
        except (TypeError, ValueError):
            return value
    return value


def detect_conflict(local: dict, server: ServerOrder | dict, strategy: ConflictStrategy) -> ConflictInfo | None:
    """Return the mismatch between two versions of one order, or None."""
    snapshot = server.model_dump() if isinstance(server, ServerOrder) else dict(server)
    fields = [f for f in CONFLICT_FIELDS if _norm(f, local.get(f)) != _norm(f, snapshot.get(f))]
    if not fields:
        return None
    return ConflictInfo(
        order_id=local["id"],
        local_version=local.get("version") or 1,
        server_version=snapshot.get("version") or 1,
        conflict_fields=fields,
        strategy=ConflictStrategy(strategy),
    )


class ConflictResolver:
    def __init__(self, store, event_log, strategy: ConflictStrategy | str = ConflictStrategy.FIRST_WRITE_WINS,
                 clock: Callable[[], datetime] | None = None):
        self.store = store
        self.events = event_log
        self.strategy = ConflictStrategy(strategy)
        self.last_resolution_at: datetime | None = None
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def detect(self, local: dict, server: ServerOrder | dict) -> ConflictInfo | None:
        return detect_conflict(local, server, self.strategy)

    def resolve(self, conflict: ConflictInfo, local: dict, server: ServerOrder | dict) -> Resolution:
        snapshot = server.model_dump() if isinstance(server, ServerOrder) else dict(server)
        self.events.record(
            conflict.order_id, "conflict_detected",
            conflict_fields=conflict.conflict_fields, strategy=conflict.strategy.value,
        )
        log.warning(
            f"Conflict on order {conflict.order_id}: {conflict.conflict_fields} "
            f"(strategy={conflict.strategy.value})"
        )

        if conflict.strategy is ConflictStrategy.FIRST_WRITE_WINS:
            resolved = dict(local)
            for f in conflict.conflict_fields:
                resolved[f] = snapshot.get(f)
            resolved["version"] = conflict.server_version
            resolved["synced"] = True
            resolved["last_modified"] = self._clock()
            resolved = self.store.upsert_one("orders", resolved)
            self._resolved(conflict.order_id, conflict.strategy.value)
            return Resolution(Outcome.ADOPT_SERVER, resolved,
                              notes={"server_order_number": snapshot.get("order_number")})

        if conflict.strategy is ConflictStrategy.LAST_WRITE_WINS:
            resolved = dict(local)
            resolved["version"] = max(conflict.local_version, conflict.server_version) + 1
            resolved["last_modified"] = self._clock()
            resolved = self.store.upsert_one("orders", resolved)
            self._resolved(conflict.order_id, conflict.strategy.value)
            return Resolution(Outcome.UPLOAD, resolved)

        if conflict.strategy is ConflictStrategy.MANUAL:
            record = self.store.upsert_one("conflicts", {
                "id": str(uuid.uuid4()),
                "order_id": conflict.order_id,
                "local_order": _jsonable(local),
                "server_order": _jsonable(snapshot),
                "conflict_fields": conflict.conflict_fields,
                "strategy": conflict.strategy.value,
                "local_version": conflict.local_version,
                "server_version": conflict.server_version,
                "detected_at": self._clock(),
                "resolved": False,
            })
            log.info(f"Order {conflict.order_id} parked for manual resolution (conflict {record['id']})")
            return Resolution(Outcome.PARK, local, conflict_id=record["id"])

        raise ValueError(f"Unhandled conflict strategy: {conflict.strategy}")

    # ── Manual resolution bookkeeping ────────────────────────────────

    def unresolved_for(self, order_id: str) -> dict | None:
        rows = self.store.get_matching("conflicts", "unresolved_by_order", order_id=order_id)
        return rows[0] if rows else None

    def mark_resolved(self, conflict_id: str, choice: ManualChoice) -> dict:
        record = self.store.get("conflicts", conflict_id)
        if record is None:
            raise ConflictNotFound(conflict_id)
        record["resolved"] = True
        record["resolved_at"] = self._clock()
        record["resolution"] = ManualChoice(choice).value
        record = self.store.upsert_one("conflicts", record)
        self._resolved(record["order_id"], ConflictStrategy.MANUAL.value, choice=record["resolution"])
        return record

    def _resolved(self, order_id: str, strategy: str, **details) -> None:
        self.last_resolution_at = self._clock()
        self.events.record(order_id, "conflict_resolved", strategy=strategy, **details)


def _jsonable(record: dict) -> dict:
    return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in record.items()}
