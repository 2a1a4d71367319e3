"""Sync event log — append-only, per-order lifecycle timeline.

Events live in the sync_logs partition, so timelines survive restarts.
Each order keeps at most ``window`` events; the oldest go first.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from ..schemas import SyncEvent

log = logging.getLogger("possync.events")


class SyncEventLog:
    def __init__(self, store, device_id: str, window: int = 50, clock: Callable[[], datetime] | None = None):
        self.store = store
        self.device_id = device_id
        self.window = window
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(self, order_id: str, event_type: str, **details) -> SyncEvent:
        event = SyncEvent(
            timestamp=self._clock(),
            event_type=event_type,
            device_id=self.device_id,
            details=details,
        )
        self.store.upsert_one(
            "sync_logs",
            {
                "order_id": order_id,
                "event_type": event.event_type,
                "device_id": event.device_id,
                "details": event.details,
                "timestamp": event.timestamp,
            },
        )
        self._trim(order_id)
        log.debug("Order %s: %s %s", order_id, event_type, details)
        return event

    def _trim(self, order_id: str) -> None:
        rows = self.store.get_matching("sync_logs", "by_order", order_id=order_id)
        excess = len(rows) - self.window
        if excess > 0:
            self.store.delete_many("sync_logs", [r["id"] for r in rows[:excess]])

    def timeline(self, order_id: str) -> list[SyncEvent]:
        rows = self.store.get_matching("sync_logs", "by_order", order_id=order_id)
        return [
            SyncEvent(
                timestamp=r["timestamp"],
                event_type=r["event_type"],
                device_id=r["device_id"],
                details=r["details"] or {},
            )
            for r in rows
        ]

    def wire_timeline(self, order_id: str) -> list[dict]:
        """Timeline in the JSON shape sent with an upload."""
        return [e.to_wire() for e in self.timeline(order_id)]
