"""
schemas/sync.py — Sync status, events, conflicts and cycle reports

SyncStatus is a projection recomputed by the orchestrator; subscribers get
copies, never the live object.

Called by: services/*, routers/sync.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EventType = Literal[
    "created",
    "modified",
    "sync_attempted",
    "sync_success",
    "sync_failed",
    "conflict_detected",
    "conflict_resolved",
]


class SyncStatus(BaseModel):
    online: bool = False
    last_sync: datetime | None = None
    pending_orders: int = 0
    conflict_count: int = 0
    sync_in_progress: bool = False
    last_conflict_resolution: datetime | None = None


class SyncEvent(BaseModel):
    timestamp: datetime
    event_type: EventType
    device_id: str | None = None
    details: dict = Field(default_factory=dict)

    def to_wire(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "device_id": self.device_id,
            "details": self.details,
        }


class ConflictOut(BaseModel):
    id: str
    order_id: str
    conflict_fields: list[str]
    strategy: str
    local_version: int = 1
    server_version: int = 1
    local_order: dict
    server_order: dict
    detected_at: datetime | None = None
    resolved: bool = False
    resolved_at: datetime | None = None
    resolution: str | None = None


class ConflictResolveIn(BaseModel):
    choice: Literal["keep_local", "keep_server"]


class UploadReport(BaseModel):
    """What one pass of the upload pipeline did, by order id."""

    uploaded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    superseded: list[str] = Field(default_factory=list)
    parked: list[str] = Field(default_factory=list)
    network_errors: int = 0


class CycleReport(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    catalog: dict[str, bool] = Field(default_factory=dict)
    upload: UploadReport = Field(default_factory=UploadReport)
    network_errors: int = 0
