"""Sync bookkeeping models — conflict records and per-order event timelines."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String

from ..database import UTCDateTime
from .base import Base


class ConflictRecord(Base):
    """A local order and the server's snapshot of it that disagree."""

    __tablename__ = "conflicts"
    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), nullable=False, index=True)
    local_order = Column(JSON, nullable=False)
    server_order = Column(JSON, nullable=False)
    conflict_fields = Column(JSON, default=list)
    strategy = Column(String(30), nullable=False)
    local_version = Column(Integer, default=1)
    server_version = Column(Integer, default=1)
    detected_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(UTCDateTime)
    resolution = Column(String(30))  # keep_local | keep_server

    __table_args__ = (Index("ix_conflicts_resolved", "resolved", "detected_at"),)


class SyncLogEntry(Base):
    """One immutable lifecycle event of one order."""

    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), nullable=False)
    event_type = Column(String(30), nullable=False)
    device_id = Column(String(64))
    details = Column(JSON, default=dict)
    timestamp = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_sync_logs_order_id", "order_id", "id"),)
