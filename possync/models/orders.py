"""Locally originated sales awaiting upload to the server of record."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Float, Index, Integer, String

from ..database import UTCDateTime
from .base import Base


class LocalOrder(Base):
    __tablename__ = "orders"
    id = Column(String(36), primary_key=True)  # client-generated UUID
    order_number = Column(String(50), nullable=False, index=True)
    customer_id = Column(Integer)
    subtotal = Column(Float, nullable=False, default=0)
    tax_amount = Column(Float, nullable=False, default=0)
    tax_rate = Column(Float)  # rate the totals were computed with
    discount_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    payment_method = Column(String(30), default="cash")
    payment_status = Column(String(30), default="completed")
    status = Column(String(30), default="completed")  # completed | pending
    items = Column(JSON, default=list)
    synced = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    last_modified = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    created_by = Column(String(64))  # device id
    sync_attempts = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_orders_synced_created", "synced", "created_at"),
    )
