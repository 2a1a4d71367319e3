"""
schemas/orders.py — Pydantic models for sales, local orders and upload payloads

Business Rules:
- A sale needs at least one line item
- Quantity must be > 0, unit price must be >= 0
- Product name is denormalized at capture time and never empty
- Discount is non-negative and cannot exceed subtotal + tax
- Line total_price is always unit_price x quantity

Called by: services/order_capture.py, services/upload.py, routers/orders.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PLACEHOLDER_PRODUCT_NAME = "Unnamed product"


def money(v: float) -> float:
    return round(float(v), 2)


# ── Sale input ───────────────────────────────────────────────────────


class OrderItemIn(BaseModel):
    product_id: int | None = None
    product_name: str | None = None
    quantity: float
    unit_price: float
    total_price: float | None = None
    is_service: bool = False

    @field_validator("product_name")
    @classmethod
    def name_or_placeholder(cls, v: str | None) -> str:
        v = (v or "").strip()
        return v or PLACEHOLDER_PRODUCT_NAME

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Quantity must be greater than 0")
        return v

    @field_validator("unit_price")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Unit price cannot be negative")
        return v

    @model_validator(mode="after")
    def line_total(self) -> "OrderItemIn":
        self.product_name = self.product_name or PLACEHOLDER_PRODUCT_NAME
        self.total_price = money(self.unit_price * self.quantity)
        return self


class SaleIn(BaseModel):
    """A completed (or in-progress) sale handed over by the checkout UI."""

    items: list[OrderItemIn] = Field(min_length=1)
    customer_id: int | None = None
    payment_method: str = "cash"
    payment_status: str = "completed"
    status: Literal["completed", "pending"] = "completed"
    discount_amount: float = 0
    tax_rate: float | None = None

    @field_validator("discount_amount")
    @classmethod
    def discount_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Discount cannot be negative")
        return v

    @field_validator("tax_rate")
    @classmethod
    def tax_rate_range(cls, v: float | None) -> float | None:
        if v is not None and not 0 <= v <= 1:
            raise ValueError("Tax rate must be between 0 and 1")
        return v


class OrderAmend(BaseModel):
    """Changes allowed on a not-yet-synced local order."""

    items: list[OrderItemIn] | None = Field(default=None, min_length=1)
    customer_id: int | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    status: Literal["completed", "pending"] | None = None
    discount_amount: float | None = Field(default=None, ge=0)
    tax_rate: float | None = Field(default=None, ge=0, le=1)


# ── Local order view ─────────────────────────────────────────────────


class LocalOrderOut(BaseModel):
    id: str
    order_number: str
    customer_id: int | None = None
    subtotal: float
    tax_amount: float
    tax_rate: float | None = None
    discount_amount: float
    total_amount: float
    payment_method: str | None = None
    payment_status: str | None = None
    status: str | None = None
    items: list[dict] = []
    synced: bool = False
    version: int = 1
    created_at: datetime | None = None
    last_modified: datetime | None = None
    created_by: str | None = None
    sync_attempts: int = 0


# ── Server wire formats ──────────────────────────────────────────────


class ServerOrder(BaseModel):
    """The server's snapshot of an order, from the existence check."""

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    order_number: str | None = None
    total_amount: float | None = None
    status: str | None = None
    payment_status: str | None = None
    version: int = 1

    @field_validator("version", mode="before")
    @classmethod
    def default_version(cls, v):
        return v or 1


class OrderUploadPayload(BaseModel):
    """Body POSTed to the order ingestion endpoint."""

    customer_id: int | None = None
    subtotal: float
    tax_amount: float
    discount_amount: float
    total_amount: float
    payment_method: str | None = None
    payment_status: str | None = None
    status: str | None = None
    items: list[dict]
    offline_id: str
    created_at: str | None = None
    version: int = 1
    device_id: str
    sync_timeline: list[dict] = []

    @classmethod
    def from_order(cls, order: dict, device_id: str, timeline: list[dict]) -> "OrderUploadPayload":
        created = order.get("created_at")
        return cls(
            customer_id=order.get("customer_id"),
            subtotal=order["subtotal"],
            tax_amount=order["tax_amount"],
            discount_amount=order["discount_amount"],
            total_amount=order["total_amount"],
            payment_method=order.get("payment_method"),
            payment_status=order.get("payment_status"),
            status=order.get("status"),
            items=order.get("items") or [],
            offline_id=order["id"],
            created_at=created.isoformat() if isinstance(created, datetime) else created,
            version=order.get("version") or 1,
            device_id=device_id,
            sync_timeline=timeline,
        )


class UploadResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = False
    order_number: str | None = None
    error: str | None = None
