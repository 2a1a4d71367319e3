"""
services/order_capture.py — Durable local order capture

Turns a completed sale into a LocalOrder in the orders partition. Never
touches the network, so it works the same online and offline.

Business Rules:
- subtotal = sum(unit_price x quantity); tax = subtotal x tax_rate
- total = subtotal + tax - discount, and may not go negative
- Order id is a random UUID; order number is OFF-<6 digits>, unique locally
- New orders start synced=False, version=1, sync_attempts=0
- Amending bumps version and last_modified; synced orders are locked

Called by: services/orchestrator.py, routers/orders.py
Depends on: store.py, services/event_log.py, schemas/orders.py
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from ..config import settings as default_settings
from ..exceptions import OrderLocked, OrderNotFound
from ..schemas import OrderAmend, SaleIn
from ..schemas.orders import money

log = logging.getLogger("possync.capture")


def compute_totals(items: list[dict], tax_rate: float, discount: float) -> dict:
    subtotal = money(sum(i["unit_price"] * i["quantity"] for i in items))
    tax_amount = money(subtotal * tax_rate)
    total = money(subtotal + tax_amount - discount)
    if total < 0:
        raise ValueError(f"Discount {discount} exceeds order value {subtotal + tax_amount}")
    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": money(discount),
        "total_amount": total,
    }


class OrderCapture:
    def __init__(self, store, event_log, device_id: str, settings=None,
                 clock: Callable[[], datetime] | None = None):
        self.store = store
        self.events = event_log
        self.device_id = device_id
        self.settings = settings or default_settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def tax_rate(self) -> float:
        """Mirrored tax rate, or the configured default."""
        rate = self.store.get_setting("tax_rate")
        try:
            return float(rate) if rate is not None else self.settings.default_tax_rate
        except (TypeError, ValueError):
            return self.settings.default_tax_rate

    def next_order_number(self) -> str:
        seq = int(self._clock().timestamp() * 1000) % 1_000_000
        while True:
            number = f"{self.settings.order_number_prefix}-{seq:06d}"
            if not self.store.count("orders", "order_number", order_number=number):
                return number
            seq = (seq + 1) % 1_000_000

    def capture(self, sale: SaleIn | dict) -> dict:
        """Persist a sale as a new unsynced local order and return it."""
        if not isinstance(sale, SaleIn):
            sale = SaleIn.model_validate(sale)

        items = [item.model_dump() for item in sale.items]
        rate = sale.tax_rate if sale.tax_rate is not None else self.tax_rate()
        totals = compute_totals(items, rate, sale.discount_amount)
        now = self._clock()

        order = {
            "id": str(uuid.uuid4()),
            "order_number": self.next_order_number(),
            "customer_id": sale.customer_id,
            **totals,
            "tax_rate": rate,
            "payment_method": sale.payment_method,
            "payment_status": sale.payment_status,
            "status": sale.status,
            "items": items,
            "synced": False,
            "version": 1,
            "created_at": now,
            "last_modified": now,
            "created_by": self.device_id,
            "sync_attempts": 0,
        }
        saved = self.store.upsert_one("orders", order)
        self.events.record(
            saved["id"], "created",
            order_number=saved["order_number"], total_amount=saved["total_amount"],
        )
        log.info(f"Captured order {saved['order_number']} ({saved['id']}) total={saved['total_amount']}")
        return saved

    def amend(self, order_id: str, changes: OrderAmend | dict) -> dict:
        """Change a not-yet-synced order; totals are recomputed."""
        if not isinstance(changes, OrderAmend):
            changes = OrderAmend.model_validate(changes)
        order = self.store.get("orders", order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order["synced"]:
            raise OrderLocked(f"Order {order_id} is already synced")

        patch = changes.model_dump(exclude_unset=True)
        items = patch.pop("items", None)
        rate = patch.pop("tax_rate", None)
        discount = patch.pop("discount_amount", None)
        if items is not None or rate is not None or discount is not None:
            if rate is None:
                rate = order["tax_rate"] if order.get("tax_rate") is not None else self.tax_rate()
            order["items"] = items if items is not None else order["items"]
            order["tax_rate"] = rate
            order.update(compute_totals(
                order["items"], rate,
                discount if discount is not None else order["discount_amount"],
            ))
        order.update(patch)
        order["version"] = (order["version"] or 1) + 1
        order["last_modified"] = self._clock()

        saved = self.store.upsert_one("orders", order)
        self.events.record(order_id, "modified", version=saved["version"], fields=sorted(changes.model_fields_set))
        return saved
