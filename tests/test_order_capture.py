"""
test_order_capture.py — Tests for local order capture and amendment.

Called by: pytest
Depends on: possync/services/order_capture.py, possync/schemas/orders.py
"""

import re

import pytest
from pydantic import ValidationError

from possync.exceptions import OrderLocked, OrderNotFound
from possync.schemas import SaleIn
from possync.schemas.orders import PLACEHOLDER_PRODUCT_NAME
from possync.services.event_log import SyncEventLog
from possync.services.order_capture import OrderCapture, compute_totals


@pytest.fixture()
def capture(store, cfg, clock):
    events = SyncEventLog(store, "dev-1", clock=clock)
    return OrderCapture(store, events, "dev-1", cfg, clock)


# ── Totals ───────────────────────────────────────────────────────────


class TestComputeTotals:
    def test_basic_totals(self):
        items = [{"unit_price": 10.0, "quantity": 2}, {"unit_price": 2.5, "quantity": 1}]
        totals = compute_totals(items, 0.1, 1.0)
        assert totals == {
            "subtotal": 22.5,
            "tax_amount": 2.25,
            "discount_amount": 1.0,
            "total_amount": 23.75,
        }

    def test_rounds_to_cents(self):
        totals = compute_totals([{"unit_price": 0.1, "quantity": 3}], 0.1, 0)
        assert totals["subtotal"] == 0.3
        assert totals["tax_amount"] == 0.03
        assert totals["total_amount"] == 0.33

    def test_discount_larger_than_order_rejected(self):
        with pytest.raises(ValueError):
            compute_totals([{"unit_price": 5.0, "quantity": 1}], 0.0, 6.0)


# ── Sale validation ──────────────────────────────────────────────────


class TestSaleValidation:
    def test_requires_items(self):
        with pytest.raises(ValidationError):
            SaleIn(items=[])

    @pytest.mark.parametrize("qty", [0, -1])
    def test_quantity_must_be_positive(self, qty):
        with pytest.raises(ValidationError):
            SaleIn(items=[{"quantity": qty, "unit_price": 1.0}])

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            SaleIn(items=[{"quantity": 1, "unit_price": -1.0}])

    def test_missing_name_gets_placeholder_and_line_total(self):
        sale = SaleIn(items=[{"quantity": 3, "unit_price": 1.5, "product_name": "  "}])
        item = sale.items[0]
        assert item.product_name == PLACEHOLDER_PRODUCT_NAME
        assert item.total_price == 4.5

    def test_tax_rate_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            SaleIn(items=[{"quantity": 1, "unit_price": 1.0}], tax_rate=1.5)


# ── Capture ──────────────────────────────────────────────────────────


class TestCapture:
    def test_capture_persists_new_unsynced_order(self, capture, store, make_sale, clock):
        order = capture.capture(make_sale())

        stored = store.get("orders", order["id"])
        assert stored["synced"] is False
        assert stored["version"] == 1
        assert stored["sync_attempts"] == 0
        assert stored["created_by"] == "dev-1"
        assert stored["created_at"] == clock.now
        assert stored["total_amount"] == 22.0
        assert re.fullmatch(r"OFF-\d{6}", stored["order_number"])

    def test_capture_uses_mirrored_tax_rate(self, capture, store, make_sale):
        store.set_setting("tax_rate", 0.2)
        order = capture.capture(make_sale())
        assert order["tax_amount"] == 4.0
        assert order["total_amount"] == 24.0

    def test_explicit_tax_rate_wins(self, capture, store, make_sale):
        store.set_setting("tax_rate", 0.2)
        order = capture.capture(make_sale(tax_rate=0.0))
        assert order["total_amount"] == 20.0

    def test_capture_records_created_event(self, capture, make_sale):
        order = capture.capture(make_sale())
        timeline = capture.events.timeline(order["id"])
        assert [e.event_type for e in timeline] == ["created"]
        assert timeline[0].device_id == "dev-1"

    def test_invalid_sale_writes_nothing(self, capture, store, make_sale):
        with pytest.raises(ValueError):
            capture.capture(make_sale(discount_amount=1000))
        assert store.count("orders") == 0

    def test_order_numbers_follow_clock_and_stay_unique(self, capture, make_sale, clock):
        a = capture.capture(make_sale())
        b = capture.capture(make_sale())
        assert a["order_number"] == "OFF-400000"
        assert b["order_number"] == "OFF-400001"
        assert a["id"] != b["id"]

    def test_order_number_free_again_after_delete(self, capture, store, make_sale):
        a = capture.capture(make_sale())
        store.delete("orders", a["id"])
        assert capture.capture(make_sale())["order_number"] == a["order_number"]


# ── Amend ────────────────────────────────────────────────────────────


class TestAmend:
    def test_amend_recomputes_and_bumps_version(self, capture, make_sale, clock):
        order = capture.capture(make_sale())
        clock.advance(minutes=2)

        amended = capture.amend(order["id"], {"items": [{"quantity": 1, "unit_price": 50.0}]})

        assert amended["version"] == 2
        assert amended["subtotal"] == 50.0
        assert amended["total_amount"] == 55.0
        assert amended["last_modified"] == clock.now
        events = [e.event_type for e in capture.events.timeline(order["id"])]
        assert events == ["created", "modified"]

    def test_amend_reuses_captured_tax_rate(self, capture, make_sale):
        order = capture.capture(make_sale(items=[{"quantity": 1, "unit_price": 0.05}], tax_rate=0.08))
        assert order["tax_amount"] == 0.0
        assert order["tax_rate"] == 0.08

        amended = capture.amend(order["id"], {"items": [{"quantity": 1, "unit_price": 100.0}]})

        assert amended["tax_amount"] == 8.0
        assert amended["total_amount"] == 108.0

    def test_amend_with_new_tax_rate_stores_it(self, capture, make_sale):
        order = capture.capture(make_sale())
        amended = capture.amend(order["id"], {"tax_rate": 0.2})
        assert amended["tax_rate"] == 0.2
        assert amended["tax_amount"] == 4.0

    def test_amend_status_only_keeps_totals(self, capture, make_sale):
        order = capture.capture(make_sale(status="pending", payment_status="pending"))
        amended = capture.amend(order["id"], {"status": "completed", "payment_status": "completed"})
        assert amended["status"] == "completed"
        assert amended["total_amount"] == order["total_amount"]

    def test_amend_missing_order(self, capture):
        with pytest.raises(OrderNotFound):
            capture.amend("nope", {"status": "completed"})

    def test_amend_synced_order_locked(self, capture, store, make_sale):
        order = capture.capture(make_sale())
        store.upsert_one("orders", {**order, "synced": True})
        with pytest.raises(OrderLocked):
            capture.amend(order["id"], {"status": "pending"})
