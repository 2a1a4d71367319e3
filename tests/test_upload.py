"""
test_upload.py — Tests for the upload pipeline against the fake server.

Covers the happy path, skip rules, existence-check outcomes, conflict
handling per strategy, rejection, per-order failure isolation, and the
no-duplicate-upload guarantee.

Called by: pytest
Depends on: possync/services/upload.py, tests/conftest.py (FakeServer)
"""

import pytest


def _capture_in_order(orch, make_sale, clock, n):
    orders = []
    for i in range(n):
        orders.append(orch.capture_order(make_sale(items=[{"quantity": 1, "unit_price": 10.0 + i}])))
        clock.advance(seconds=1)
    return orders


# ── Happy path ───────────────────────────────────────────────────────


class TestUpload:
    @pytest.mark.asyncio
    async def test_new_order_uploaded_and_removed(self, orchestrator, store, server, make_sale):
        order = orchestrator.capture_order(make_sale())

        report = await orchestrator.uploader.run()

        assert report.uploaded == [order["id"]]
        assert store.get("orders", order["id"]) is None
        body = server.posted[0]
        assert body["offline_id"] == order["id"]
        assert body["device_id"] == orchestrator.device_id
        assert body["total_amount"] == 22.0
        assert [e["event_type"] for e in body["sync_timeline"]] == ["created", "sync_attempted"]

    @pytest.mark.asyncio
    async def test_sync_success_event_kept_after_delete(self, orchestrator, make_sale):
        order = orchestrator.capture_order(make_sale())
        await orchestrator.uploader.run()

        events = orchestrator.timeline(order["id"])
        assert events[-1].event_type == "sync_success"
        assert events[-1].details["server_order_number"] == "ORD-0001"

    @pytest.mark.asyncio
    async def test_no_duplicate_upload_on_rerun(self, orchestrator, server, make_sale):
        orchestrator.capture_order(make_sale())
        await orchestrator.uploader.run()
        await orchestrator.uploader.run()
        assert len(server.posted) == 1

    @pytest.mark.asyncio
    async def test_crash_after_ack_is_purged_not_reposted(self, orchestrator, store, server, make_sale):
        """An order left synced=True by a crash is dropped at the next pass."""
        order = orchestrator.capture_order(make_sale())
        store.upsert_one("orders", {**order, "synced": True})

        await orchestrator.uploader.run()

        assert store.get("orders", order["id"]) is None
        assert server.posted == []

    @pytest.mark.asyncio
    async def test_pending_orders_are_not_uploaded(self, orchestrator, store, server, make_sale):
        order = orchestrator.capture_order(make_sale(status="pending", payment_status="pending"))

        report = await orchestrator.uploader.run()

        assert report.skipped == [order["id"]]
        assert server.posted == []
        assert store.get("orders", order["id"]) is not None


# ── Existence check outcomes ─────────────────────────────────────────


class TestExistenceCheck:
    @pytest.mark.asyncio
    async def test_unexpected_status_uploads_anyway(self, orchestrator, server, make_sale):
        server.check_status = 500
        order = orchestrator.capture_order(make_sale())

        report = await orchestrator.uploader.run()

        assert report.uploaded == [order["id"]]
        assert len(server.posted) == 1

    @pytest.mark.asyncio
    async def test_non_object_check_body_uploads_anyway(self, orchestrator, server, make_sale):
        server.check_body = [{"id": "x"}]
        order = orchestrator.capture_order(make_sale())

        report = await orchestrator.uploader.run()

        assert report.uploaded == [order["id"]]
        assert len(server.posted) == 1

    @pytest.mark.asyncio
    async def test_network_error_fail_safe_holds_order(self, orchestrator, store, server, make_sale):
        server.fail_paths.add("/api/orders/check/")
        order = orchestrator.capture_order(make_sale())

        report = await orchestrator.uploader.run()

        assert report.failed == [order["id"]]
        assert report.network_errors == 1
        assert server.posted == []
        assert store.get("orders", order["id"])["sync_attempts"] == 1

    @pytest.mark.asyncio
    async def test_network_error_fail_open_uploads(self, make_orchestrator, server, make_sale):
        orch = make_orchestrator(existence_check_policy="fail_open")
        server.fail_paths.add("/api/orders/check/")
        order = orch.capture_order(make_sale())

        report = await orch.uploader.run()

        assert report.uploaded == [order["id"]]
        assert report.network_errors == 1
        assert len(server.posted) == 1


# ── Conflicts ────────────────────────────────────────────────────────


def _server_copy(order, **overrides):
    data = {
        "id": order["id"], "order_number": "ORD-0007", "total_amount": order["total_amount"],
        "status": "completed", "payment_status": "completed", "version": 1,
    }
    data.update(overrides)
    return data


class TestConflicts:
    @pytest.mark.asyncio
    async def test_first_write_wins_adopts_server_and_does_not_upload(self, orchestrator, store, server, make_sale):
        order = orchestrator.capture_order(make_sale())
        server.orders[order["id"]] = _server_copy(order, status="pending")

        report = await orchestrator.uploader.run()

        assert report.superseded == [order["id"]]
        assert server.posted == []
        assert store.get("orders", order["id"]) is None
        events = [e.event_type for e in orchestrator.timeline(order["id"])]
        assert events[-2:] == ["conflict_detected", "conflict_resolved"]

    @pytest.mark.asyncio
    async def test_last_write_wins_uploads_with_higher_version(self, make_orchestrator, server, make_sale):
        orch = make_orchestrator(conflict_strategy="last_write_wins")
        order = orch.capture_order(make_sale())
        server.orders[order["id"]] = _server_copy(order, total_amount=999.0, version=3)

        report = await orch.uploader.run()

        assert report.uploaded == [order["id"]]
        assert server.posted[0]["version"] == 4
        assert server.posted[0]["total_amount"] == order["total_amount"]

    @pytest.mark.asyncio
    async def test_manual_parks_order_until_resolved(self, make_orchestrator, store, server, make_sale):
        orch = make_orchestrator(conflict_strategy="manual")
        order = orch.capture_order(make_sale())
        server.orders[order["id"]] = _server_copy(order, status="pending")

        first = await orch.uploader.run()
        checks_after_first = server.calls_to("GET", "/api/orders/check/")
        second = await orch.uploader.run()

        assert first.parked == second.parked == [order["id"]]
        assert server.posted == []
        assert store.get("orders", order["id"])["synced"] is False
        assert store.count("conflicts", "unresolved") == 1
        assert server.calls_to("GET", "/api/orders/check/") == checks_after_first


# ── Failures ─────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_rejected_order_stays_local(self, orchestrator, store, server, make_sale):
        server.reject = "Invalid customer"
        order = orchestrator.capture_order(make_sale())

        report = await orchestrator.uploader.run()

        assert report.rejected == [order["id"]]
        assert report.network_errors == 0
        kept = store.get("orders", order["id"])
        assert kept["synced"] is False
        assert kept["sync_attempts"] == 1
        last = orchestrator.timeline(order["id"])[-1]
        assert last.event_type == "sync_failed"
        assert last.details["reason"] == "Invalid customer"

    @pytest.mark.asyncio
    async def test_one_network_failure_does_not_stop_the_pass(self, orchestrator, store, server, make_sale, clock):
        orders = _capture_in_order(orchestrator, make_sale, clock, 5)
        third = orders[2]["id"]
        server.fail_uploads.add(third)

        report = await orchestrator.uploader.run()

        assert report.uploaded == [o["id"] for o in orders if o["id"] != third]
        assert report.failed == [third]
        assert report.network_errors == 1
        remaining = store.get_matching("orders", "unsynced")
        assert [o["id"] for o in remaining] == [third]
        assert remaining[0]["sync_attempts"] == 1

    @pytest.mark.asyncio
    async def test_attempts_accumulate_across_passes(self, orchestrator, store, server, make_sale):
        order = orchestrator.capture_order(make_sale())
        server.fail_uploads.add(order["id"])

        await orchestrator.uploader.run()
        await orchestrator.uploader.run()

        assert store.get("orders", order["id"])["sync_attempts"] == 2
