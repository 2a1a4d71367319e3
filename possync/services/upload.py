"""
services/upload.py — Upload pipeline for pending local orders

Walks the "unsynced" index and pushes each finalized order to the server's
order ingestion endpoint.

Business Rules:
- Orders still in status "pending" are not finalized and are skipped
- Orders parked behind an unresolved manual conflict are skipped
- Existence check first: 404 -> new order; other non-2xx -> unknown, upload
  anyway; network error -> existence_check_policy (fail_safe skips the order)
- On acknowledged success the order is marked synced, then deleted
- On failure the order stays, sync_attempts += 1, and the pass moves on

Called by: services/orchestrator.py
Depends on: server_client.py, services/conflicts.py, services/event_log.py
"""

import logging

from ..config import settings as default_settings
from ..exceptions import NetworkTransientError, PosSyncError, ServerResponseError, UploadRejected
from ..schemas import OrderUploadPayload, UploadReport, UploadResponse
from .conflicts import Outcome

log = logging.getLogger("possync.upload")


class UploadPipeline:
    def __init__(self, store, client, event_log, resolver, device_id: str, settings=None):
        self.store = store
        self.client = client
        self.events = event_log
        self.resolver = resolver
        self.device_id = device_id
        self.settings = settings or default_settings

    async def run(self) -> UploadReport:
        """One pass over every unsynced order, in the order the store returns them."""
        report = UploadReport()
        self._purge_acknowledged()
        pending = self.store.get_matching("orders", "unsynced")
        if pending:
            log.info(f"Found {len(pending)} unsynced orders to upload")
        for order in pending:
            try:
                await self._process(order, report)
            except PosSyncError as e:
                log.error(f"Order {order['id']} failed during upload pass: {e}")
                self._failed(order, report, str(e))
        log.info(
            "Upload pass done: %d uploaded, %d failed, %d skipped, %d superseded, %d parked",
            len(report.uploaded), len(report.failed), len(report.skipped),
            len(report.superseded), len(report.parked),
        )
        return report

    async def _process(self, order: dict, report: UploadReport) -> None:
        oid = order["id"]
        if order.get("status") == "pending":
            log.debug(f"Skipping non-finalized order {order['order_number']}")
            report.skipped.append(oid)
            return
        if self.resolver.unresolved_for(oid):
            report.parked.append(oid)
            return

        self.events.record(oid, "sync_attempted", order_number=order["order_number"])

        try:
            existing = await self.client.check_order(oid)
        except NetworkTransientError as e:
            report.network_errors += 1
            if self.settings.existence_check_policy == "fail_safe":
                log.warning(f"Existence check for {oid} unreachable, holding order: {e}")
                self._failed(order, report, "existence check unreachable")
                return
            log.warning(f"Existence check for {oid} unreachable, uploading anyway: {e}")
            existing = None
        except ServerResponseError as e:
            log.warning(f"Existence check for {oid} inconclusive ({e.status_code}), uploading anyway")
            existing = None

        if existing is not None:
            conflict = self.resolver.detect(order, existing)
            if conflict:
                resolution = self.resolver.resolve(conflict, order, existing)
                if resolution.outcome is Outcome.PARK:
                    report.parked.append(oid)
                    return
                if resolution.outcome is Outcome.ADOPT_SERVER:
                    self.store.delete("orders", oid)
                    report.superseded.append(oid)
                    return
                order = resolution.order

        try:
            await self.upload(order)
        except NetworkTransientError as e:
            report.network_errors += 1
            self._failed(order, report, str(e))
        except UploadRejected as e:
            report.rejected.append(oid)
            self._failed(order, report, e.error)
        else:
            report.uploaded.append(oid)

    async def upload(self, order: dict) -> UploadResponse:
        """Submit one order; on success mark it synced and drop the local copy."""
        oid = order["id"]
        payload = OrderUploadPayload.from_order(order, self.device_id, self.events.wire_timeline(oid))
        result = await self.client.submit_order(payload)
        if not result.success:
            log.error(f"Server rejected order {order['order_number']}: {result.error}")
            raise UploadRejected(oid, result.error)

        self.store.upsert_one("orders", {**order, "synced": True})
        self.events.record(oid, "sync_success", server_order_number=result.order_number)
        self.store.delete("orders", oid)
        log.info(f"Synced offline order {order['order_number']} -> {result.order_number}")
        return result

    def _failed(self, order: dict, report: UploadReport, reason: str) -> None:
        oid = order["id"]
        report.failed.append(oid)
        try:
            current = self.store.get("orders", oid) or order
            self.store.upsert_one("orders", {**current, "sync_attempts": (current.get("sync_attempts") or 0) + 1})
            self.events.record(oid, "sync_failed", reason=reason)
        except PosSyncError as e:
            log.error(f"Could not record failed attempt for {oid}: {e}")

    def _purge_acknowledged(self) -> None:
        """Drop orders the server acknowledged before a crash cut the delete short."""
        for order in self.store.get_matching("orders", "synced"):
            self.store.delete("orders", order["id"])
            log.info(f"Purged acknowledged order {order['id']}")
