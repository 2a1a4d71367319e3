"""
services/orchestrator.py — Sync Orchestrator

Online/offline state machine that owns the SyncStatus projection, the
status subscribers, and the end-to-end sync cycle.

Business Rules:
- Offline -> Online: restoration pass, then a full cycle (products included)
  with bounded retry
- Online -> Offline: in-progress sales from draft providers are saved as
  pending local orders, subscribers are notified
- A cycle = mirror catalog, upload pending orders, notify subscribers
- Cycles never overlap; a trigger during a running cycle is a no-op
- Retry: only NetworkTransientError, up to sync_max_retries retries with a
  fixed sync_retry_delay_seconds sleep before each; then stop
- Forced sync while offline raises OfflineError immediately
- Subscribers are called synchronously, in registration order, and only
  when the status actually changed

Called by: main.py, services/connectivity.py
Depends on: every other service, store.py, server_client.py
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from pydantic import ValidationError

from ..config import settings as default_settings
from ..device import get_device_id
from ..exceptions import (
    ConflictNotFound,
    ConflictUnresolved,
    NetworkTransientError,
    OfflineError,
    OrderLocked,
    OrderNotFound,
    PosSyncError,
)
from ..schemas import CycleReport, SaleIn, SyncStatus
from .catalog_mirror import CatalogMirror
from .conflicts import ConflictResolver, ConflictStrategy, ManualChoice
from .event_log import SyncEventLog
from .order_capture import OrderCapture
from .upload import UploadPipeline

log = logging.getLogger("possync.sync")

StatusListener = Callable[[SyncStatus], None]
DraftProvider = Callable[[], list]
RestoreHandler = Callable[[list[dict]], None]


class SyncOrchestrator:
    def __init__(
        self,
        store,
        client,
        settings=None,
        *,
        device_id: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings or default_settings
        self.store = store
        self.client = client
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.device_id = device_id or get_device_id(store)

        self.events = SyncEventLog(store, self.device_id, self.settings.timeline_window, self._clock)
        self.capture = OrderCapture(store, self.events, self.device_id, self.settings, self._clock)
        self.resolver = ConflictResolver(store, self.events, self.settings.conflict_strategy, self._clock)
        self.catalog = CatalogMirror(store, client, self.settings.default_tax_rate)
        self.uploader = UploadPipeline(store, client, self.events, self.resolver, self.device_id, self.settings)

        self._status = SyncStatus()
        self._listeners: list[StatusListener] = []
        self._last_published: SyncStatus | None = None
        self._retrying = False
        self._draft_providers: list[DraftProvider] = []
        self._restore_handlers: list[RestoreHandler] = []

        self.refresh_status()

    # ═══════════════════════════════════════════════════════════════════
    #  STATUS
    # ═══════════════════════════════════════════════════════════════════

    @property
    def status(self) -> SyncStatus:
        return self._status.model_copy()

    @property
    def online(self) -> bool:
        return self._status.online

    def subscribe(self, callback: StatusListener) -> Callable[[], None]:
        """Register a status listener. Returns the unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def refresh_status(self) -> SyncStatus:
        """Recompute the counts from the store and notify on change."""
        self._status.pending_orders = self.store.count("orders", "unsynced")
        self._status.conflict_count = self.store.count("conflicts", "unresolved")
        self._status.last_conflict_resolution = self.resolver.last_resolution_at
        self._publish()
        return self.status

    def _publish(self) -> None:
        if self._last_published == self._status:
            return
        snapshot = self.status
        self._last_published = snapshot.model_copy()
        for callback in list(self._listeners):
            try:
                callback(snapshot.model_copy())
            except Exception:
                log.exception("Sync status listener failed")

    # ═══════════════════════════════════════════════════════════════════
    #  ORDERS
    # ═══════════════════════════════════════════════════════════════════

    def capture_order(self, sale: SaleIn | dict) -> dict:
        order = self.capture.capture(sale)
        self.refresh_status()
        return order

    def amend_order(self, order_id: str, changes) -> dict:
        """Change a local order. Orders parked behind a manual conflict are frozen."""
        parked = self.resolver.unresolved_for(order_id)
        if parked:
            raise ConflictUnresolved(order_id, parked["id"])
        order = self.capture.amend(order_id, changes)
        self.refresh_status()
        return order

    def discard_order(self, order_id: str) -> None:
        """Operator drops a local order that will never be uploaded."""
        order = self.store.get("orders", order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if order["synced"]:
            raise OrderLocked(f"Order {order_id} is already synced")
        self.store.delete("orders", order_id)
        log.info(f"Discarded local order {order['order_number']}")
        self.refresh_status()

    def local_orders(self) -> list[dict]:
        return self.store.get_matching("orders", "unsynced")

    def timeline(self, order_id: str):
        return self.events.timeline(order_id)

    # ═══════════════════════════════════════════════════════════════════
    #  CONNECTIVITY TRANSITIONS
    # ═══════════════════════════════════════════════════════════════════

    def add_draft_provider(self, provider: DraftProvider) -> None:
        """``provider()`` returns the in-progress sales to keep when going offline."""
        self._draft_providers.append(provider)

    def add_restore_handler(self, handler: RestoreHandler) -> None:
        """``handler(orders)`` receives pending local orders when back online."""
        self._restore_handlers.append(handler)

    async def set_online(self, online: bool) -> None:
        if online == self._status.online:
            return
        if online:
            await self._went_online()
        else:
            self._went_offline()

    async def _went_online(self) -> None:
        log.info("Connection restored")
        self._status.online = True
        self._publish()
        self.restore_offline_orders()
        try:
            await self.sync_with_retry(include_products=True)
        except NetworkTransientError as e:
            log.error(f"Sync after reconnect gave up: {e}")
        except OfflineError:
            log.info("Went offline again before the reconnect sync finished")

    def _went_offline(self) -> None:
        log.warning("Connection lost, switching to offline mode")
        self._status.online = False
        self._publish()
        self.save_incomplete_orders()
        self.refresh_status()

    def save_incomplete_orders(self) -> list[dict]:
        """Capture every in-progress sale as a pending local order."""
        saved = []
        for provider in self._draft_providers:
            try:
                drafts = provider() or []
            except Exception:
                log.exception("Draft provider failed")
                continue
            for draft in drafts:
                data = draft.model_dump() if isinstance(draft, SaleIn) else dict(draft)
                data.update(status="pending", payment_status="pending")
                try:
                    saved.append(self.capture.capture(data))
                except (ValidationError, ValueError) as e:
                    log.warning(f"Skipping unsaveable draft: {e}")
        if saved:
            log.info(f"Saved {len(saved)} incomplete orders for offline use")
        return saved

    def restore_offline_orders(self) -> list[dict]:
        """Hand pending (not finalized) local orders back to the UI."""
        pending = self.store.get_matching("orders", "pending")
        if not pending:
            return []
        for handler in self._restore_handlers:
            try:
                handler([dict(o) for o in pending])
            except Exception:
                log.exception("Restore handler failed")
        log.info(f"Restored {len(pending)} incomplete orders")
        return pending

    # ═══════════════════════════════════════════════════════════════════
    #  SYNC CYCLE
    # ═══════════════════════════════════════════════════════════════════

    async def sync_cycle(self, include_products: bool = False) -> CycleReport | None:
        """One pass: mirror catalog, upload pending orders, notify.

        Returns None when a cycle is already running. Raises
        NetworkTransientError when the server could not be reached at all
        (every catalog fetch failed at the transport level), after every
        phase has had its turn. A single order's network failure is counted
        in the report and left for the next cycle.
        """
        if not self._status.online:
            raise OfflineError("Cannot sync while offline")
        if self._status.sync_in_progress:
            log.debug("Sync already in progress, ignoring trigger")
            return None

        self._status.sync_in_progress = True
        self._publish()
        report = CycleReport(started_at=self._clock())
        try:
            entities = ("products", "customers", "settings") if include_products else ("customers", "settings")
            report.catalog = await self.catalog.refresh(entities)
            unreachable = self.catalog.network_errors == len(entities)
            report.upload = await self.uploader.run()
            await self._refresh_server_reports()

            report.network_errors = self.catalog.network_errors + report.upload.network_errors
            report.finished_at = self._clock()
            if unreachable:
                raise NetworkTransientError("Server unreachable during sync")
            if report.upload.failed:
                log.warning(f"{len(report.upload.failed)} orders left pending for the next cycle")
            self._status.last_sync = report.finished_at
            log.info("Sync completed successfully")
            return report
        finally:
            self._status.sync_in_progress = False
            self.refresh_status()

    async def sync_with_retry(self, include_products: bool = False) -> CycleReport | None:
        """Run a cycle, retrying transient network failures a bounded number of times."""
        if self._retrying:
            log.debug("Retry loop already active, ignoring trigger")
            return None
        self._retrying = True
        try:
            attempt = 0
            while True:
                try:
                    return await self.sync_cycle(include_products)
                except NetworkTransientError as e:
                    if attempt >= self.settings.sync_max_retries:
                        log.error(f"Max retry attempts reached for sync: {e}")
                        raise
                    attempt += 1
                    delay = self.settings.sync_retry_delay_seconds
                    log.warning(f"Sync failed ({e}); retry {attempt}/{self.settings.sync_max_retries} in {delay}s")
                    await self._sleep(delay)
        finally:
            self._retrying = False

    async def force_sync(self) -> CycleReport | None:
        """Explicit sync request from the UI. Fails fast when offline."""
        if not self._status.online:
            raise OfflineError("Cannot sync while offline")
        return await self.sync_with_retry()

    async def refresh_catalog(self) -> dict[str, bool]:
        """Explicit catalog refresh trigger."""
        if not self._status.online:
            raise OfflineError("Cannot refresh catalog while offline")
        return await self.catalog.refresh()

    async def _refresh_server_reports(self) -> None:
        if not self.settings.refresh_reports_after_sync:
            return
        try:
            await self.client.refresh_reports()
        except PosSyncError as e:
            log.warning(f"Failed to refresh reports cache: {e}")

    # ═══════════════════════════════════════════════════════════════════
    #  CONFLICTS
    # ═══════════════════════════════════════════════════════════════════

    def set_conflict_strategy(self, strategy: ConflictStrategy | str) -> None:
        self.resolver.strategy = ConflictStrategy(strategy)
        log.info(f"Conflict strategy set to {self.resolver.strategy.value}")

    def list_conflicts(self, include_resolved: bool = False) -> list[dict]:
        if include_resolved:
            return self.store.get_all("conflicts")
        return self.store.get_matching("conflicts", "unresolved")

    async def resolve_conflict(self, conflict_id: str, choice: ManualChoice | str) -> dict:
        """Apply an operator's decision on a parked conflict.

        keep_local uploads the local order now (requires Online); keep_server
        discards the local copy. The record is marked resolved only once the
        decision has been applied.
        """
        record = self.store.get("conflicts", conflict_id)
        if record is None:
            raise ConflictNotFound(conflict_id)
        if record["resolved"]:
            return record
        choice = ManualChoice(choice)
        order = self.store.get("orders", record["order_id"])

        if order is not None:
            if choice is ManualChoice.KEEP_LOCAL:
                if not self._status.online:
                    raise OfflineError("Cannot upload the local version while offline")
                order["version"] = max(order["version"] or 1, record["server_version"] or 1) + 1
                await self.uploader.upload(order)
            else:
                self.store.delete("orders", order["id"])
                log.info(f"Discarded local copy of {order['order_number']} in favour of server version")

        record = self.resolver.mark_resolved(conflict_id, choice)
        self.refresh_status()
        return record
