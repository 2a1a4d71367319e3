"""Connectivity monitor — probes the transaction server and drives transitions.

A HEAD on the health route decides Online vs Offline. While online, a
periodic sync runs every ``periodic_sync_minutes`` if orders are pending.
"""

import asyncio
import logging
import time

from ..exceptions import PosSyncError

log = logging.getLogger("possync.connectivity")


class ConnectivityMonitor:
    def __init__(self, orchestrator, client, settings=None, monotonic=time.monotonic):
        self.orchestrator = orchestrator
        self.client = client
        self.settings = settings or orchestrator.settings
        self._monotonic = monotonic
        self._last_periodic = monotonic()

    async def poll_once(self) -> bool:
        """Probe the server once and apply any transition. Returns reachability."""
        reachable = await self.client.ping()
        if reachable != self.orchestrator.online:
            await self.orchestrator.set_online(reachable)
        elif reachable:
            await self.maybe_periodic_sync()
        return reachable

    async def maybe_periodic_sync(self) -> bool:
        now = self._monotonic()
        if now - self._last_periodic < self.settings.periodic_sync_minutes * 60:
            return False
        self._last_periodic = now
        if not self.orchestrator.status.pending_orders:
            return False
        log.info("Periodic sync triggered")
        try:
            await self.orchestrator.sync_with_retry()
        except PosSyncError as e:
            log.error(f"Periodic sync failed: {e}")
        return True

    async def run(self, stop: asyncio.Event) -> None:
        interval = self.settings.probe_interval_seconds
        log.info(f"Connectivity monitor started (interval={interval}s)")
        while not stop.is_set():
            try:
                await self.poll_once()
            except PosSyncError as e:
                log.error(f"Connectivity probe failed: {e}")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        log.info("Connectivity monitor stopped")
