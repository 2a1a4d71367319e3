"""Sync API — status projection, forced sync, manual online/offline switch."""

from fastapi import APIRouter, Depends

from ..dependencies import get_orchestrator, get_store
from ..schemas import CycleReport, SyncStatus
from ..services.orchestrator import SyncOrchestrator
from ..store import LocalStore

router = APIRouter(tags=["sync"])


@router.get("/api/sync/status", response_model=SyncStatus)
def sync_status(orch: SyncOrchestrator = Depends(get_orchestrator)):
    return orch.refresh_status()


@router.post("/api/sync/force", response_model=CycleReport | None)
async def force_sync(orch: SyncOrchestrator = Depends(get_orchestrator)):
    """Run a sync now. 503 when offline, 502 when retries are exhausted."""
    return await orch.force_sync()


@router.post("/api/sync/online", response_model=SyncStatus)
async def go_online(orch: SyncOrchestrator = Depends(get_orchestrator)):
    await orch.set_online(True)
    return orch.status


@router.post("/api/sync/offline", response_model=SyncStatus)
async def go_offline(orch: SyncOrchestrator = Depends(get_orchestrator)):
    await orch.set_online(False)
    return orch.status


@router.get("/api/storage")
def storage_info(store: LocalStore = Depends(get_store)):
    return {"database_url": store.database_url, "counts": store.counts()}
