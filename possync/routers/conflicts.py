"""Conflicts API — list parked conflicts and apply operator decisions."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_orchestrator
from ..exceptions import ConflictNotFound
from ..schemas import ConflictOut, ConflictResolveIn
from ..services.orchestrator import SyncOrchestrator

router = APIRouter(tags=["conflicts"])


@router.get("/api/conflicts", response_model=list[ConflictOut])
def list_conflicts(
    include_resolved: bool = Query(False),
    orch: SyncOrchestrator = Depends(get_orchestrator),
):
    return orch.list_conflicts(include_resolved=include_resolved)


@router.post("/api/conflicts/{conflict_id}/resolve", response_model=ConflictOut)
async def resolve_conflict(
    conflict_id: str,
    body: ConflictResolveIn,
    orch: SyncOrchestrator = Depends(get_orchestrator),
):
    try:
        return await orch.resolve_conflict(conflict_id, body.choice)
    except ConflictNotFound:
        raise HTTPException(404, "Conflict not found")
