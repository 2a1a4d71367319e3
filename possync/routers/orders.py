"""
routers/orders.py — Local order capture API

Business Rules:
- POST captures a sale locally; works whether online or offline
- Amend/discard only touch orders that have not been synced yet
- The timeline is the per-order event history shipped with each upload

Called by: main.py (router include)
Depends on: services/orchestrator.py
"""

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_orchestrator
from ..exceptions import OrderLocked, OrderNotFound
from ..schemas import LocalOrderOut, OrderAmend, SaleIn, SyncEvent
from ..services.orchestrator import SyncOrchestrator

router = APIRouter(tags=["orders"])


@router.get("/api/orders/local", response_model=list[LocalOrderOut])
def list_local_orders(orch: SyncOrchestrator = Depends(get_orchestrator)):
    return orch.local_orders()


@router.post("/api/orders/local", response_model=LocalOrderOut, status_code=201)
def create_local_order(body: SaleIn, orch: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        return orch.capture_order(body)
    except ValueError as e:
        raise HTTPException(422, str(e))


@router.patch("/api/orders/local/{order_id}", response_model=LocalOrderOut)
def amend_local_order(order_id: str, body: OrderAmend, orch: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        return orch.amend_order(order_id, body)
    except OrderNotFound:
        raise HTTPException(404, "Order not found")
    except OrderLocked as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(422, str(e))


@router.delete("/api/orders/local/{order_id}")
def discard_local_order(order_id: str, orch: SyncOrchestrator = Depends(get_orchestrator)):
    try:
        orch.discard_order(order_id)
    except OrderNotFound:
        raise HTTPException(404, "Order not found")
    except OrderLocked as e:
        raise HTTPException(409, str(e))
    return {"ok": True}


@router.get("/api/orders/local/{order_id}/timeline", response_model=list[SyncEvent])
def order_timeline(order_id: str, orch: SyncOrchestrator = Depends(get_orchestrator)):
    return orch.timeline(order_id)
