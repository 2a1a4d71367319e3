"""Catalog API — offline reads from the mirrored products and customers."""

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_orchestrator
from ..services.orchestrator import SyncOrchestrator

router = APIRouter(tags=["catalog"])


@router.get("/api/catalog/products")
def list_products(
    active_only: bool = Query(False),
    code: str | None = Query(None),
    orch: SyncOrchestrator = Depends(get_orchestrator),
):
    if code:
        product = orch.catalog.find_product(code)
        return [product] if product else []
    return orch.catalog.products(active_only=active_only)


@router.get("/api/catalog/products/{code}")
def get_product(code: str, orch: SyncOrchestrator = Depends(get_orchestrator)):
    product = orch.catalog.find_product(code)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@router.get("/api/catalog/customers")
def list_customers(orch: SyncOrchestrator = Depends(get_orchestrator)):
    return orch.catalog.customers()


@router.post("/api/catalog/refresh")
async def refresh_catalog(orch: SyncOrchestrator = Depends(get_orchestrator)):
    return await orch.refresh_catalog()
