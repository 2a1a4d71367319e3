"""
dependencies.py — Shared FastAPI Dependencies

Routers pull the engine objects built in the app lifespan from app.state
instead of importing globals.

Called by: routers/*
Depends on: main.py (lifespan populates app.state)
"""

from fastapi import Depends, Request

from .services.orchestrator import SyncOrchestrator
from .store import LocalStore


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return request.app.state.orchestrator


def get_store(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> LocalStore:
    return orchestrator.store
