"""
main.py — FastAPI application for the checkout terminal's local sync API

Wires the durable store, the transaction server client, the orchestrator
and the connectivity monitor together for the lifetime of the app.

Business Rules:
- Startup: logging, local store, device id, http client, first probe
- The connectivity monitor runs as a background task until shutdown
- Engine errors map to structured JSON errors (see _STATUS_FOR)

Called by: uvicorn possync.main:app
Depends on: every possync module
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import settings
from .exceptions import (
    ConflictNotFound,
    ConflictUnresolved,
    NetworkTransientError,
    OfflineError,
    OrderLocked,
    OrderNotFound,
    PosSyncError,
    ServerResponseError,
    StorageUnavailable,
    UploadRejected,
)
from .http_client import close_client, make_http_client
from .logging_config import setup_logging
from .routers import catalog, conflicts, orders, sync
from .schemas import ErrorResponse
from .server_client import PosServerClient
from .services.connectivity import ConnectivityMonitor
from .services.orchestrator import SyncOrchestrator
from .store import LocalStore

_STATUS_FOR = {
    OrderNotFound: 404,
    ConflictNotFound: 404,
    OrderLocked: 409,
    ConflictUnresolved: 409,
    OfflineError: 503,
    StorageUnavailable: 503,
    UploadRejected: 502,
    NetworkTransientError: 502,
    ServerResponseError: 502,
}


def _error(status_code: int, message: str, detail: list | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, status_code=status_code, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def possync_error_handler(request: Request, exc: PosSyncError) -> JSONResponse:
    status_code = next((code for cls, code in _STATUS_FOR.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    return _error(status_code, str(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": " -> ".join(str(p) for p in err.get("loc", [])), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return _error(422, "Validation error", details)


# ── App Lifecycle ─────────────────────────────────────────────────────


async def _startup(app: FastAPI) -> None:
    store = LocalStore(settings.database_url)
    http = make_http_client()
    client = PosServerClient(http)
    orchestrator = SyncOrchestrator(store, client)
    app.state.http = http
    app.state.orchestrator = orchestrator
    app.state.monitor = ConnectivityMonitor(orchestrator, client)
    logger.info(f"Device {orchestrator.device_id} using {settings.server_url}")


async def _shutdown(app: FastAPI) -> None:
    await close_client(app.state.http)
    app.state.orchestrator.store.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    owns_engine = getattr(app.state, "orchestrator", None) is None
    if owns_engine:
        await _startup(app)

    stop = asyncio.Event()
    task = None
    monitor = getattr(app.state, "monitor", None)
    if monitor is not None:
        task = asyncio.create_task(monitor.run(stop))
    yield
    stop.set()
    if task is not None:
        await task
    if owns_engine:
        await _shutdown(app)


def create_app(orchestrator: SyncOrchestrator | None = None, monitor: ConnectivityMonitor | None = None) -> FastAPI:
    """Build the app. Passing an orchestrator skips building one at startup."""
    app = FastAPI(title="POS Sync", version=__version__, lifespan=lifespan)
    if orchestrator is not None:
        app.state.orchestrator = orchestrator
        app.state.monitor = monitor

    app.add_exception_handler(PosSyncError, possync_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(sync.router)
    app.include_router(orders.router)
    app.include_router(catalog.router)
    app.include_router(conflicts.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the local API with uvicorn."""
    import uvicorn

    uvicorn.run("possync.main:app", host=settings.api_host, port=settings.api_port, log_config=None)
