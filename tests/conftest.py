"""
conftest.py — Shared Test Fixtures for possync

Provides a file-backed SQLite store (so restart tests can reopen it), a
scripted fake transaction server on httpx.MockTransport, and a factory
that builds a SyncOrchestrator with a no-op sleep and a fixed clock.

Business Rules:
- Every test gets its own database file under tmp_path
- No test touches the real network or really sleeps
- The fake server can be taken down, or made to fail per route

Called by: all test files via pytest autodiscovery
Depends on: possync.store, possync.server_client, possync.services.orchestrator
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from possync.config import Settings
from possync.http_client import make_http_client
from possync.server_client import PosServerClient
from possync.services.orchestrator import SyncOrchestrator
from possync.store import LocalStore

SERVER_URL = "http://pos.test"


# ── Fake transaction server ──────────────────────────────────────────


class FakeServer:
    """In-process stand-in for the transaction server's HTTP API."""

    def __init__(self):
        self.products = [
            {"id": 1, "name": "Espresso", "retail_price": 2.5, "stock_quantity": 100,
             "barcode": "111", "sku": "ESP", "status": "active"},
            {"id": 2, "name": "Croissant", "retail_price": 3.0, "stock_quantity": 20,
             "barcode": "222", "sku": "CRO", "status": "active"},
            {"id": 3, "name": "Old Muffin", "retail_price": 1.0, "stock_quantity": 0,
             "barcode": "333", "sku": "MUF", "status": "inactive"},
        ]
        self.customers = [{"id": 10, "name": "Ada", "phone": "555-0100"}]
        self.settings = {"tax_rate": 0.1, "store_info": {"name": "Corner Cafe"}}
        self.orders: dict[str, dict] = {}   # offline_id -> server snapshot
        self.posted: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.down = False
        self.fail_paths: set[str] = set()   # path prefixes that raise ConnectError
        self.check_status: int | None = None
        self.check_body = None               # raw JSON answered for every order check
        self.reject: str | None = None
        self.fail_uploads: set[str] = set()  # offline_ids whose POST raises ConnectError

    def calls_to(self, method: str, prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(prefix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        if self.down or any(path.startswith(p) for p in self.fail_paths):
            raise httpx.ConnectError("server unreachable", request=request)

        if method == "HEAD" and path == "/api/health":
            return httpx.Response(200)
        if method == "GET" and path == "/api/products":
            return httpx.Response(200, json=self.products)
        if method == "GET" and path == "/api/customers":
            return httpx.Response(200, json={"customers": self.customers})
        if method == "GET" and path == "/api/settings":
            return httpx.Response(200, json=self.settings)
        if method == "GET" and path.startswith("/api/orders/check/"):
            if self.check_status is not None:
                return httpx.Response(self.check_status, json={"success": False})
            if self.check_body is not None:
                return httpx.Response(200, json=self.check_body)
            order_id = path.rsplit("/", 1)[-1]
            if order_id not in self.orders:
                return httpx.Response(404, json={"success": False, "error": "Order not found"})
            return httpx.Response(200, json={"success": True, "order": self.orders[order_id]})
        if method == "POST" and path == "/api/orders":
            body = json.loads(request.content)
            if body["offline_id"] in self.fail_uploads:
                raise httpx.ConnectError("connection reset", request=request)
            self.posted.append(body)
            if self.reject:
                return httpx.Response(400, json={"success": False, "error": self.reject})
            number = f"ORD-{len(self.posted):04d}"
            self.orders[body["offline_id"]] = {
                "id": body["offline_id"],
                "order_number": number,
                "status": body["status"],
                "payment_status": body["payment_status"],
                "total_amount": body["total_amount"],
                "version": body["version"],
            }
            return httpx.Response(201, json={"success": True, "order_id": len(self.posted), "order_number": number})
        if method == "POST" and path == "/api/reports/refresh-cache":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404)


class FixedClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "possync.db"


@pytest.fixture()
def cfg(db_path) -> Settings:
    return Settings(
        _env_file=None,
        server_url=SERVER_URL,
        database_path=str(db_path),
        sync_retry_delay_seconds=5.0,
        refresh_reports_after_sync=True,
    )


@pytest.fixture()
def store(cfg):
    s = LocalStore(cfg.database_url)
    yield s
    s.close()


@pytest.fixture()
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def http(server) -> httpx.AsyncClient:
    return make_http_client(SERVER_URL, transport=httpx.MockTransport(server.handler))


@pytest.fixture()
def client(http, cfg) -> PosServerClient:
    return PosServerClient(http, cfg)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def make_orchestrator(store, client, cfg, sleep, clock):
    """Factory: build an orchestrator, optionally overriding settings."""

    def _make(**overrides) -> SyncOrchestrator:
        settings = cfg.model_copy(update=overrides) if overrides else cfg
        client.settings = settings
        return SyncOrchestrator(store, client, settings, sleep=sleep, clock=clock)

    return _make


@pytest.fixture()
def orchestrator(make_orchestrator) -> SyncOrchestrator:
    return make_orchestrator()


def _sale(items=None, **overrides) -> dict:
    data = {
        "items": items or [{"product_id": 1, "product_name": "Espresso", "quantity": 2, "unit_price": 10.0}],
        "payment_method": "cash",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def make_sale():
    """Factory for a valid sale: 2 x 10.00, cash, completed."""
    return _sale
