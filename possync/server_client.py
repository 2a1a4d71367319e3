"""Transaction server client — every endpoint the sync engine consumes.

Wraps the shared httpx.AsyncClient. Transport failures and timeouts become
NetworkTransientError; unexpected statuses become ServerResponseError.

Usage:
    client = PosServerClient(http)
    products = await client.fetch_products()
    snapshot = await client.check_order(order_id)   # None when 404
    result = await client.submit_order(payload)
"""

import logging

import httpx

from .config import settings as default_settings
from .exceptions import NetworkTransientError, ServerResponseError
from .schemas import OrderUploadPayload, ServerOrder, UploadResponse

log = logging.getLogger("possync.server")


class PosServerClient:
    def __init__(self, http: httpx.AsyncClient, settings=None):
        self.http = http
        self.settings = settings or default_settings

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, path, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise NetworkTransientError(f"{method} {path} failed: {e}") from e

    async def _get_json(self, path: str):
        r = await self._request("GET", path)
        if r.status_code != 200:
            raise ServerResponseError(r.status_code, f"GET {path} -> {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise ServerResponseError(r.status_code, f"GET {path} returned invalid JSON") from e

    # ── Catalog ──────────────────────────────────────────────────────

    async def fetch_products(self) -> list[dict]:
        data = await self._get_json(self.settings.products_path)
        return _unwrap_list(data, "products")

    async def fetch_customers(self) -> list[dict]:
        data = await self._get_json(self.settings.customers_path)
        return _unwrap_list(data, "customers")

    async def fetch_settings(self) -> dict:
        data = await self._get_json(self.settings.settings_path)
        if not isinstance(data, dict):
            raise ServerResponseError(200, "Settings payload is not an object")
        return data

    # ── Orders ───────────────────────────────────────────────────────

    async def check_order(self, order_id: str) -> ServerOrder | None:
        """Server snapshot of an offline order, or None when it has none.

        Raises ServerResponseError for any answer other than 200/404, so the
        caller can decide how to treat an unknown result.
        """
        path = self.settings.order_check_path.format(order_id=order_id)
        r = await self._request("GET", path)
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise ServerResponseError(r.status_code, f"Order check for {order_id} -> {r.status_code}")
        try:
            body = r.json()
        except ValueError as e:
            raise ServerResponseError(200, f"Order check for {order_id} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise ServerResponseError(200, f"Order check for {order_id} returned a non-object body")
        if not body.get("success") or not body.get("order"):
            return None
        try:
            return ServerOrder.model_validate(body["order"])
        except ValueError as e:
            raise ServerResponseError(200, f"Order check for {order_id} returned a malformed order") from e

    async def submit_order(self, payload: OrderUploadPayload) -> UploadResponse:
        """POST one order. Non-2xx answers come back as success=False."""
        r = await self._request("POST", self.settings.orders_path, json=payload.model_dump())
        if not r.is_success:
            log.error(f"Upload of {payload.offline_id} failed: {r.status_code} {r.text[:200]}")
            try:
                body = r.json()
            except ValueError:
                body = None
            error = body.get("error") if isinstance(body, dict) else None
            return UploadResponse(success=False, error=error or f"HTTP {r.status_code}")
        try:
            return UploadResponse.model_validate(r.json())
        except ValueError:
            return UploadResponse(success=False, error="invalid response body")

    # ── Housekeeping ─────────────────────────────────────────────────

    async def ping(self) -> bool:
        """HEAD the health route. True on any 2xx."""
        try:
            r = await self._request("HEAD", self.settings.health_path, headers={"Cache-Control": "no-cache"})
        except NetworkTransientError:
            return False
        return r.is_success

    async def refresh_reports(self) -> None:
        r = await self._request("POST", self.settings.refresh_reports_path)
        if not r.is_success:
            raise ServerResponseError(r.status_code, "Report cache refresh failed")


def _unwrap_list(data, key: str) -> list[dict]:
    """Accept a bare array or the {"<key>": [...]} / {"data": [...]} envelopes."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for k in (key, "data"):
            if isinstance(data.get(k), list):
                return data[k]
    raise ServerResponseError(200, f"Unexpected {key} payload")
