"""Shared HTTP client — connection pooling for calls to the transaction server.

Usage:
    from possync.http_client import make_http_client
    http = make_http_client()
    resp = await http.get("/api/products")
"""

import httpx

from .config import settings

_LIMITS = httpx.Limits(
    max_connections=10,
    max_keepalive_connections=5,
    keepalive_expiry=30,
)


def make_http_client(base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Build the pooled client bound to the server URL.

    ``transport`` lets tests plug in an httpx.MockTransport.
    """
    return httpx.AsyncClient(
        base_url=base_url or settings.server_url,
        timeout=settings.http_timeout_seconds,
        limits=_LIMITS,
        follow_redirects=False,
        transport=transport,
    )


async def close_client(client: httpx.AsyncClient) -> None:
    """Shut down a client. Call from app lifespan shutdown."""
    try:
        await client.aclose()
    except RuntimeError:
        pass
