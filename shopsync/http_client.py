"""Shared HTTP client — connection pooling for all outbound Keystone requests.

One module-level httpx.AsyncClient (no redirects, pooled connections).
Per-request timeout overrides via http.get(url, timeout=15).

Usage:
    from shopsync.http_client import http
    resp = await http.post(url, json=payload, timeout=15)
"""

import httpx

from .config import settings

_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

http = httpx.AsyncClient(
    timeout=settings.keystone_timeout_seconds,
    limits=_LIMITS,
    follow_redirects=False,
)


async def close_clients():
    """Shut down the shared client. Call from app lifespan shutdown."""
    try:
        await http.aclose()
    except RuntimeError:
        pass
