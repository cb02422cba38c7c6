"""Process-wide httpx.AsyncClient for outbound calls (today: Shopify Admin API).

Callers pass their own per-request timeout; the client default is the
Shopify timeout from settings. Redirects are not followed.

    from app.http_client import http
    resp = await http.get(url, headers=headers, timeout=15)
"""

import httpx

from .config import APP_VERSION, settings

http = httpx.AsyncClient(
    timeout=settings.shopify_timeout,
    limits=httpx.Limits(max_connections=10, max_keepalive_connections=5, keepalive_expiry=30),
    follow_redirects=False,
    headers={"User-Agent": f"production-tracker/{APP_VERSION}"},
)


async def close_clients() -> None:
    """Close the shared client on shutdown (no-op when already closed)."""
    if not http.is_closed:
        await http.aclose()
