"""Shopify Admin REST connector (read-only)."""

import asyncio
import logging

import httpx

from ..http_client import http

log = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-01"


class ShopifyError(Exception):
    """Shopify returned a non-2xx response or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ShopifyConnector:
    """Orders, products and shop info from the Admin API.

    Auth is a private-app access token in the X-Shopify-Access-Token header.
    Transport errors are retried with exponential backoff; HTTP errors are not.
    """

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str | None = None,
        timeout: float = 20.0,
        max_retries: int = 2,
    ):
        self.store_domain = store_domain
        self.access_token = access_token
        self.api_version = api_version or DEFAULT_API_VERSION
        self.timeout = timeout
        self.max_retries = max_retries

    @classmethod
    def from_config(cls, cfg: dict, timeout: float = 20.0) -> "ShopifyConnector":
        if not cfg.get("store_domain") or not cfg.get("api_access_token"):
            raise ShopifyError("Shopify is not configured", status=None)
        return cls(
            cfg["store_domain"],
            cfg["api_access_token"],
            cfg.get("api_version"),
            timeout=timeout,
        )

    @property
    def base_url(self) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}"

    def _headers(self) -> dict:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        last_err = None
        for attempt in range(self.max_retries + 1):
            try:
                return await http.get(
                    f"{self.base_url}/{path}",
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
            except httpx.TransportError as e:
                last_err = e
                if attempt < self.max_retries:
                    await asyncio.sleep(2**attempt)
        log.warning("Shopify request %s failed: %s", path, last_err)
        raise ShopifyError(f"Could not reach Shopify: {last_err}")

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        r = await self._get(path, params)
        if r.status_code >= 400:
            raise ShopifyError(f"Shopify API error: {r.status_code} {r.reason_phrase}", r.status_code)
        return r.json()

    async def get_orders(self, limit: int = 50, since_id: int | None = None) -> list[dict]:
        params = {"limit": limit, "status": "any"}
        if since_id:
            params["since_id"] = since_id
        data = await self._get_json("orders.json", params)
        return data.get("orders") or []

    async def get_order(self, order_id: int) -> dict | None:
        """Single order, or None when Shopify says 404."""
        r = await self._get(f"orders/{order_id}.json")
        if r.status_code == 404:
            return None
        if r.status_code >= 400:
            raise ShopifyError(f"Shopify API error: {r.status_code} {r.reason_phrase}", r.status_code)
        return r.json().get("order")

    async def get_products(self, limit: int = 50) -> list[dict]:
        data = await self._get_json("products.json", {"limit": limit})
        return data.get("products") or []

    async def get_shop(self) -> dict:
        data = await self._get_json("shop.json")
        return data.get("shop") or {}

    async def get_order_count(self) -> int:
        data = await self._get_json("orders/count.json", {"status": "any"})
        return int(data.get("count") or 0)
