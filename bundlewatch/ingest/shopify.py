"""Shopify Admin API client."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from bundlewatch.errors import raise_for_api_status
from bundlewatch.utils.rate_limit import RateLimiter
from bundlewatch.utils.retry import RATE_LIMIT_BACKOFF, retry_on_rate_limit

logger = logging.getLogger(__name__)

BUNDLE_NAMESPACE = "custom"
BUNDLE_KEY = "bundle_structure"
PRODUCT_FIELDS = "id,title,handle,tags,variants"
PAGE_SIZE = 250


class ShopifyClient:
    def __init__(
        self,
        store: str,
        token: str,
        *,
        api_version: str = "2024-04",
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        backoff: float = RATE_LIMIT_BACKOFF,
    ) -> None:
        self.base_url = f"https://{store}/admin/api/{api_version}/"
        self._token = token
        self._session = session or httpx.AsyncClient(timeout=30.0)
        self._rate_limiter = rate_limiter or RateLimiter()
        self._backoff = backoff

    async def close(self) -> None:
        await self._session.aclose()

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return self.base_url + endpoint.lstrip("/")

    async def call(self, endpoint: str, method: str = "GET", body: dict[str, Any] | None = None) -> httpx.Response:
        if not endpoint or not isinstance(endpoint, str):
            raise ValueError(f"Invalid Shopify endpoint: {endpoint!r}")
        url = self._url(endpoint)
        headers = {"X-Shopify-Access-Token": self._token, "Content-Type": "application/json"}
        content = json.dumps(body) if body is not None else None
        await self._rate_limiter.wait()
        send = retry_on_rate_limit(self._session.request, backoff=self._backoff, on_retry=self._rate_limiter.mark)
        response = await send(method, url, headers=headers, content=content)
        raise_for_api_status(response, service="shopify")
        return response

    async def paginate(self, endpoint: str, key: str) -> list[dict[str, Any]]:
        """Follow ``rel="next"`` links and collect ``key`` from every page."""
        items: list[dict[str, Any]] = []
        url: str | None = endpoint
        while url:
            response = await self.call(url)
            page = response.json().get(key)
            if isinstance(page, list):
                items.extend(page)
            url = response.links.get("next", {}).get("url")
        return items

    async def fetch_all_products(self) -> list[dict[str, Any]]:
        return await self.paginate(f"products.json?limit={PAGE_SIZE}&fields={PRODUCT_FIELDS}", "products")

    async def fetch_bundle_structure(self, product_id: int) -> str | None:
        """Raw JSON value of the bundle structure metafield, if any."""
        response = await self.call(f"products/{product_id}/metafields.json")
        metafields = response.json().get("metafields")
        if not isinstance(metafields, list):
            return None
        for metafield in metafields:
            if metafield.get("namespace") == BUNDLE_NAMESPACE and metafield.get("key") == BUNDLE_KEY:
                return metafield.get("value")
        return None

    async def update_tags(self, product_id: int, tags: list[str]) -> None:
        await self.call(
            f"products/{product_id}.json",
            "PUT",
            {"product": {"id": product_id, "tags": ", ".join(tags)}},
        )

    async def fetch_variant_quantity(self, variant_id: int | str) -> int:
        response = await self.call(f"variants/{variant_id}.json")
        variant = response.json().get("variant") or {}
        try:
            return int(variant.get("inventory_quantity") or 0)
        except (TypeError, ValueError):
            return 0
