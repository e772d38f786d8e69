"""WooCommerce REST API (v3) catalog.

Resolves product relationships over HTTP:
    GET {wc_url}/wp-json/wc/v3/products/{id}
    GET {wc_url}/wp-json/wc/v3/products?category={id}&page=N

Authentication uses the store's consumer key/secret over HTTP basic auth.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from forooshyar.cache.errors import CatalogLookupError
from forooshyar.catalog.base import ProductCatalog, ProductKind, ProductRef
from forooshyar.config import Settings, settings

logger = logging.getLogger(__name__)

API_PATH = "/wp-json/wc/v3"
PAGE_SIZE = 100


def product_from_payload(data: dict[str, Any]) -> ProductRef:
    """Map a WooCommerce product document to a ProductRef.

    Types other than variable/variation (grouped, external) behave like
    simple products for caching purposes.
    """
    try:
        kind = ProductKind(data.get("type", "simple"))
    except ValueError:
        kind = ProductKind.SIMPLE

    return ProductRef(
        id=int(data["id"]),
        kind=kind,
        parent_id=int(data.get("parent_id") or 0),
        children=tuple(int(v) for v in data.get("variations") or ()),
    )


class WooCommerceCatalog(ProductCatalog):
    """ProductCatalog backed by the WooCommerce REST API."""

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/") + API_PATH
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            auth=(consumer_key, consumer_secret),
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> WooCommerceCatalog:
        config = config or settings
        if not (config.wc_url and config.wc_consumer_key and config.wc_consumer_secret):
            raise ValueError("WC_URL, WC_CONSUMER_KEY and WC_CONSUMER_SECRET must be set")
        return cls(
            config.wc_url,
            config.wc_consumer_key,
            config.wc_consumer_secret,
            timeout=config.wc_timeout,
        )

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            return await self._client.get(f"{self.base_url}{path}", params=params)
        except httpx.HTTPError as exc:
            raise CatalogLookupError(f"WooCommerce request {path} failed: {exc}") from exc

    @staticmethod
    def _decode(response: httpx.Response, entity_id: int) -> Any:
        # Maintenance pages and proxies answer 200 with HTML
        try:
            return response.json()
        except ValueError as exc:
            raise CatalogLookupError(
                f"WooCommerce returned a non-JSON body for {response.request.url.path}",
                entity_id=entity_id,
            ) from exc

    async def get_product(self, product_id: int) -> ProductRef | None:
        response = await self._request(f"/products/{product_id}")
        if response.status_code == 404:
            return None
        if response.is_error:
            raise CatalogLookupError(
                f"WooCommerce returned {response.status_code} for product {product_id}",
                entity_id=product_id,
            )
        data = self._decode(response, product_id)
        try:
            return product_from_payload(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CatalogLookupError(
                f"Malformed WooCommerce product {product_id}: {exc!r}",
                entity_id=product_id,
            ) from exc

    async def get_category_product_ids(self, category_id: int) -> list[int]:
        ids: list[int] = []
        page = 1
        while True:
            response = await self._request(
                "/products",
                params={"category": category_id, "per_page": PAGE_SIZE, "page": page, "_fields": "id"},
            )
            if response.is_error:
                raise CatalogLookupError(
                    f"WooCommerce returned {response.status_code} for category {category_id}",
                    entity_id=category_id,
                )
            items = self._decode(response, category_id)
            try:
                ids.extend(int(item["id"]) for item in items)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise CatalogLookupError(
                    f"Malformed WooCommerce product list for category {category_id}: {exc!r}",
                    entity_id=category_id,
                ) from exc

            total_pages = int(response.headers.get("X-WP-TotalPages", "1"))
            if page >= total_pages:
                break
            page += 1

        logger.debug(f"Category {category_id} has {len(ids)} products")
        return ids

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
