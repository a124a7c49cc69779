"""
WooCommerce Sync Connector
Client for the woo-sync edge functions (retail store and B2B store)

The edge functions own the WooCommerce REST calls and the wc_links table;
this connector only speaks their small JSON API.
"""
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from stockbridge.core.exceptions import WooSyncError
from stockbridge.domain.woo import SyncDownResult

logger = logging.getLogger(__name__)


def _optional_fields(**fields) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


class WooSyncConnector:
    """
    Connector for one woo-sync function

    Use one instance per store: the retail function (WOO_SYNC_URL) and the B2B
    function (WOO_B2B_SYNC_URL) expose the same API.
    """

    def __init__(self, base_url: str, http_client: httpx.AsyncClient, channel: str = "web"):
        """
        Args:
            base_url: Edge function URL, e.g. https://<project>.supabase.co/functions/v1/woo-sync
            http_client: Shared async HTTP client
            channel: Label used in logs and errors ("web" or "b2b")
        """
        self.base_url = (base_url or "").rstrip('/')
        self._http = http_client
        self.channel = channel

    async def _call(self, path: str, method: str = "GET", payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call the function and decode its response

        Bodies that are not JSON are returned as text.

        Raises:
            WooSyncError: No base URL configured, or a non-success status
        """
        if not self.base_url:
            raise WooSyncError(f"woo-sync base URL for '{self.channel}' is not configured")

        response = await self._http.request(method, f"{self.base_url}{path}", json=payload)

        text = response.text
        try:
            body = json.loads(text) if text else None
        except ValueError:
            body = text

        if not 200 <= response.status_code < 300:
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            else:
                message = f"HTTP {response.status_code} {response.reason_phrase}"
            logger.error(f"woo-sync ({self.channel}) {method} {path} failed: {message}")
            raise WooSyncError(message, status=response.status_code)

        return body

    async def sync_down(self) -> SyncDownResult:
        """Pull the catalog from WooCommerce into the database"""
        body = await self._call("/v1/sync-down", method="POST")
        if not isinstance(body, dict) or not body.get("ok") or not isinstance(body.get("products"), list):
            raise WooSyncError(f"sync-down ({self.channel}) returned an unexpected format")

        result = SyncDownResult(**body)
        logger.info(f"woo-sync ({self.channel}) synced down {len(result.products)} products")
        return result

    async def create_product_local(
        self,
        sku_local: str,
        name: str,
        price: Optional[float] = None,
        initial_stock: Optional[int] = None,
    ) -> Any:
        """Create a simple product from a local SKU"""
        return await self._call("/v1/create", method="POST", payload={
            "sku_local": sku_local,
            "name": name,
            "price": price,
            "manage_stock": True,
            "stock_quantity": int(initial_stock) if initial_stock is not None else 0,
            "type": "simple",
        })

    async def push_stock_local(self, sku_local: str, absolute_stock: int) -> Any:
        """Set the absolute stock of a local SKU"""
        return await self._call("/v1/reflect", method="POST", payload={
            "sku_local": sku_local,
            "manage_stock": True,
            "stock_quantity": int(absolute_stock or 0),
        })

    async def update_product_local(
        self,
        sku_local: str,
        name: Optional[str] = None,
        price: Optional[float] = None,
        absolute_stock: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Any:
        payload = {"sku_local": sku_local, **_optional_fields(name=name, price=price, status=status)}
        if absolute_stock is not None:
            payload["manage_stock"] = True
            payload["stock_quantity"] = int(absolute_stock)
        return await self._call("/v1/reflect", method="POST", payload=payload)

    async def delete_product_local(self, sku_local: str) -> Any:
        return await self._call(f"/v1/by-sku/{quote(sku_local, safe='')}", method="DELETE")

    async def health(self) -> Dict[str, Any]:
        return await self._call("/health")

    async def update_product(
        self,
        product_id: int,
        name: Optional[str] = None,
        price: Optional[float] = None,
        manage_stock: Optional[bool] = None,
        stock_quantity: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Any:
        """Update a WooCommerce product by id"""
        payload = _optional_fields(
            name=name,
            price=price,
            manage_stock=manage_stock,
            stock_quantity=stock_quantity,
            status=status,
        )
        return await self._call(f"/v1/product/{product_id}", method="PUT", payload=payload)

    async def update_variation(
        self,
        product_id: int,
        variation_id: int,
        price: Optional[float] = None,
        manage_stock: Optional[bool] = None,
        stock_quantity: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Any:
        """Update one variation of a WooCommerce product"""
        payload = _optional_fields(
            price=price,
            manage_stock=manage_stock,
            stock_quantity=stock_quantity,
            status=status,
        )
        return await self._call(
            f"/v1/product/{product_id}/variation/{variation_id}",
            method="PUT",
            payload=payload,
        )
