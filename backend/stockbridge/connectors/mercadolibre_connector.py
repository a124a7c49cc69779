"""
MercadoLibre API Connector
Listing writes (stock push, listing update, listing creation)

All requests go through the CredentialBroker, which supplies the bearer
token and retries once after a forced refresh when the API answers 401.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from stockbridge.core.exceptions import LinkNotFound, MarketplaceRequestFailed
from stockbridge.domain.listing import SkuLink
from stockbridge.services.credential_broker import CredentialBroker

logger = logging.getLogger(__name__)


class MercadoLibreConnector:
    """
    Connector for the Mercado Libre items API

    Handles:
    - Absolute stock push by SKU (variation-aware)
    - Stock and price update of a linked listing
    - Listing creation
    """

    def __init__(
        self,
        broker: CredentialBroker,
        http_client: httpx.AsyncClient,
        links,
        base_url: str = "https://api.mercadolibre.com",
    ):
        """
        Args:
            broker: Token provider and 401-retry wrapper
            http_client: Client used to build requests (the broker sends them)
            links: SKU link store with get_by_sku (see LinkRepository)
            base_url: Mercado Libre API base URL
        """
        self.broker = broker
        self._http = http_client
        self._links = links
        self.base_url = base_url.rstrip('/')
        self.api_calls = 0

    async def _send_json(self, method: str, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Authenticated JSON request, returning the provider's response unmodified

        Raises:
            MarketplaceRequestFailed: Non-success status other than 401
            AuthRejectedAfterRefresh: 401 persisted after a forced refresh
        """
        url = f"{self.base_url}{endpoint}"

        def build_request(token: str) -> httpx.Request:
            self.api_calls += 1
            return self._http.build_request(
                method,
                url,
                json=payload,
                headers={
                    'Authorization': f'Bearer {token}',
                    'Accept': 'application/json',
                },
            )

        response = await self.broker.perform_authenticated_write(build_request)

        if not 200 <= response.status_code < 300:
            logger.error(f"ML {method} {endpoint} failed: {response.status_code} - {response.text}")
            raise MarketplaceRequestFailed(response.status_code, response.text)

        return response.json()

    # ==================== LISTING WRITES ====================

    async def push_stock(self, sku: str, quantity: int) -> Dict[str, Any]:
        """
        Set the absolute available quantity of the listing linked to a SKU

        Args:
            sku: Local SKU
            quantity: Target absolute quantity

        Returns:
            The provider's echoed item representation

        Raises:
            LinkNotFound: The SKU has no listing; no request is sent
        """
        link = self._links.get_by_sku(sku)
        if link is None:
            raise LinkNotFound(sku)

        logger.info(
            f"Pushing stock {quantity} for {sku} to {link.meli_item_id}"
            + (f" variation {link.meli_variation_id}" if link.has_variation else "")
        )
        return await self.update_listing(link, quantity)

    async def update_listing(self, link: SkuLink, quantity: int, price: Optional[float] = None) -> Dict[str, Any]:
        """PUT /items/{item_id} with the link's payload shape"""
        return await self._send_json("PUT", f"/items/{link.meli_item_id}", link.stock_payload(quantity, price))

    async def create_item(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /items, returning the created item (its 'id' is the new item id)"""
        item = await self._send_json("POST", "/items", payload)
        logger.info(f"Created ML item {item.get('id')} for {payload.get('seller_custom_field')}")
        return item
