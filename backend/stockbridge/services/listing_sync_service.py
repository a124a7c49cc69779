"""
Listing Sync Service
Publishes a local product to Mercado Libre or updates its linked listing

Actions:
- update: push the product's marketplace stock and price to the linked listing
- create: publish a new listing (or update, when the SKU is already linked)
  and record the SKU link

Size attributes follow the category rules Mercado Libre enforces for apparel:
pants use the size grid, tops a textual SIZE, accessories a single size.
"""
import logging
from typing import Any, Dict, List, Optional

from stockbridge.connectors.mercadolibre_connector import MercadoLibreConnector
from stockbridge.core.exceptions import InvalidSyncRequest, LinkNotFound, MissingSize, ProductNotFound
from stockbridge.domain.listing import ProductRow, SkuLink

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_ID = "MLC3530"
DEFAULT_CURRENCY = "CLP"

PANTS_KEYWORDS = ("pantalon", "pantalones", "jean", "jeans")
TOP_KEYWORDS = ("polera", "poleron", "buzo")
ACCESSORY_KEYWORDS = ("gorro", "calceta", "calcetines")

PANTS_SIZE_GRID_ID = "3947174"
PANTS_SIZE_GRID_ROWS = {
    "36": "3947174:1",
    "38": "3947174:2",
    "40": "3947174:3",
    "42": "3947174:4",
    "44": "3947174:5",
    "46": "3947174:6",
    "48": "3947174:7",
    "50": "3947174:8",
}
ONE_SIZE = "Único"

ACTIONS = ("update", "create")


def _matches(category: str, keywords) -> bool:
    return any(word in category for word in keywords)


def build_size_attributes(
    sku: str,
    category: Optional[str],
    size: Optional[str],
    base_attributes: Optional[List[Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Listing attributes with the size convention of the product's category

    Raises:
        MissingSize: A product that is not an accessory has no size
    """
    category = (category or "").lower()
    size = (size or "").strip()
    attributes = list(base_attributes or [])

    is_pants = _matches(category, PANTS_KEYWORDS)
    is_top = _matches(category, TOP_KEYWORDS)
    is_accessory = _matches(category, ACCESSORY_KEYWORDS)

    if not is_accessory and not size:
        raise MissingSize(sku, category)

    if is_pants:
        row_id = PANTS_SIZE_GRID_ROWS.get(size, PANTS_SIZE_GRID_ROWS["36"])
        attributes = [a for a in attributes if a.get("id") != "SIZE"]
        attributes.append({"id": "SIZE_GRID_ID", "value_id": PANTS_SIZE_GRID_ID})
        attributes.append({"id": "SIZE_GRID_ROW_ID", "value_id": row_id})
    elif is_top:
        attributes = [a for a in attributes if a.get("id") not in ("SIZE_GRID_ID", "SIZE_GRID_ROW_ID")]
        attributes.append({"id": "SIZE", "value_name": size})
    elif is_accessory:
        attributes.append({"id": "SIZE", "value_name": ONE_SIZE})

    return attributes


class ListingSyncService:
    """Runs update/create actions for one SKU"""

    def __init__(self, connector: MercadoLibreConnector, products, links, site_id: str = "MLC"):
        """
        Args:
            connector: Mercado Libre connector (broker-backed)
            products: Product store with find_by_sku (see ProductRepository)
            links: SKU link store with get_by_sku / upsert (see LinkRepository)
            site_id: Mercado Libre site the listings are published on
        """
        self.connector = connector
        self._products = products
        self._links = links
        self.site_id = site_id

    async def sync_item(
        self,
        action: str,
        sku: str,
        category_hint: Optional[str] = None,
        attributes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Run one sync action

        Returns:
            {"ok": True, "action": <action performed>, "item_id": <ML item id>}

        Raises:
            InvalidSyncRequest: Missing or unknown action, or missing SKU
            ProductNotFound: SKU is not in productos
            LinkNotFound: update requested for an unlinked SKU
            MissingSize: create requested for a sized product without size
        """
        action = (action or "").strip().lower()
        sku = (sku or "").strip()

        if not action or not sku:
            raise InvalidSyncRequest("action and sku are required")
        if action not in ACTIONS:
            raise InvalidSyncRequest(f"Invalid action: {action}")

        product = self._products.find_by_sku(sku)
        if product is None:
            raise ProductNotFound(sku)

        link = self._links.get_by_sku(sku)

        if action == "update":
            if link is None:
                raise LinkNotFound(sku)
            await self._update(link, product)
            return {"ok": True, "action": "update", "item_id": link.meli_item_id}

        if link is not None:
            logger.info(f"{sku} already linked to {link.meli_item_id}, updating instead of creating")
            await self._update(link, product)
            return {"ok": True, "action": "update", "item_id": link.meli_item_id}

        payload = self.build_listing_payload(product, category_hint, attributes)
        item = await self.connector.create_item(payload)

        item_id = str(item["id"])
        self._links.upsert(SkuLink(sku=sku, meli_item_id=item_id, meli_variation_id=None))
        return {"ok": True, "action": "create", "item_id": item_id}

    async def _update(self, link: SkuLink, product: ProductRow) -> Dict[str, Any]:
        return await self.connector.update_listing(
            link,
            quantity=int(product.stockml or 0),
            price=float(product.price or 0),
        )

    def build_listing_payload(
        self,
        product: ProductRow,
        category_hint: Optional[str] = None,
        attributes: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """POST /items body for a product"""
        return {
            "title": (product.name or "Producto sin nombre").strip(),
            "category_id": str(category_hint or DEFAULT_CATEGORY_ID),
            "price": float(product.price or 0),
            "currency_id": DEFAULT_CURRENCY,
            "available_quantity": int(product.stockml or 0),
            "buying_mode": "buy_it_now",
            "listing_type_id": "gold_special",
            "condition": "new",
            "site_id": self.site_id,
            "seller_custom_field": product.sku,
            "attributes": build_size_attributes(product.sku, product.categoria, product.talla, attributes),
        }
