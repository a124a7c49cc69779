"""
Listing Repository - SKU links (ml_links) and product rows (productos)
"""
from typing import Optional

from supabase import Client

from stockbridge.domain.listing import ProductRow, SkuLink


class LinkRepository:
    """SKU to Mercado Libre listing links. Rows are never deleted here."""

    TABLE = "ml_links"

    def __init__(self, client: Client):
        self._client = client

    def get_by_sku(self, sku: str) -> Optional[SkuLink]:
        response = (
            self._client.table(self.TABLE)
            .select("sku, meli_item_id, meli_variation_id")
            .eq("sku", sku)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows or not rows[0].get("meli_item_id"):
            return None

        row = rows[0]
        variation = row.get("meli_variation_id")
        return SkuLink(
            sku=row.get("sku") or sku,
            meli_item_id=str(row["meli_item_id"]),
            meli_variation_id=str(variation) if variation is not None else None,
        )

    def upsert(self, link: SkuLink) -> SkuLink:
        self._client.table(self.TABLE).upsert(link.model_dump(), on_conflict="sku").execute()
        return link


class ProductRepository:
    """Read-only access to the productos table"""

    TABLE = "productos"

    def __init__(self, client: Client):
        self._client = client

    def find_by_sku(self, sku: str) -> Optional[ProductRow]:
        response = (
            self._client.table(self.TABLE)
            .select("sku, name, price, stockml, categoria, talla")
            .eq("sku", sku)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows:
            return None
        return ProductRow(**{**rows[0], "sku": rows[0].get("sku") or sku})
