"""
Listing Domain Models

SKU to Mercado Libre listing links, and the local product rows a listing is
published from.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SkuLink(BaseModel):
    """Maps a local SKU to a marketplace item and, for variant listings, a variation"""

    sku: str = Field(..., description="Local stock-keeping unit")
    meli_item_id: str = Field(..., description="Mercado Libre item id (e.g. MLC123)")
    meli_variation_id: Optional[str] = Field(None, description="Variation id, when the listing has variants")

    @property
    def has_variation(self) -> bool:
        return bool(self.meli_variation_id)

    def stock_payload(self, quantity: int, price: Optional[float] = None) -> Dict[str, Any]:
        """
        Body for PUT /items/{item_id}

        Variant listings update only their own variation entry; simple
        listings update the item's top-level quantity. Never both.
        """
        fields: Dict[str, Any] = {"available_quantity": quantity}
        if price is not None:
            fields["price"] = price

        if self.has_variation:
            return {"variations": [{"id": int(self.meli_variation_id), **fields}]}
        return fields


class ProductRow(BaseModel):
    """Read-only view of a row in the productos table"""

    sku: str
    name: Optional[str] = None
    price: Optional[float] = None
    stockml: Optional[int] = Field(None, description="Stock assigned to Mercado Libre")
    categoria: Optional[str] = None
    talla: Optional[str] = Field(None, description="Size")
