"""
WooCommerce sync payloads
"""
from typing import List, Optional

from pydantic import BaseModel


class WooItem(BaseModel):
    """Catalog entry returned by the woo-sync functions (retail and B2B)"""

    id: int
    name: str
    sku: str
    type: Optional[str] = None
    manage_stock: Optional[bool] = None
    stock_quantity: Optional[int] = None
    price: Optional[float] = None
    status: Optional[str] = None


class SyncDownResult(BaseModel):
    ok: bool
    products: List[WooItem]
    count: int = 0
