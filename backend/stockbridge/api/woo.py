"""
WooCommerce Sync Endpoints
Catalog pull and stock push through the woo-sync functions

{channel} is "web" (retail store) or "b2b".
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from stockbridge.api.deps import get_woo_connector
from stockbridge.connectors.woo_sync_connector import WooSyncConnector
from stockbridge.core.auth import TokenUser, get_current_user
from stockbridge.core.exceptions import WooSyncError

logger = logging.getLogger(__name__)

router = APIRouter()


class WooStockUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


def _woo_http_error(error: WooSyncError) -> HTTPException:
    return HTTPException(status_code=502, detail=str(error))


@router.get("/{channel}/health")
async def woo_health(connector: WooSyncConnector = Depends(get_woo_connector)):
    try:
        return await connector.health()
    except WooSyncError as e:
        raise _woo_http_error(e)


@router.post("/{channel}/sync-down")
async def woo_sync_down(
    connector: WooSyncConnector = Depends(get_woo_connector),
    user: TokenUser = Depends(get_current_user),
):
    """Pull the store catalog into the database"""
    try:
        result = await connector.sync_down()
    except WooSyncError as e:
        raise _woo_http_error(e)
    return result.model_dump()


@router.put("/{channel}/stock/{sku}")
async def woo_push_stock(
    sku: str,
    body: WooStockUpdate,
    connector: WooSyncConnector = Depends(get_woo_connector),
    user: TokenUser = Depends(get_current_user),
):
    """Set the absolute stock of a local SKU in the store"""
    try:
        result = await connector.push_stock_local(sku, body.quantity)
    except WooSyncError as e:
        raise _woo_http_error(e)

    logger.info(f"Pushed stock {body.quantity} for {sku} to woo ({connector.channel})")
    return {"ok": True, "sku": sku, "quantity": body.quantity, "result": result}
