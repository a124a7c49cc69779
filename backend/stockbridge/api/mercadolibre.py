"""
MercadoLibre API Endpoints
OAuth connection, credential admin, listing sync and the webhook processor

Handles:
- OAuth consent start and callback (redirects back to the dashboard)
- Connection health, stored credentials, manual entry and forced refresh
- Listing create/update by SKU and absolute stock push
- Inbound webhook notifications
"""
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from stockbridge.api.deps import (
    get_credentials_service,
    get_listing_sync_service,
    get_ml_connector,
    get_oauth_service,
)
from stockbridge.connectors.mercadolibre_connector import MercadoLibreConnector
from stockbridge.core.auth import TokenUser, get_current_user
from stockbridge.core.config import settings
from stockbridge.core.exceptions import (
    AuthRejectedAfterRefresh,
    CredentialConflict,
    CredentialsMissing,
    InvalidSyncRequest,
    LinkNotFound,
    MarketplaceRequestFailed,
    MercadoLibreError,
    MissingSize,
    ProductNotFound,
    RefreshFailed,
    TokenExchangeFailed,
)
from stockbridge.services.credentials_service import CredentialsService
from stockbridge.services.listing_sync_service import ListingSyncService
from stockbridge.services.meli_oauth_service import MeliOAuthService, with_query

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    CredentialsMissing: 404,
    RefreshFailed: 502,
    TokenExchangeFailed: 502,
    AuthRejectedAfterRefresh: 401,
    CredentialConflict: 409,
    LinkNotFound: 404,
    MarketplaceRequestFailed: 502,
    ProductNotFound: 404,
    MissingSize: 400,
    InvalidSyncRequest: 400,
}


def to_http_error(error: MercadoLibreError, overrides: Optional[Dict[type, int]] = None) -> HTTPException:
    """HTTPException carrying the error's message and its mapped status"""
    statuses = {**ERROR_STATUS, **(overrides or {})}
    status_code = next((statuses[cls] for cls in type(error).__mro__ if cls in statuses), 500)
    return HTTPException(status_code=status_code, detail=str(error))


# Pydantic models
class CredentialsUpdate(BaseModel):
    access_token: str = ""
    refresh_token: str = ""
    expires_at: Optional[Union[int, float, str]] = Field(
        None, description="Epoch seconds, epoch milliseconds or ISO-8601"
    )


class SyncItemRequest(BaseModel):
    action: Optional[str] = Field(None, description="update | create")
    sku: Optional[str] = None
    category_hint: Optional[str] = Field(None, description="Mercado Libre category id for create")
    attributes: Optional[List[Dict[str, Any]]] = None


class StockUpdate(BaseModel):
    quantity: int = Field(..., ge=0, description="Absolute available quantity")


# ============================================================================
# OAuth
# ============================================================================

def _error_redirect(reason: str, detail: str) -> RedirectResponse:
    url = with_query(settings.APP_REDIRECT_ERROR, {"reason": reason, "detail": detail[:500]})
    return RedirectResponse(url, status_code=302)


@router.get("/oauth/start")
async def oauth_start(service: MeliOAuthService = Depends(get_oauth_service)):
    """Consent URL for connecting the Mercado Libre account"""
    return service.build_authorization_url()


@router.get("/oauth/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    service: MeliOAuthService = Depends(get_oauth_service),
):
    """
    Provider redirect target

    Exchanges the code, stores the credentials and sends the browser back to
    the dashboard with either ml=connected or the failure reason.
    """
    if not code:
        return _error_redirect("missing_code", "Authorization code missing from callback")

    try:
        grant = await service.request_tokens(code)
    except TokenExchangeFailed as e:
        return _error_redirect("token_exchange", e.body or str(e))
    except Exception as e:
        logger.exception("ML OAuth callback failed during code exchange")
        return _error_redirect("exception", str(e))

    try:
        service.store_grant(grant)
    except Exception as e:
        logger.exception("Could not store ML credentials from OAuth callback")
        return _error_redirect("db_upsert", str(e))

    logger.info("Mercado Libre account connected")
    return RedirectResponse(with_query(settings.APP_REDIRECT_SUCCESS, {"state": state}), status_code=302)


# ============================================================================
# Credentials admin
# ============================================================================

@router.api_route("/health", methods=["GET", "POST"])
async def ml_health(service: CredentialsService = Depends(get_credentials_service)):
    """Connection status of the Mercado Libre account"""
    try:
        return service.get_health()
    except Exception as e:
        logger.exception("ML health check failed")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/credentials")
async def get_credentials(service: CredentialsService = Depends(get_credentials_service)):
    """Stored credentials, tokens masked"""
    current = service.get_current()
    if current is None:
        raise HTTPException(status_code=404, detail="No Mercado Libre credentials stored")
    return current


@router.put("/credentials")
async def save_credentials(
    body: CredentialsUpdate,
    service: CredentialsService = Depends(get_credentials_service),
    user: TokenUser = Depends(get_current_user),
):
    """Manual credential entry from the admin page"""
    try:
        record = service.save_manual(body.access_token, body.refresh_token, body.expires_at)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Saving ML credentials failed")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"ML credentials saved manually by {user.email or user.id}")
    return {"ok": True, "expires_at": record.expires_at.isoformat(), "version": record.version}


@router.post("/refresh-token")
async def refresh_token(
    service: CredentialsService = Depends(get_credentials_service),
    user: TokenUser = Depends(get_current_user),
):
    """Force a token refresh"""
    try:
        return await service.refresh()
    except MercadoLibreError as e:
        raise to_http_error(e)
    except Exception as e:
        logger.exception("Forced ML token refresh failed")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Listings
# ============================================================================

@router.post("/sync-item")
async def sync_item(
    body: SyncItemRequest,
    service: ListingSyncService = Depends(get_listing_sync_service),
    user: TokenUser = Depends(get_current_user),
):
    """Create or update the listing of one SKU"""
    try:
        return await service.sync_item(body.action, body.sku, body.category_hint, body.attributes)
    except MercadoLibreError as e:
        raise to_http_error(e, overrides={LinkNotFound: 400})
    except Exception as e:
        logger.exception(f"sync-item failed for {body.sku}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/stock/{sku}")
async def push_stock(
    sku: str,
    body: StockUpdate,
    connector: MercadoLibreConnector = Depends(get_ml_connector),
    user: TokenUser = Depends(get_current_user),
):
    """Set the absolute stock of the listing linked to a SKU"""
    try:
        item = await connector.push_stock(sku, body.quantity)
    except MercadoLibreError as e:
        raise to_http_error(e)
    except Exception as e:
        logger.exception(f"Stock push failed for {sku}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"ok": True, "sku": sku, "quantity": body.quantity, "item": item}


# ============================================================================
# Webhook
# ============================================================================

@router.post("/webhook")
async def process_webhook(request: Request):
    """Log the notification body and acknowledge it"""
    body = (await request.body()).decode("utf-8", errors="replace")
    logger.info(f"ML webhook received: {body}")
    return {"ok": True}
