"""
FastAPI dependencies: repositories, services and connectors per request

The shared httpx.AsyncClient and AlertBus live on app.state (created in the
app lifespan); everything else is cheap to build and is built per request.
"""
import httpx
from fastapi import Depends, HTTPException, Request
from supabase import Client

from stockbridge.connectors.mercadolibre_connector import MercadoLibreConnector
from stockbridge.connectors.woo_sync_connector import WooSyncConnector
from stockbridge.core.config import settings
from stockbridge.core.database import get_supabase
from stockbridge.repositories import AlertRepository, CredentialsRepository, LinkRepository, ProductRepository
from stockbridge.services.alert_bus import AlertBus
from stockbridge.services.credential_broker import CredentialBroker
from stockbridge.services.credentials_service import CredentialsService
from stockbridge.services.listing_sync_service import ListingSyncService
from stockbridge.services.meli_oauth_service import MeliOAuthService

WOO_CHANNELS = ("web", "b2b")


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


# ============================================================================
# Repositories
# ============================================================================

def get_credentials_repository(sb: Client = Depends(get_supabase)) -> CredentialsRepository:
    return CredentialsRepository(sb)


def get_link_repository(sb: Client = Depends(get_supabase)) -> LinkRepository:
    return LinkRepository(sb)


def get_product_repository(sb: Client = Depends(get_supabase)) -> ProductRepository:
    return ProductRepository(sb)


def get_alert_repository(sb: Client = Depends(get_supabase)) -> AlertRepository:
    return AlertRepository(sb)


# ============================================================================
# Services
# ============================================================================

def get_alert_bus(request: Request, repository: AlertRepository = Depends(get_alert_repository)) -> AlertBus:
    """The app-wide alert bus (created in the lifespan), persisting through the request's repository"""
    return request.app.state.alert_bus.with_repository(repository)


def get_broker(
    store: CredentialsRepository = Depends(get_credentials_repository),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> CredentialBroker:
    return CredentialBroker(
        store=store,
        http_client=http_client,
        client_id=settings.ML_CLIENT_ID,
        client_secret=settings.ML_CLIENT_SECRET,
        token_url=settings.ml_token_url,
        account_id=settings.ML_ACCOUNT_ID,
    )


def get_ml_connector(
    broker: CredentialBroker = Depends(get_broker),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    links: LinkRepository = Depends(get_link_repository),
) -> MercadoLibreConnector:
    return MercadoLibreConnector(broker, http_client, links, base_url=settings.ML_API_BASE)


def get_oauth_service(
    store: CredentialsRepository = Depends(get_credentials_repository),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> MeliOAuthService:
    if not settings.ML_CLIENT_ID or not settings.ML_REDIRECT_URI:
        raise HTTPException(status_code=500, detail="ML_CLIENT_ID and ML_REDIRECT_URI must be configured")

    return MeliOAuthService(
        store=store,
        http_client=http_client,
        client_id=settings.ML_CLIENT_ID,
        client_secret=settings.ML_CLIENT_SECRET,
        redirect_uri=settings.ML_REDIRECT_URI,
        token_url=settings.ml_token_url,
        auth_base=settings.ML_AUTH_BASE,
        account_id=settings.ML_ACCOUNT_ID,
    )


def get_credentials_service(
    store: CredentialsRepository = Depends(get_credentials_repository),
    broker: CredentialBroker = Depends(get_broker),
    alerts: AlertBus = Depends(get_alert_bus),
) -> CredentialsService:
    return CredentialsService(store, broker, alerts)


def get_listing_sync_service(
    connector: MercadoLibreConnector = Depends(get_ml_connector),
    products: ProductRepository = Depends(get_product_repository),
    links: LinkRepository = Depends(get_link_repository),
) -> ListingSyncService:
    return ListingSyncService(connector, products, links, site_id=settings.ML_SITE_ID)


def get_woo_connector(
    channel: str,
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> WooSyncConnector:
    """Connector for the store named by the {channel} path parameter"""
    if channel not in WOO_CHANNELS:
        raise HTTPException(status_code=404, detail=f"Unknown store channel: {channel}")

    base_url = settings.WOO_SYNC_URL if channel == "web" else settings.WOO_B2B_SYNC_URL
    return WooSyncConnector(base_url, http_client, channel=channel)
