"""
StockBridge - Backend API
Mercado Libre credential broker, relays and inventory dashboard backend
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)

from stockbridge.api import alerts, mercadolibre, relay, woo
from stockbridge.core.config import settings
from stockbridge.core.cors import MirrorCORSMiddleware
from stockbridge.core.database import get_db_connection_with_retry
from stockbridge.domain.alert import ALERT_EVENT, AppAlert
from stockbridge.services.alert_bus import AlertBus

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def log_alert(alert: AppAlert) -> None:
    logger.info(f"Alert [{alert.type.value}] ({alert.channel or '-'}) {alert.message}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    app.state.alert_bus = AlertBus()
    app.state.alert_bus.subscribe(ALERT_EVENT, log_alert)
    logger.info(f"{settings.API_TITLE} {settings.API_VERSION} started")
    try:
        yield
    finally:
        await app.state.http_client.aclose()


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(MirrorCORSMiddleware)

# Include API routers
app.include_router(relay.router)
app.include_router(mercadolibre.router, prefix="/api/v1/mercadolibre", tags=["MercadoLibre"])
app.include_router(alerts.router, prefix="/api/v1/alerts", tags=["Alerts"])
app.include_router(woo.router, prefix="/api/v1/woo", tags=["WooCommerce"])


@app.get("/")
async def root():
    """Root endpoint - API status"""
    return {
        "message": "StockBridge API",
        "status": "online",
        "version": settings.API_VERSION,
    }


def _database_status() -> dict:
    """psycopg2 round trip with a single connection attempt"""
    try:
        conn = get_db_connection_with_retry(max_retries=1, retry_delay=0.5)
        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
        finally:
            conn.close()
    except Exception as e:
        return {"connected": False, "error": str(e)}
    return {"connected": True, "error": None}


@app.get("/health")
async def health():
    """Database reachability and which integrations are configured"""
    database = _database_status()
    return {
        "status": "healthy" if database["connected"] else "degraded",
        "service": "stockbridge-api",
        "version": settings.API_VERSION,
        "database": database,
        "integrations": {
            "supabase": bool(settings.SUPABASE_URL),
            "mercadolibre": bool(settings.ML_CLIENT_ID),
            "woo_web": bool(settings.WOO_SYNC_URL),
            "woo_b2b": bool(settings.WOO_B2B_SYNC_URL),
        },
    }
