"""
Database access (Supabase)

Two ways in:
- Supabase client (table access for credentials, links, products, alerts)
- psycopg2 direct connections (schema scripts and health checks)
"""
import logging
import time
from functools import lru_cache

import psycopg2
from supabase import Client, create_client

from .config import settings

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = 10


# ============================================================================
# Supabase Client
# ============================================================================

@lru_cache()
def get_supabase() -> Client:
    """
    FastAPI dependency returning the service-role Supabase client

    Created on first use so that importing the app does not require
    Supabase to be configured.

    Usage:
        @app.get("/data")
        def get_data(sb: Client = Depends(get_supabase)):
            ...
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be configured")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


# ============================================================================
# psycopg2 Direct Connections
# ============================================================================

def get_db_connection_with_retry(max_retries=3, retry_delay=1.0):
    """
    Get a psycopg2 connection, retrying on connection failures

    Args:
        max_retries: Maximum number of connection attempts (default: 3)
        retry_delay: Initial delay between retries in seconds (default: 1.0)

    Raises:
        psycopg2.OperationalError: If all retry attempts fail
    """
    if not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL not configured")

    last_error = None

    for attempt in range(1, max_retries + 1):
        try:
            logger.debug(f"Database connection attempt {attempt}/{max_retries}")
            conn = psycopg2.connect(settings.DATABASE_URL, connect_timeout=CONNECTION_TIMEOUT)

            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            cursor.close()

            return conn

        except psycopg2.OperationalError as e:
            last_error = e
            logger.warning(f"Connection error on attempt {attempt}/{max_retries}: {e}")

            if attempt < max_retries:
                delay = retry_delay * (2 ** (attempt - 1))
                logger.info(f"Retrying in {delay:.2f} seconds...")
                time.sleep(delay)

    logger.error(f"All {max_retries} connection attempts failed")
    raise last_error
