#!/usr/bin/env python3
"""
Refresh MercadoLibre Access Token
Forces a refresh of the stored credential record through the CredentialBroker

Tokens expire every 6 hours. The API refreshes them on demand; this script is
for cron jobs or for recovering after a long idle period.

Usage:
    cd backend
    python scripts/sync/refresh_ml_token.py [--if-needed]

Options:
    --if-needed    Only refresh when the stored token is inside the refresh margin
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
BACKEND_DIR = Path(__file__).parent.parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from dotenv import load_dotenv

load_dotenv(BACKEND_DIR / '.env')

import httpx

from stockbridge.core.config import settings
from stockbridge.core.database import get_supabase
from stockbridge.core.exceptions import MercadoLibreError
from stockbridge.repositories import CredentialsRepository
from stockbridge.services.credential_broker import CredentialBroker

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)


async def refresh(if_needed: bool) -> int:
    store = CredentialsRepository(get_supabase())

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        broker = CredentialBroker(
            store=store,
            http_client=client,
            client_id=settings.ML_CLIENT_ID,
            client_secret=settings.ML_CLIENT_SECRET,
            token_url=settings.ml_token_url,
            account_id=settings.ML_ACCOUNT_ID,
        )

        try:
            if if_needed:
                token = await broker.get_valid_access_token()
                logger.info(f"Access token valid: {token[:12]}...")
            else:
                record = await broker.force_refresh()
                logger.info(f"Access token refreshed: {record.access_token[:12]}...")
        except MercadoLibreError as e:
            logger.error(f"❌ {e}")
            return 1

    record = store.get_latest(settings.ML_ACCOUNT_ID)
    logger.info(f"Expires at: {record.expires_at.isoformat()} (version {record.version})")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Refresh the stored Mercado Libre access token")
    parser.add_argument("--if-needed", action="store_true", help="Skip the refresh while the token is fresh")
    args = parser.parse_args()

    logger.info("=" * 80)
    logger.info(f"MERCADOLIBRE TOKEN REFRESH (account {settings.ML_ACCOUNT_ID})")
    logger.info("=" * 80)

    if not settings.ML_CLIENT_ID or not settings.ML_CLIENT_SECRET:
        logger.error("❌ ML_CLIENT_ID and ML_CLIENT_SECRET must be set")
        sys.exit(1)

    sys.exit(asyncio.run(refresh(args.if_needed)))


if __name__ == "__main__":
    main()
