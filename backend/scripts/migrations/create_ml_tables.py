#!/usr/bin/env python3
"""
Script: create_ml_tables.py
Purpose: Create the tables used by the Mercado Libre integration and the alert feed

Tables:
- ml_credentials   one OAuth credential record per account (versioned)
- ml_links         SKU to Mercado Libre item / variation
- alerts           dashboard alert feed

Usage:
    cd backend
    python scripts/migrations/create_ml_tables.py [--dry-run]

Options:
    --dry-run    Print the SQL without executing it
"""
import argparse
import logging
import sys
from pathlib import Path

# Add backend to path
BACKEND_DIR = Path(__file__).parent.parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from dotenv import load_dotenv

load_dotenv(BACKEND_DIR / '.env')

from stockbridge.core.database import get_db_connection_with_retry

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)

STATEMENTS = [
    (
        "ml_credentials",
        """
        CREATE TABLE IF NOT EXISTS ml_credentials (
            account_id    TEXT PRIMARY KEY,
            access_token  TEXT NOT NULL,
            refresh_token TEXT NOT NULL,
            expires_at    TIMESTAMPTZ NOT NULL,
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            version       INTEGER NOT NULL DEFAULT 0
        )
        """,
    ),
    (
        "ml_links",
        """
        CREATE TABLE IF NOT EXISTS ml_links (
            sku               TEXT PRIMARY KEY,
            meli_item_id      TEXT NOT NULL,
            meli_variation_id TEXT,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
    ),
    (
        "alerts",
        """
        CREATE TABLE IF NOT EXISTS alerts (
            id         UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            type       TEXT NOT NULL CHECK (type IN ('low-stock', 'error', 'sync', 'info', 'b2b')),
            message    TEXT NOT NULL,
            channel    TEXT,
            read       BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
    ),
    (
        "alerts_created_at_idx",
        "CREATE INDEX IF NOT EXISTS alerts_created_at_idx ON alerts (created_at DESC)",
    ),
]


def print_header(title: str):
    """Print formatted header"""
    logger.info(f"\n{'='*60}")
    logger.info(f"  {title}")
    logger.info(f"{'='*60}\n")


def run(dry_run: bool = False):
    print_header("MERCADO LIBRE TABLES")

    if dry_run:
        for name, sql in STATEMENTS:
            logger.info(f"-- {name}")
            logger.info(sql.strip() + ";\n")
        return

    conn = get_db_connection_with_retry()
    try:
        cursor = conn.cursor()
        for name, sql in STATEMENTS:
            cursor.execute(sql)
            logger.info(f"✅ {name}")
        conn.commit()
        cursor.close()
    except Exception:
        conn.rollback()
        logger.exception("❌ Migration failed, rolled back")
        raise
    finally:
        conn.close()


def main():
    parser = argparse.ArgumentParser(description="Create Mercado Libre integration tables")
    parser.add_argument("--dry-run", action="store_true", help="Print SQL without executing")
    args = parser.parse_args()
    run(dry_run=args.dry_run)


if __name__ == "__main__":
    main()
