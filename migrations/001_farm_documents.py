"""
Initial Schema Migration: farm document table.

Migration ID: 001
Migration Name: farm_documents

One row per player. The whole FarmState aggregate lives in the JSONB
document column; saves merge top-level keys with `document || EXCLUDED.document`.
"""

import psycopg2
import sys
import logging

logger = logging.getLogger(__name__)


def run_migration(database_url: str):
    """Create farm_users if it does not exist."""
    logger.info("[MIGRATION 001] Starting: farm_documents")

    conn = psycopg2.connect(database_url)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS farm_users (
                user_id TEXT PRIMARY KEY,
                username TEXT,
                document JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.commit()
        logger.info("[MIGRATION 001] farm_users ready")
    except Exception as e:
        conn.rollback()
        logger.error(f"[MIGRATION 001] Failed: {e}")
        raise
    finally:
        cursor.close()
        conn.close()


if __name__ == "__main__":
    import os
    database_url = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("DATABASE_URL", "postgresql://localhost/cyberfarm")
    run_migration(database_url)
