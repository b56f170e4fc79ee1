"""
Migration 002: index players by referrer.

Lets payout and support tooling find a referrer's downline without
scanning every document.
"""

import psycopg2
import logging

logger = logging.getLogger(__name__)


def run_migration(database_url: str):
    logger.info("[MIGRATION 002] Starting: referral_index")

    conn = psycopg2.connect(database_url)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_farm_users_referral_id
            ON farm_users ((document -> 'user' ->> 'referral_id'))
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_farm_users_updated_at
            ON farm_users (updated_at DESC)
        """)
        conn.commit()
        logger.info("[MIGRATION 002] Indexes created")
    except Exception as e:
        conn.rollback()
        logger.error(f"[MIGRATION 002] Failed: {e}")
        raise
    finally:
        cursor.close()
        conn.close()
