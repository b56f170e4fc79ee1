#!/usr/bin/env python3
"""
Unified migration runner for CyberFarm.
Runs all pending migrations in order on startup.
"""

import sys
import logging
import psycopg2
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.config import settings

logger = logging.getLogger(__name__)


MIGRATIONS = [
    {
        "id": "001",
        "name": "farm_documents",
        "module": "migrations.001_farm_documents",
        "function": "run_migration"
    },
    {
        "id": "002",
        "name": "referral_index",
        "module": "migrations.002_referral_index",
        "function": "run_migration"
    },
]


def run_migration(database_url: str, migration_id: str, migration_name: str, module_path: str, function_name: str):
    """Run a single migration with explicit database_url."""
    logger.info(f"[MIGRATION {migration_id}] Starting: {migration_name}")

    try:
        module = __import__(module_path, fromlist=[function_name])
        migration_func = getattr(module, function_name)

        migration_func(database_url)

        _record_migration(database_url, migration_id, migration_name)

        logger.info(f"[MIGRATION {migration_id}] Completed successfully")

    except Exception as e:
        logger.error(f"[MIGRATION {migration_id}] Failed: {e}")
        raise


def _initialize_tracker(database_url: str):
    """Initialize the migrations table."""
    conn = psycopg2.connect(database_url)
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS _migrations (
            id SERIAL PRIMARY KEY,
            migration_id TEXT UNIQUE NOT NULL,
            migration_name TEXT NOT NULL,
            applied_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    conn.commit()
    cursor.close()
    conn.close()


def _applied_migrations(database_url: str) -> set:
    conn = psycopg2.connect(database_url)
    cursor = conn.cursor()

    cursor.execute("SELECT migration_id FROM _migrations")
    applied = {row[0] for row in cursor.fetchall()}

    cursor.close()
    conn.close()

    return applied


def _record_migration(database_url: str, migration_id: str, migration_name: str):
    """Record a migration as applied."""
    conn = psycopg2.connect(database_url)
    cursor = conn.cursor()

    try:
        cursor.execute(
            "INSERT INTO _migrations (migration_id, migration_name) VALUES (%s, %s)",
            (migration_id, migration_name)
        )
        conn.commit()
    except psycopg2.IntegrityError:
        conn.rollback()
        logger.debug(f"[MIGRATION {migration_id}] Already recorded in migration history")
    finally:
        cursor.close()
        conn.close()


def run_all_migrations():
    """Run all pending migrations in order. No-op without a database."""
    database_url = settings.database_url
    if not database_url:
        logger.info("[MIGRATION] No DATABASE_URL configured, skipping migrations")
        return

    logger.info("=" * 60)
    logger.info("Starting automatic migration runner")
    logger.info("=" * 60)

    _initialize_tracker(database_url)
    applied = _applied_migrations(database_url)

    pending_migrations = [m for m in MIGRATIONS if m["id"] not in applied]
    for migration in MIGRATIONS:
        if migration["id"] in applied:
            logger.info(f"[SKIP] Migration {migration['id']} ({migration['name']}) already applied")

    if not pending_migrations:
        logger.info("All migrations are up to date!")
        return

    logger.info(f"Found {len(pending_migrations)} pending migration(s)")

    for migration in pending_migrations:
        run_migration(
            database_url,
            migration["id"],
            migration["name"],
            migration["module"],
            migration["function"]
        )

    logger.info("All migrations completed successfully!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    run_all_migrations()
