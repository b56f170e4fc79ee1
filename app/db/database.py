import copy
import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)


class StoredDocumentError(Exception):
    """A persisted farm document could not be decoded."""

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Stored document for user {user_id} is unreadable: {reason}")


def _decode_document(user_id: str, raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoredDocumentError(user_id, f"invalid JSON ({e.msg})")
        if isinstance(decoded, dict):
            return decoded
    raise StoredDocumentError(user_id, f"expected an object, got {type(raw).__name__}")


class DocumentStore:
    """
    Key-value store of farm documents, one per user.

    save() merges top-level keys into the stored document; keys absent from
    the partial are left untouched.
    """

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save(self, user_id: str, partial: Dict[str, Any]) -> None:
        raise NotImplementedError

    def list_user_ids(self) -> List[str]:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._documents.get(user_id)
            return copy.deepcopy(document) if document is not None else None

    def save(self, user_id: str, partial: Dict[str, Any]) -> None:
        with self._lock:
            document = self._documents.setdefault(user_id, {})
            document.update(copy.deepcopy(partial))

    def list_user_ids(self) -> List[str]:
        with self._lock:
            return list(self._documents.keys())


class Database(DocumentStore):
    """PostgreSQL document store with connection pooling."""

    _instance = None
    _pool = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
            cls._instance._init_pool()
        return cls._instance

    def _init_pool(self):
        """Initialize connection pool."""
        from app.core.config import settings

        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=settings.db_pool_min,
                maxconn=settings.db_pool_max,
                dsn=settings.database_url,
                cursor_factory=psycopg2.extras.RealDictCursor
            )
            logger.info("[DB] PostgreSQL connection pool initialized")
        except Exception as e:
            logger.error(f"[DB] Failed to initialize connection pool: {e}")
            raise

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections from pool."""
        conn = None
        try:
            conn = self._pool.getconn()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self._pool.putconn(conn)

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Load a user's farm document."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT document
                FROM farm_users
                WHERE user_id = %s
            """, (user_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return _decode_document(user_id, row['document'])

    def save(self, user_id: str, partial: Dict[str, Any]) -> None:
        """Upsert a user's farm document, merging top-level keys."""
        username = (partial.get('user') or {}).get('username')

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO farm_users (user_id, username, document, created_at, updated_at)
                VALUES (%s, %s, %s, NOW(), NOW())
                ON CONFLICT (user_id) DO UPDATE
                SET document = farm_users.document || EXCLUDED.document,
                    username = COALESCE(EXCLUDED.username, farm_users.username),
                    updated_at = NOW()
            """, (user_id, username, psycopg2.extras.Json(partial)))

    def list_user_ids(self) -> List[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT user_id FROM farm_users ORDER BY created_at")
            return [row['user_id'] for row in cursor.fetchall()]

    def close(self):
        if self._pool is not None:
            self._pool.closeall()
            logger.info("[DB] Connection pool closed")


_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """PostgreSQL when DATABASE_URL is set, otherwise the in-memory store."""
    global _store
    if _store is None:
        from app.core.config import settings

        if settings.database_url:
            _store = Database()
        else:
            logger.warning("[DB] DATABASE_URL not set - using in-memory store, data will not survive restarts")
            _store = InMemoryDocumentStore()
    return _store
