"""
SQLite-backed supersession repository.

Relationships survive process restarts. SQLite calls are blocking, so each
public coroutine runs its query in a worker thread via asyncio.to_thread.
"""

import asyncio
import sqlite3
import threading
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from ..config import Config
from ..errors import RepositoryUnavailableError
from .models import SupersessionRelationship
from .repository import SupersessionRepository

# -----------------------------------------------------------------------------
# Schema Definitions
# -----------------------------------------------------------------------------

SCHEMA_VERSION = 1

CREATE_SUPERSESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS supersessions (
    document_id TEXT PRIMARY KEY,
    superseded_path TEXT NOT NULL,
    superseded_document_id TEXT,
    registered_at TEXT NOT NULL
);
"""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_supersessions_target_id "
    "ON supersessions(superseded_document_id);",
    "CREATE INDEX IF NOT EXISTS idx_supersessions_target_path "
    "ON supersessions(superseded_path);",
]


class SqliteSupersessionRepository(SupersessionRepository):
    """
    Durable supersession storage.

    Args:
        db_path: Path to the SQLite file. Use ":memory:" for testing.
    """

    def __init__(self, db_path: str = Config.SUPERSESSION_DB_PATH):
        self.db_path = db_path
        self._persistent_conn: sqlite3.Connection | None = None
        self._memory_lock = threading.Lock()

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        else:
            # Every new connection to ":memory:" is a fresh empty database.
            self._persistent_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._persistent_conn.row_factory = sqlite3.Row

        self._init_schema()
        logger.info(f"Supersession store initialized at {db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        if self._persistent_conn is not None:
            with self._memory_lock:
                try:
                    yield self._persistent_conn
                    self._persistent_conn.commit()
                except Exception:
                    self._persistent_conn.rollback()
                    raise
        else:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _utcnow(self) -> datetime:
        return datetime.now(timezone.utc)

    def close(self):
        """Close the database connection (for in-memory databases)."""
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _init_schema(self):
        """Initialize or migrate the database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(CREATE_SCHEMA_VERSION_TABLE)

            cursor.execute("SELECT MAX(version) FROM schema_version")
            row = cursor.fetchone()
            current_version = row[0] if row[0] is not None else 0

            if current_version < SCHEMA_VERSION:
                logger.info(f"Migrating supersession schema from v{current_version} to v{SCHEMA_VERSION}")
                self._apply_migrations(cursor, current_version)
                cursor.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, self._utcnow().isoformat()),
                )

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        if from_version < 1:
            cursor.execute(CREATE_SUPERSESSIONS_TABLE)
            for index_sql in CREATE_INDEXES:
                cursor.execute(index_sql)
            logger.info("Applied supersession schema v1")

    # -------------------------------------------------------------------------
    # Sync implementations (run in worker threads)
    # -------------------------------------------------------------------------

    def _fetch(self, sql: str, params: tuple = ()) -> list[SupersessionRelationship]:
        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_relationship(row) for row in rows]

    def _upsert_sync(self, relationship: SupersessionRelationship) -> None:
        with self._get_connection() as conn:
            self._write_relationship(conn, relationship)

    def _apply_changes_sync(
        self, upserts: list[SupersessionRelationship], deletes: list[str]
    ) -> None:
        # One connection context is one transaction: commit on exit, rollback on error.
        with self._get_connection() as conn:
            for relationship in upserts:
                self._write_relationship(conn, relationship)
            for document_id in deletes:
                conn.execute("DELETE FROM supersessions WHERE document_id = ?", (document_id,))

    def _write_relationship(
        self, conn: sqlite3.Connection, relationship: SupersessionRelationship
    ) -> None:
        conn.execute(
            """
            INSERT INTO supersessions
            (document_id, superseded_path, superseded_document_id, registered_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(document_id) DO UPDATE SET
                superseded_path = excluded.superseded_path,
                superseded_document_id = excluded.superseded_document_id,
                registered_at = excluded.registered_at
            """,
            (
                relationship.document_id,
                relationship.superseded_path,
                relationship.superseded_document_id,
                self._utcnow().isoformat(),
            ),
        )

    def _delete_sync(self, document_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM supersessions WHERE document_id = ?", (document_id,)
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_relationship(row: sqlite3.Row) -> SupersessionRelationship:
        return SupersessionRelationship(
            document_id=row["document_id"],
            superseded_path=row["superseded_path"],
            superseded_document_id=row["superseded_document_id"],
        )

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error(f"Supersession store error ({self.db_path}): {e}")
            raise RepositoryUnavailableError(f"Supersession store failed: {e}") from e

    # -------------------------------------------------------------------------
    # SupersessionRepository
    # -------------------------------------------------------------------------

    async def get(self, document_id: str) -> SupersessionRelationship | None:
        rows = await self._run(
            self._fetch, "SELECT * FROM supersessions WHERE document_id = ?", (document_id,)
        )
        return rows[0] if rows else None

    async def find_superseding(
        self, superseded_document_id: str
    ) -> SupersessionRelationship | None:
        rows = await self.find_all_superseding(superseded_document_id)
        return rows[0] if rows else None

    async def find_all_superseding(
        self, superseded_document_id: str
    ) -> list[SupersessionRelationship]:
        return await self._run(
            self._fetch,
            "SELECT * FROM supersessions WHERE superseded_document_id = ? ORDER BY document_id",
            (superseded_document_id,),
        )

    async def find_unresolved(self, superseded_path: str) -> list[SupersessionRelationship]:
        return await self._run(
            self._fetch,
            "SELECT * FROM supersessions "
            "WHERE superseded_path = ? AND superseded_document_id IS NULL "
            "ORDER BY document_id",
            (superseded_path,),
        )

    async def upsert(self, relationship: SupersessionRelationship) -> None:
        await self._run(self._upsert_sync, relationship)
        logger.debug(
            f"Stored supersession {relationship.document_id} -> {relationship.superseded_path}"
        )

    async def delete(self, document_id: str) -> bool:
        return await self._run(self._delete_sync, document_id)

    async def apply_changes(
        self,
        upserts: Iterable[SupersessionRelationship] = (),
        deletes: Iterable[str] = (),
    ) -> None:
        await self._run(self._apply_changes_sync, list(upserts), list(deletes))

    async def list_all(self) -> list[SupersessionRelationship]:
        return await self._run(self._fetch, "SELECT * FROM supersessions ORDER BY document_id")
