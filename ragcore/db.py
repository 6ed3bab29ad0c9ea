"""SQLite payload table backing the FAISS gateway.

Stores, per collection:
- The encoded payload of every chunk, keyed by its (signed) chunk id
- A document_id column for filtered scans and deletes
"""
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

logger = structlog.get_logger()


class PayloadStore:
    """Chunk payloads persisted in a single SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        """Create the points table and its index if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS points (
                    id INTEGER PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_points_document_id
                ON points(document_id)
            """)

            conn.commit()
            logger.info("payload_store_initialized", db_path=str(self.db_path))

        except Exception as e:
            conn.rollback()
            logger.error("payload_store_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    def upsert_payloads(
        self,
        rows: Iterable[tuple],
        before_commit: Optional[Callable[[], None]] = None,
    ) -> int:
        """Insert or replace payload rows in one transaction.

        Args:
            rows: (signed_id, document_id, payload) tuples
            before_commit: Called after the rows are written and before the
                commit; if it raises, the transaction is rolled back

        Returns:
            Number of rows written
        """
        conn = self.get_connection()
        cursor = conn.cursor()
        now = datetime.now(timezone.utc).isoformat()

        try:
            params = [
                (point_id, document_id, json.dumps(payload), now)
                for point_id, document_id, payload in rows
            ]
            cursor.executemany("""
                INSERT OR REPLACE INTO points (id, document_id, payload_json, updated_at)
                VALUES (?, ?, ?, ?)
            """, params)

            if before_commit is not None:
                before_commit()

            conn.commit()
            return len(params)

        except Exception as e:
            conn.rollback()
            logger.error("payload_upsert_failed", error=str(e))
            raise
        finally:
            conn.close()

    def get_payloads(self, point_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        """Fetch payloads by signed id.

        Returns:
            Mapping of signed id to decoded JSON payload (missing ids omitted)
        """
        if not point_ids:
            return {}

        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            placeholders = ",".join("?" * len(point_ids))
            cursor.execute(
                f"SELECT id, payload_json FROM points WHERE id IN ({placeholders})",
                point_ids,
            )
            return {row["id"]: json.loads(row["payload_json"]) for row in cursor.fetchall()}

        except Exception as e:
            logger.error("payload_retrieval_failed", error=str(e))
            raise
        finally:
            conn.close()

    def get_document_payloads(self, document_id: str) -> Dict[int, Dict[str, Any]]:
        """Fetch every payload of one document, keyed by signed id."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "SELECT id, payload_json FROM points WHERE document_id = ?",
                (document_id,),
            )
            return {row["id"]: json.loads(row["payload_json"]) for row in cursor.fetchall()}

        except Exception as e:
            logger.error("document_payload_retrieval_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    def delete_payloads(
        self,
        point_ids: List[int],
        before_commit: Optional[Callable[[], None]] = None,
    ) -> int:
        """Delete payloads by signed id.

        Returns:
            Number of rows deleted
        """
        if not point_ids:
            return 0

        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            placeholders = ",".join("?" * len(point_ids))
            cursor.execute(f"DELETE FROM points WHERE id IN ({placeholders})", point_ids)
            deleted = cursor.rowcount

            if before_commit is not None:
                before_commit()

            conn.commit()
            return deleted

        except Exception as e:
            conn.rollback()
            logger.error("payload_delete_failed", error=str(e))
            raise
        finally:
            conn.close()

    def get_point_count(self) -> int:
        """Get the total number of stored payloads."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT COUNT(*) FROM points")
            return cursor.fetchone()[0]

        except Exception as e:
            logger.error("point_count_failed", error=str(e))
            raise
        finally:
            conn.close()
