"""Vector store implementation on SQLite with float32 vector blobs."""
import logging
import sqlite3
from typing import Iterator, List, Sequence, Union

import numpy as np

from config import DATABASE_PATH
from models.chunk import ChunkRecord

logger = logging.getLogger(__name__)

TABLE_NAME = "docs"
LEGACY_TABLE_NAME = "docs_old"

CREATE_TABLE_SQL = f"""
CREATE TABLE {TABLE_NAME} (
    id INTEGER PRIMARY KEY,
    document_key TEXT NOT NULL,
    title TEXT,
    ordinal INTEGER NOT NULL,
    text TEXT,
    vector BLOB
)
"""

CREATE_INDEXES_SQL = [
    f"CREATE INDEX IF NOT EXISTS idx_docs_document_key ON {TABLE_NAME}(document_key)",
    f"CREATE UNIQUE INDEX IF NOT EXISTS idx_docs_document_ordinal ON {TABLE_NAME}(document_key, ordinal)",
]


class VectorStoreError(Exception):
    """Persistence layer unavailable or failing."""


def encode_vector(vector: Union[np.ndarray, Sequence[float]]) -> bytes:
    """Serialize a vector as little-endian float32 bytes."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    """Inverse of encode_vector."""
    if not blob:
        return np.zeros(0, dtype=np.float32)
    return np.frombuffer(blob, dtype="<f4").astype(np.float32)


class VectorStore:
    """Store one row per (document_key, ordinal) chunk and stream them back for scoring."""

    def __init__(self, db_path: str = DATABASE_PATH):
        """
        Open the SQLite database.

        Args:
            db_path: File path, or ":memory:" for a throwaway store

        Raises:
            VectorStoreError: If the database cannot be opened
        """
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            if db_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode = WAL")
                self.conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to open vector store at {db_path}: {e}") from e

        logger.info(f"Opened VectorStore at {db_path}")

    def initialize(self) -> None:
        """
        Create the schema, migrating a pre-ordinal table if one is found.

        The pre-ordinal shape is (url, title, content, vector). Its rows are
        copied once into the current table with ordinal 0 and the old table
        is dropped, all in one transaction.

        Raises:
            VectorStoreError: If the schema cannot be created or migrated
        """
        try:
            if not self._table_exists(TABLE_NAME):
                self.conn.execute(CREATE_TABLE_SQL)
                self.conn.commit()
                logger.info(f"Created table {TABLE_NAME}")
            elif not self._table_has_column(TABLE_NAME, "ordinal"):
                self._migrate_pre_ordinal()

            self._create_indexes()
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise VectorStoreError(f"Failed to initialize vector store: {e}") from e

    def _migrate_pre_ordinal(self) -> None:
        logger.info(f"Migrating table {TABLE_NAME} to the chunked schema...")
        # sqlite3 does not open transactions for DDL on its own
        self.conn.execute("BEGIN")
        try:
            self.conn.execute(f"ALTER TABLE {TABLE_NAME} RENAME TO {LEGACY_TABLE_NAME}")
            self.conn.execute(CREATE_TABLE_SQL)
            # Unique index first so duplicate legacy rows collapse to one
            self._create_indexes()
            cursor = self.conn.execute(
                f"INSERT OR IGNORE INTO {TABLE_NAME} (document_key, title, ordinal, text, vector) "
                f"SELECT url, title, 0, content, vector FROM {LEGACY_TABLE_NAME} ORDER BY rowid"
            )
            migrated = cursor.rowcount
            self.conn.execute(f"DROP TABLE {LEGACY_TABLE_NAME}")
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        logger.info(f"Migrated {migrated} rows to {TABLE_NAME}")

    def _create_indexes(self) -> None:
        for statement in CREATE_INDEXES_SQL:
            self.conn.execute(statement)

    def _table_exists(self, name: str) -> bool:
        row = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
        ).fetchone()
        return row is not None

    def _table_has_column(self, table: str, column: str) -> bool:
        rows = self.conn.execute(f"PRAGMA table_info({table})").fetchall()
        return any(row[1] == column for row in rows)

    def exists(self, document_key: str, ordinal: int) -> bool:
        """Check whether a chunk is already stored."""
        try:
            row = self.conn.execute(
                f"SELECT 1 FROM {TABLE_NAME} WHERE document_key=? AND ordinal=?",
                (document_key, ordinal)
            ).fetchone()
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to look up chunk {document_key}#{ordinal}: {e}") from e
        return row is not None

    def upsert_if_absent(self, chunk: ChunkRecord) -> bool:
        """
        Insert a chunk unless its (document_key, ordinal) pair is present.

        Existing rows are never overwritten.

        Returns:
            True if a row was inserted, False if the pair already existed

        Raises:
            VectorStoreError: If the write fails
        """
        try:
            with self.conn:
                cursor = self.conn.execute(
                    f"INSERT OR IGNORE INTO {TABLE_NAME} (document_key, title, ordinal, text, vector) "
                    f"VALUES (?, ?, ?, ?, ?)",
                    (
                        chunk.document_key,
                        chunk.title,
                        chunk.ordinal,
                        chunk.text,
                        encode_vector(chunk.vector)
                    )
                )
        except sqlite3.Error as e:
            raise VectorStoreError(
                f"Failed to store chunk {chunk.document_key}#{chunk.ordinal}: {e}"
            ) from e
        return cursor.rowcount > 0

    def scan_all(self, batch_size: int = 500) -> Iterator[ChunkRecord]:
        """
        Stream every stored chunk.

        Rows are fetched batch_size at a time; callers should only iterate
        the result so a paginated backend can stand in for this one.

        Raises:
            VectorStoreError: If the read fails
        """
        try:
            cursor = self.conn.execute(
                f"SELECT document_key, title, ordinal, text, vector FROM {TABLE_NAME} ORDER BY id"
            )
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    break
                for document_key, title, ordinal, text, vector in rows:
                    yield ChunkRecord(
                        document_key=document_key,
                        title=title or "",
                        ordinal=ordinal,
                        text=text or "",
                        vector=decode_vector(vector)
                    )
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to scan vector store: {e}") from e

    def fetch_document(self, document_key: str) -> List[ChunkRecord]:
        """Return a document's chunks ordered by ordinal."""
        try:
            rows = self.conn.execute(
                f"SELECT document_key, title, ordinal, text, vector FROM {TABLE_NAME} "
                f"WHERE document_key=? ORDER BY ordinal",
                (document_key,)
            ).fetchall()
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to fetch document {document_key}: {e}") from e
        return [
            ChunkRecord(
                document_key=row[0],
                title=row[1] or "",
                ordinal=row[2],
                text=row[3] or "",
                vector=decode_vector(row[4])
            )
            for row in rows
        ]

    def delete_stale(self, document_key: str, keep_below: int) -> int:
        """
        Delete a document's chunks with ordinal >= keep_below.

        Returns:
            Number of rows removed
        """
        try:
            with self.conn:
                cursor = self.conn.execute(
                    f"DELETE FROM {TABLE_NAME} WHERE document_key=? AND ordinal>=?",
                    (document_key, keep_below)
                )
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to prune chunks of {document_key}: {e}") from e
        return cursor.rowcount

    def count(self) -> int:
        """Get the total number of chunks in the vector store."""
        try:
            return self.conn.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0]
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to count chunks in vector store: {e}") from e

    def count_for_document(self, document_key: str) -> int:
        try:
            return self.conn.execute(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE document_key=?", (document_key,)
            ).fetchone()[0]
        except sqlite3.Error as e:
            raise VectorStoreError(f"Failed to count chunks of {document_key}: {e}") from e

    def close(self) -> None:
        self.conn.close()
