"""DuckDB-backed document store for single-file deployments and the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import duckdb

from gmatrix.core.interfaces import DocumentData
from gmatrix.store.base import AccessRule, BaseDocumentStore, DEFAULT_MAX_ATTEMPTS, collection_of, document_id

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    path VARCHAR PRIMARY KEY,
    collection VARCHAR NOT NULL,
    data VARCHAR,
    version BIGINT NOT NULL
)
"""


class DuckDBDocumentStore(BaseDocumentStore):
    """
    Documents are JSON text in one table keyed by path.

    A NULL data column is a tombstone: the document is gone but its version
    is kept for conflict detection.
    """

    def __init__(
        self,
        database: str | Path = ":memory:",
        rules: AccessRule | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        super().__init__(rules=rules, max_attempts=max_attempts)
        self.database = str(database)
        self._con = duckdb.connect(self.database)
        self._con.execute(SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._con.close()

    def _read(self, path: str) -> tuple[Optional[DocumentData], int]:
        row = self._con.execute("SELECT data, version FROM documents WHERE path = ?", [path]).fetchone()
        if row is None:
            return None, 0
        data, version = row
        return (json.loads(data) if data is not None else None), int(version)

    def _list(self, collection: str) -> list[tuple[str, DocumentData]]:
        rows = self._con.execute(
            "SELECT path, data FROM documents WHERE collection = ? AND data IS NOT NULL ORDER BY path",
            [collection],
        ).fetchall()
        return [(document_id(path), json.loads(data)) for path, data in rows]

    def _write_many(self, pending: dict[str, tuple[Optional[DocumentData], int]]) -> None:
        self._con.execute("BEGIN TRANSACTION")
        try:
            for path, (data, version) in pending.items():
                payload = json.dumps(data, ensure_ascii=False) if data is not None else None
                self._con.execute(
                    "INSERT OR REPLACE INTO documents VALUES (?, ?, ?, ?)",
                    [path, collection_of(path), payload, version],
                )
        except Exception:
            self._con.execute("ROLLBACK")
            raise
        self._con.execute("COMMIT")
