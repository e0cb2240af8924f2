"""In-process document store."""

from __future__ import annotations

from typing import Optional

from gmatrix.core.interfaces import DocumentData
from gmatrix.store.base import AccessRule, BaseDocumentStore, DEFAULT_MAX_ATTEMPTS, collection_of, document_id


class MemoryDocumentStore(BaseDocumentStore):
    """Thread-safe dictionary-backed store. Nothing survives the process."""

    def __init__(self, rules: AccessRule | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        super().__init__(rules=rules, max_attempts=max_attempts)
        self._docs: dict[str, Optional[DocumentData]] = {}
        self._versions: dict[str, int] = {}

    def _read(self, path: str) -> tuple[Optional[DocumentData], int]:
        return self._docs.get(path), self._versions.get(path, 0)

    def _list(self, collection: str) -> list[tuple[str, DocumentData]]:
        rows = [
            (document_id(path), data)
            for path, data in self._docs.items()
            if data is not None and collection_of(path) == collection
        ]
        return sorted(rows, key=lambda row: row[0])

    def _write_many(self, pending: dict[str, tuple[Optional[DocumentData], int]]) -> None:
        for path, (data, version) in pending.items():
            self._docs[path] = data
            self._versions[path] = version
