"""Document store backends."""

from gmatrix.store.base import BaseDocumentStore, StoreTransaction
from gmatrix.store.duckdb_store import DuckDBDocumentStore
from gmatrix.store.memory import MemoryDocumentStore

__all__ = ["BaseDocumentStore", "StoreTransaction", "DuckDBDocumentStore", "MemoryDocumentStore"]
