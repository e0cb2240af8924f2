"""Optimistic transaction machinery shared by the document store backends."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from gmatrix.core.errors import ConcurrencyConflict, NotFound, PermissionDenied, SecurityRuleContext
from gmatrix.core.interfaces import ChangeListener, DocumentData, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

AccessRule = Callable[[str, str, Optional[DocumentData]], bool]
"""(path, operation, request_data) -> allowed. Operations: get, list, write, update, delete."""


def collection_of(path: str) -> str:
    collection, _, _ = path.rpartition("/")
    if not collection:
        raise ValueError(f"Not a document path: {path!r}")
    return collection


def document_id(path: str) -> str:
    return path.rpartition("/")[2]


@dataclass
class _Op:
    kind: str
    """set, merge, update or delete."""

    path: str
    data: Optional[DocumentData] = None


class StoreTransaction:
    """Buffers reads (with their versions) and writes until commit."""

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store
        self.reads: dict[str, int] = {}
        self.ops: list[_Op] = []

    def get(self, path: str) -> Optional[DocumentData]:
        if self.ops:
            raise RuntimeError("Transactions require all reads to be executed before all writes")
        self._store._check(path, "get", None)
        data, version = self._store._read_locked(path)
        self.reads[path] = version
        return copy.deepcopy(data)

    def set(self, path: str, data: DocumentData, merge: bool = False) -> None:
        self._store._check(path, "write", data)
        self.ops.append(_Op("merge" if merge else "set", path, copy.deepcopy(data)))

    def update(self, path: str, data: DocumentData) -> None:
        self._store._check(path, "update", data)
        self.ops.append(_Op("update", path, copy.deepcopy(data)))

    def delete(self, path: str) -> None:
        self._store._check(path, "delete", None)
        self.ops.append(_Op("delete", path))


def _apply(op: _Op, current: Optional[DocumentData]) -> Optional[DocumentData]:
    if op.kind == "delete":
        return None
    if op.kind == "set":
        return op.data
    if op.kind == "merge":
        merged = dict(current or {})
        merged.update(op.data or {})
        return merged
    if op.kind == "update":
        if current is None:
            raise NotFound(op.path)
        updated = dict(current)
        updated.update(op.data or {})
        return updated
    raise ValueError(f"Unknown write kind: {op.kind}")


class BaseDocumentStore:
    """
    Versioned document store with optimistic transactions.

    Subclasses provide raw row access (_read, _list, _write_many); this class
    handles version checks, retries, access rules and change listeners.
    Deleted documents keep their version as a tombstone so a stale read of a
    since-deleted document still conflicts.
    """

    def __init__(self, rules: AccessRule | None = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.rules = rules
        self.max_attempts = max_attempts
        self._lock = threading.RLock()
        self._listeners: dict[str, list[ChangeListener]] = {}

    def _read(self, path: str) -> tuple[Optional[DocumentData], int]:
        raise NotImplementedError

    def _list(self, collection: str) -> list[tuple[str, DocumentData]]:
        raise NotImplementedError

    def _write_many(self, pending: dict[str, tuple[Optional[DocumentData], int]]) -> None:
        raise NotImplementedError

    def _read_locked(self, path: str) -> tuple[Optional[DocumentData], int]:
        with self._lock:
            return self._read(path)

    def _check(self, path: str, operation: str, data: Optional[DocumentData]) -> None:
        if self.rules is not None and not self.rules(path, operation, data):
            raise PermissionDenied(SecurityRuleContext(path=path, operation=operation, request_data=data))

    def get(self, path: str) -> Optional[DocumentData]:
        self._check(path, "get", None)
        data, _ = self._read_locked(path)
        return copy.deepcopy(data)

    def list(self, collection: str) -> list[tuple[str, DocumentData]]:
        self._check(collection, "list", None)
        with self._lock:
            rows = self._list(collection)
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in rows]

    def set(self, path: str, data: DocumentData, merge: bool = False) -> None:
        self.run_transaction(lambda tx: tx.set(path, data, merge=merge))

    def delete(self, path: str) -> None:
        self.run_transaction(lambda tx: tx.delete(path))

    def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            tx = StoreTransaction(self)
            result = fn(tx)
            changes = self._commit(tx)
            if changes is not None:
                self._notify(changes)
                return result
            logger.debug("transaction_conflict attempt=%d reads=%s", attempt, sorted(tx.reads))
        raise ConcurrencyConflict(self.max_attempts)

    def _commit(self, tx: StoreTransaction) -> Optional[dict[str, Optional[DocumentData]]]:
        with self._lock:
            for path, version in tx.reads.items():
                if self._read(path)[1] != version:
                    return None
            pending: dict[str, tuple[Optional[DocumentData], int]] = {}
            for op in tx.ops:
                if op.path in pending:
                    current, new_version = pending[op.path]
                else:
                    current, version = self._read(op.path)
                    new_version = version + 1
                pending[op.path] = (_apply(op, current), new_version)
            if pending:
                self._write_many(pending)
        return {path: data for path, (data, _) in pending.items()}

    def subscribe(self, path: str, on_change: ChangeListener) -> Unsubscribe:
        with self._lock:
            self._listeners.setdefault(path, []).append(on_change)
        on_change(self.get(path))

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(path, [])
                if on_change in listeners:
                    listeners.remove(on_change)

        return unsubscribe

    def _notify(self, changes: dict[str, Optional[DocumentData]]) -> None:
        for path, data in changes.items():
            with self._lock:
                listeners = list(self._listeners.get(path, []))
            for listener in listeners:
                listener(copy.deepcopy(data))