"""Tests for the document store backends."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from gmatrix.core.errors import NotFound, PermissionDenied
from gmatrix.core.interfaces import DocumentStore
from gmatrix.store.base import BaseDocumentStore, collection_of, document_id
from gmatrix.store.duckdb_store import DuckDBDocumentStore
from gmatrix.store.memory import MemoryDocumentStore


@pytest.fixture(params=["memory", "duckdb"])
def backend(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[BaseDocumentStore]:
    if request.param == "memory":
        yield MemoryDocumentStore()
        return
    store = DuckDBDocumentStore(tmp_path / "docs.duckdb")
    yield store
    store.close()


def test_paths() -> None:
    assert collection_of("products/p1/votes/u1") == "products/p1/votes"
    assert document_id("products/p1/votes/u1") == "u1"
    with pytest.raises(ValueError):
        collection_of("products")


def test_backends_satisfy_protocol(backend: BaseDocumentStore) -> None:
    assert isinstance(backend, DocumentStore)


def test_set_get_list(backend: BaseDocumentStore) -> None:
    backend.set("products/b", {"name": "B"})
    backend.set("products/a", {"name": "A", "ingredients": ["oats", "honey"]})
    backend.set("products/a/votes/u1", {"safety": 10})

    assert backend.get("products/a") == {"name": "A", "ingredients": ["oats", "honey"]}
    assert backend.get("products/missing") is None
    assert [doc_id for doc_id, _ in backend.list("products")] == ["a", "b"]
    assert backend.list("products/a/votes") == [("u1", {"safety": 10})]


def test_returned_documents_are_copies(backend: BaseDocumentStore) -> None:
    backend.set("products/a", {"stores": [{"name": "X"}]})
    doc = backend.get("products/a")
    doc["stores"].append({"name": "Y"})
    assert backend.get("products/a") == {"stores": [{"name": "X"}]}


def test_merge_and_update(backend: BaseDocumentStore) -> None:
    backend.set("users/u1", {"points": 10, "badges": []})
    backend.set("users/u1", {"points": 20}, merge=True)
    assert backend.get("users/u1") == {"points": 20, "badges": []}

    backend.run_transaction(lambda tx: tx.update("users/u1", {"badges": ["first_scout"]}))
    assert backend.get("users/u1") == {"points": 20, "badges": ["first_scout"]}

    with pytest.raises(NotFound):
        backend.run_transaction(lambda tx: tx.update("users/ghost", {"points": 1}))


def test_delete_leaves_no_listing(backend: BaseDocumentStore) -> None:
    backend.set("products/a", {"name": "A"})
    backend.delete("products/a")
    assert backend.get("products/a") is None
    assert backend.list("products") == []
    backend.set("products/a", {"name": "A again"})
    assert backend.get("products/a") == {"name": "A again"}


def test_reads_must_precede_writes(backend: BaseDocumentStore) -> None:
    def write_then_read(tx) -> None:
        tx.set("products/a", {"name": "A"})
        tx.get("products/a")

    with pytest.raises(RuntimeError):
        backend.run_transaction(write_then_read)
    assert backend.get("products/a") is None


def test_failed_transaction_writes_nothing(backend: BaseDocumentStore) -> None:
    def explode(tx) -> None:
        tx.set("products/a", {"name": "A"})
        raise ValueError("boom")

    with pytest.raises(ValueError):
        backend.run_transaction(explode)
    assert backend.get("products/a") is None


def test_subscribe_delivers_current_then_changes(backend: BaseDocumentStore) -> None:
    backend.set("products/a", {"voteCount": 0})
    seen: list = []
    unsubscribe = backend.subscribe("products/a", seen.append)

    backend.set("products/a", {"voteCount": 1})
    backend.set("products/b", {"voteCount": 7})
    backend.delete("products/a")
    unsubscribe()
    backend.set("products/a", {"voteCount": 2})

    assert seen == [{"voteCount": 0}, {"voteCount": 1}, None]


def test_access_rules(backend: BaseDocumentStore) -> None:
    backend.set("roles_admin/root", {"grantedAt": "2024-03-01T12:00:00+00:00"})
    backend.rules = lambda path, operation, data: not path.startswith("roles_admin")

    with pytest.raises(PermissionDenied) as excinfo:
        backend.get("roles_admin/root")
    assert excinfo.value.context.operation == "get"

    with pytest.raises(PermissionDenied) as excinfo:
        backend.set("roles_admin/mallory", {"grantedAt": "now"})
    assert excinfo.value.context.operation == "write"
    assert excinfo.value.context.request_data == {"grantedAt": "now"}

    backend.rules = None
    assert backend.get("roles_admin/mallory") is None


def test_duckdb_persists_across_connections(tmp_path: Path) -> None:
    path = tmp_path / "persist.duckdb"
    first = DuckDBDocumentStore(path)
    first.set("products/a", {"name": "Ä-Bar", "avgSafety": 61.5})
    first.close()

    second = DuckDBDocumentStore(path)
    try:
        assert second.get("products/a") == {"name": "Ä-Bar", "avgSafety": 61.5}
    finally:
        second.close()
