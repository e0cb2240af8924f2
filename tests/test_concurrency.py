"""Concurrent voters and optimistic transaction retries."""

from __future__ import annotations

import threading

import pytest

from gmatrix.core.aggregate import VoteAggregator
from gmatrix.core.catalog import ProductCatalog
from gmatrix.core.errors import ConcurrencyConflict, ErrorChannel
from gmatrix.core.models import Rating
from gmatrix.store.memory import MemoryDocumentStore


def _run_threads(count: int, target) -> list[Exception]:
    barrier = threading.Barrier(count)
    failures: list[Exception] = []

    def worker(index: int) -> None:
        barrier.wait()
        try:
            target(index)
        except Exception as exc:
            failures.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return failures


def test_two_first_voters_share_one_product() -> None:
    store = MemoryDocumentStore(max_attempts=10)
    catalog = ProductCatalog(store)
    aggregator = VoteAggregator(store, errors=ErrorChannel())
    ratings = [Rating(80, 60), Rating(40, 90)]

    def vote(index: int) -> None:
        product, _ = catalog.create_if_absent("Brand New Bar")
        aggregator.submit_vote(product.id, f"u{index}", ratings[index], is_registered=False)

    assert _run_threads(2, vote) == []

    products = catalog.list()
    assert [p.id for p in products] == ["brand-new-bar"]
    assert products[0].vote_count == 2
    assert products[0].avg_safety == pytest.approx(60)
    assert products[0].avg_taste == pytest.approx(75)


def test_many_concurrent_voters_lose_no_update() -> None:
    store = MemoryDocumentStore(max_attempts=50)
    catalog = ProductCatalog(store)
    aggregator = VoteAggregator(store, errors=ErrorChannel())
    product, _ = catalog.create_if_absent("Kind Bar")

    def vote(index: int) -> None:
        aggregator.submit_vote(product.id, f"u{index}", Rating(index * 10, 100 - index * 10), is_registered=False)

    assert _run_threads(8, vote) == []

    result = catalog.get(product.id)
    assert result.vote_count == 8
    assert result.avg_safety == pytest.approx(sum(i * 10 for i in range(8)) / 8)
    assert result.avg_taste == pytest.approx(sum(100 - i * 10 for i in range(8)) / 8)


def test_conflicting_write_triggers_retry(store: MemoryDocumentStore) -> None:
    store.set("products/p", {"voteCount": 0})
    attempts: list[int] = []

    def increment(tx) -> int:
        current = tx.get("products/p")["voteCount"]
        attempts.append(current)
        if len(attempts) == 1:
            store.set("products/p", {"voteCount": 10})
        tx.set("products/p", {"voteCount": current + 1})
        return current + 1

    assert store.run_transaction(increment) == 11
    assert attempts == [0, 10]
    assert store.get("products/p") == {"voteCount": 11}


def test_retries_are_bounded() -> None:
    store = MemoryDocumentStore(max_attempts=3)
    store.set("products/p", {"voteCount": 0})
    calls: list[int] = []

    def always_interrupted(tx) -> None:
        tx.get("products/p")
        calls.append(1)
        store.set("products/p", {"voteCount": len(calls)})
        tx.set("products/p", {"voteCount": -1})

    with pytest.raises(ConcurrencyConflict) as excinfo:
        store.run_transaction(always_interrupted)
    assert excinfo.value.attempts == 3
    assert len(calls) == 3
    assert store.get("products/p") == {"voteCount": 3}


def test_read_of_deleted_document_conflicts(store: MemoryDocumentStore) -> None:
    store.set("products/p", {"name": "P"})
    seen: list = []

    def recreate(tx) -> None:
        data = tx.get("products/p")
        seen.append(data)
        if len(seen) == 1:
            store.delete("products/p")
        tx.set("products/p", {"name": "P", "touched": data is not None})

    store.run_transaction(recreate)
    assert seen == [{"name": "P"}, None]
    assert store.get("products/p") == {"name": "P", "touched": False}
