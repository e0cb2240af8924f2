"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from gmatrix.core.admin import AdminAuthority
from gmatrix.core.aggregate import VoteAggregator
from gmatrix.core.catalog import ProductCatalog
from gmatrix.core.errors import ErrorChannel
from gmatrix.core.gamification import GamificationLedger
from gmatrix.store.memory import MemoryDocumentStore


START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def errors() -> ErrorChannel:
    return ErrorChannel()


@pytest.fixture
def catalog(store: MemoryDocumentStore, clock: FixedClock, errors: ErrorChannel) -> ProductCatalog:
    return ProductCatalog(store, clock=clock, errors=errors)


@pytest.fixture
def ledger(store: MemoryDocumentStore, clock: FixedClock, errors: ErrorChannel) -> GamificationLedger:
    return GamificationLedger(store, clock=clock, errors=errors)


@pytest.fixture
def aggregator(
    store: MemoryDocumentStore,
    ledger: GamificationLedger,
    clock: FixedClock,
    errors: ErrorChannel,
) -> VoteAggregator:
    return VoteAggregator(store, ledger=ledger, clock=clock, errors=errors)


@pytest.fixture
def admin(store: MemoryDocumentStore, clock: FixedClock, errors: ErrorChannel) -> AdminAuthority:
    return AdminAuthority(store, clock=clock, errors=errors)
