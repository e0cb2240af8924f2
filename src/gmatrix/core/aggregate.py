"""Vote aggregation: running averages kept by delta, plus full recomputation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from gmatrix.core.clock import Clock, utc_now
from gmatrix.core.config import Settings
from gmatrix.core.documents import (
    document_id,
    product_from_doc,
    product_path,
    product_to_doc,
    vote_from_doc,
    vote_path,
    vote_to_doc,
    votes_collection,
)
from gmatrix.core.errors import (
    ErrorChannel,
    NotFound,
    PermissionDenied,
    SecurityRuleContext,
    ValidationError,
    error_channel,
)
from gmatrix.core.gamification import GamificationLedger
from gmatrix.core.interfaces import DocumentStore, Transaction
from gmatrix.core.models import (
    AdminSession,
    Averages,
    Product,
    Rating,
    StoreReport,
    Vote,
    VoteContext,
    VoteOutcome,
)
from gmatrix.core.stores import merge_store_report

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60

T = TypeVar("T")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_price(price: Any) -> None:
    if price is None:
        return
    if not isinstance(price, int) or isinstance(price, bool) or not 1 <= price <= 5:
        raise ValidationError(f"price must be an integer from 1 to 5, got {price!r}")


def validate_rating(rating: Rating) -> None:
    for axis in ("safety", "taste"):
        value = getattr(rating, axis)
        if not _is_number(value) or not 0 <= value <= 100:
            raise ValidationError(f"{axis} must be between 0 and 100, got {value!r}")
    validate_price(rating.price)


def validate_submission(user_id: str, rating: Rating, store_report: StoreReport | None = None) -> None:
    """
    Check a vote before anything is read or written.

    Raises:
        ValidationError: Rating or store report out of range, or a user id
            that is empty or contains "/"
    """
    validate_rating(rating)
    if store_report is not None:
        validate_price(store_report.price)
        if not store_report.name.strip():
            raise ValidationError("Store name must not be empty")
    document_id(user_id, "user_id")


def averages_of(product: Product) -> Averages:
    return Averages(
        avg_safety=product.avg_safety,
        avg_taste=product.avg_taste,
        avg_price=product.avg_price,
        vote_count=product.vote_count,
        registered_vote_count=product.registered_vote_count,
        price_vote_count=product.price_vote_count,
    )


def add_vote(product: Product, rating: Rating, is_registered: bool) -> None:
    """Fold a first-time vote into the running averages, in place."""
    count = product.vote_count + 1
    product.avg_safety = (product.avg_safety * product.vote_count + rating.safety) / count
    product.avg_taste = (product.avg_taste * product.vote_count + rating.taste) / count
    product.vote_count = count
    if is_registered:
        product.registered_vote_count += 1
    if rating.price is not None:
        _add_price(product, rating.price)


def _add_price(product: Product, price: int) -> None:
    previous = product.avg_price or 0.0
    count = product.price_vote_count + 1
    product.avg_price = (previous * product.price_vote_count + price) / count
    product.price_vote_count = count


def revise_vote(product: Product, old: Vote, rating: Rating) -> Optional[int]:
    """
    Replace old's contribution with rating, in place. Counts do not change.

    A revision without a price keeps the old price; a revision adding a price
    to a price-less vote counts as a new price vote.

    Returns:
        The price the revised vote carries
    """
    if product.vote_count <= 0:
        raise ValueError(f"Product {product.id} has a vote but no vote count")
    product.avg_safety += (rating.safety - old.safety) / product.vote_count
    product.avg_taste += (rating.taste - old.taste) / product.vote_count

    if rating.price is None:
        return old.price
    if old.price is None:
        _add_price(product, rating.price)
    elif product.price_vote_count > 0:
        product.avg_price = (product.avg_price or 0.0) + (rating.price - old.price) / product.price_vote_count
    return rating.price


def remove_vote(product: Product, vote: Vote) -> None:
    """Take vote's contribution out of the averages, in place."""
    if product.vote_count <= 1:
        product.avg_safety = 0.0
        product.avg_taste = 0.0
        product.vote_count = 0
        product.registered_vote_count = 0
    else:
        remaining = product.vote_count - 1
        product.avg_safety = (product.avg_safety * product.vote_count - vote.safety) / remaining
        product.avg_taste = (product.avg_taste * product.vote_count - vote.taste) / remaining
        product.vote_count = remaining
        if vote.is_registered:
            product.registered_vote_count = max(0, product.registered_vote_count - 1)

    if vote.price is None:
        return
    if product.price_vote_count <= 1:
        product.avg_price = None
        product.price_vote_count = 0
    else:
        remaining = product.price_vote_count - 1
        product.avg_price = ((product.avg_price or 0.0) * product.price_vote_count - vote.price) / remaining
        product.price_vote_count = remaining


@dataclass(frozen=True)
class VoteWeighting:
    """
    Weights for a full recalculation.

    A vote weighs registered_weight or anonymous_weight, multiplied by
    decay_per_year ** age_in_years but never less than minimum_weight of its base.
    """

    registered_weight: float = 2.0
    anonymous_weight: float = 1.0
    decay_per_year: float = 0.9
    minimum_weight: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> VoteWeighting:
        return cls(
            registered_weight=settings.registered_vote_weight,
            anonymous_weight=settings.anonymous_vote_weight,
            decay_per_year=settings.time_decay_factor_per_year,
            minimum_weight=settings.time_decay_minimum_weight,
        )

    def weight(self, vote: Vote, now: datetime) -> float:
        base = self.registered_weight if vote.is_registered else self.anonymous_weight
        if vote.voted_at is None:
            return base
        years = max(0.0, (now - vote.voted_at).total_seconds() / SECONDS_PER_YEAR)
        return base * max(self.minimum_weight, self.decay_per_year**years)


def recompute(
    product: Product,
    votes: list[Vote],
    weighting: VoteWeighting | None = None,
    now: datetime | None = None,
) -> None:
    """
    Rebuild the aggregate from the full vote set, in place.

    Without weighting this is the plain mean, which the incremental path
    must agree with.
    """
    at = now or utc_now()
    weights = [weighting.weight(v, at) if weighting else 1.0 for v in votes]
    total = sum(weights)
    if votes and total > 0:
        product.avg_safety = sum(w * v.safety for w, v in zip(weights, votes)) / total
        product.avg_taste = sum(w * v.taste for w, v in zip(weights, votes)) / total
    else:
        product.avg_safety = 0.0
        product.avg_taste = 0.0
    product.vote_count = len(votes)
    product.registered_vote_count = sum(1 for v in votes if v.is_registered)

    priced = [(w, v.price) for w, v in zip(weights, votes) if v.price is not None]
    price_total = sum(w for w, _ in priced)
    product.price_vote_count = len(priced)
    product.avg_price = sum(w * p for w, p in priced) / price_total if priced and price_total > 0 else None


class VoteAggregator:
    """
    Records votes and keeps each product's averages consistent.

    Every read-modify-write of a product runs in one optimistic transaction
    covering the product and the vote document, so concurrent voters cannot
    lose each other's updates.
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: GamificationLedger | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        errors: ErrorChannel = error_channel,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.settings = settings or Settings()
        self.clock = clock
        self.errors = errors

    def submit_vote(
        self,
        product_id: str,
        user_id: str,
        rating: Rating,
        is_registered: bool,
        store_report: StoreReport | None = None,
    ) -> VoteOutcome:
        """
        Record or revise user_id's vote on product_id.

        Raises:
            ValidationError: Rating or store report out of range, or an id that
                cannot be a document path segment (nothing written)
            NotFound: The product does not exist; create it through the catalog first
            PermissionDenied: The backend rejected the write
            ConcurrencyConflict: Retries exhausted
        """
        validate_submission(user_id, rating, store_report)

        p_path = product_path(product_id)
        v_path = vote_path(product_id, user_id)

        def record(tx: Transaction) -> tuple[Product, Vote, bool, bool]:
            product_doc = tx.get(p_path)
            if product_doc is None:
                raise NotFound(p_path)
            vote_doc = tx.get(v_path)
            product = product_from_doc(product_id, product_doc)
            now = self.clock()

            if vote_doc is None:
                is_new_product = product.vote_count == 0
                add_vote(product, rating, is_registered)
                vote = Vote(
                    product_id=product_id,
                    user_id=user_id,
                    safety=rating.safety,
                    taste=rating.taste,
                    price=rating.price,
                    store_name=store_report.name.strip() if store_report else None,
                    is_registered=is_registered,
                    voted_at=now,
                    created_at=now,
                    updated_at=now,
                )
                is_revision = False
            else:
                is_new_product = False
                old = vote_from_doc(product_id, user_id, vote_doc)
                price = revise_vote(product, old, rating)
                vote = Vote(
                    product_id=product_id,
                    user_id=user_id,
                    safety=rating.safety,
                    taste=rating.taste,
                    price=price,
                    store_name=store_report.name.strip() if store_report else old.store_name,
                    is_registered=old.is_registered,
                    voted_at=now,
                    created_at=old.created_at or now,
                    updated_at=now,
                )
                is_revision = True

            if store_report is not None:
                product.stores = merge_store_report(product.stores, store_report, now)

            tx.set(p_path, product_to_doc(product))
            tx.set(v_path, vote_to_doc(vote))
            return product, vote, is_revision, is_new_product

        product, vote, is_revision, is_new_product = self._run(record)

        logger.info(
            "vote_recorded product=%s user=%s revision=%s count=%d",
            product_id,
            user_id,
            is_revision,
            product.vote_count,
        )
        outcome = VoteOutcome(averages=averages_of(product), vote=vote, is_revision=is_revision)
        if self.ledger is not None and is_registered and not is_revision:
            context = VoteContext(
                is_new_product=is_new_product,
                has_gps=bool(store_report and store_report.geo_point),
                has_store_tag=store_report is not None,
                has_price=rating.price is not None,
                store_name=store_report.name if store_report else None,
            )
            try:
                with self.errors.reporting():
                    outcome.profile_delta = self.ledger.apply_vote_effects(user_id, context)
            except Exception:
                logger.warning("gamification_failed user=%s product=%s", user_id, product_id, exc_info=True)
        return outcome

    def get_vote(self, product_id: str, user_id: str) -> Optional[Vote]:
        with self.errors.reporting():
            data = self.store.get(vote_path(product_id, user_id))
        return vote_from_doc(product_id, user_id, data) if data is not None else None

    def list_votes(self, product_id: str) -> list[Vote]:
        with self.errors.reporting():
            rows = self.store.list(votes_collection(product_id))
        return [vote_from_doc(product_id, user_id, data) for user_id, data in rows]

    def delete_vote(self, session: AdminSession, product_id: str, user_id: str) -> Averages:
        """Admin: delete one vote and take its contribution out of the averages."""
        p_path = product_path(product_id)
        v_path = vote_path(product_id, user_id)
        self._require_admin(session, v_path, "delete")

        def remove(tx: Transaction) -> Product:
            product_doc = tx.get(p_path)
            if product_doc is None:
                raise NotFound(p_path)
            vote_doc = tx.get(v_path)
            if vote_doc is None:
                raise NotFound(v_path)
            product = product_from_doc(product_id, product_doc)
            remove_vote(product, vote_from_doc(product_id, user_id, vote_doc))
            tx.set(p_path, product_to_doc(product))
            tx.delete(v_path)
            return product

        product = self._run(remove)
        logger.info("vote_deleted product=%s user=%s by=%s", product_id, user_id, session.user_id)
        return averages_of(product)

    def delete_product(self, session: AdminSession, product_id: str) -> int:
        """
        Admin: delete a product and every vote under it.

        Returns:
            Number of votes deleted
        """
        p_path = product_path(product_id)
        self._require_admin(session, p_path, "delete")

        def remove(tx: Transaction) -> int:
            if tx.get(p_path) is None:
                raise NotFound(p_path)
            vote_paths = [vote_path(product_id, uid) for uid, _ in self.store.list(votes_collection(product_id))]
            for path in vote_paths:
                tx.get(path)
            for path in vote_paths:
                tx.delete(path)
            tx.delete(p_path)
            return len(vote_paths)

        deleted = self._run(remove)
        logger.info("product_deleted product=%s votes=%d by=%s", product_id, deleted, session.user_id)
        return deleted

    def recalculate(
        self,
        session: AdminSession,
        product_id: str,
        weighting: VoteWeighting | None = None,
    ) -> Averages:
        """
        Admin: rebuild a product's averages from its votes.

        With no weighting this reconciles float drift from incremental
        updates; with a VoteWeighting it applies registered/anonymous weights
        and time decay.

        Weighted averages are no longer the arithmetic mean of the votes.
        They stand until the next incremental vote, which applies its
        unweighted delta on top of them; an unweighted recalculate restores
        the plain means.
        """
        p_path = product_path(product_id)
        self._require_admin(session, p_path, "update")

        def rebuild(tx: Transaction) -> Product:
            product_doc = tx.get(p_path)
            if product_doc is None:
                raise NotFound(p_path)
            votes: list[Vote] = []
            for user_id, _ in self.store.list(votes_collection(product_id)):
                data = tx.get(vote_path(product_id, user_id))
                if data is not None:
                    votes.append(vote_from_doc(product_id, user_id, data))
            product = product_from_doc(product_id, product_doc)
            recompute(product, votes, weighting=weighting, now=self.clock())
            tx.set(p_path, product_to_doc(product))
            return product

        product = self._run(rebuild)
        logger.info(
            "product_recalculated product=%s votes=%d weighted=%s",
            product_id,
            product.vote_count,
            weighting is not None,
        )
        return averages_of(product)

    def _require_admin(self, session: AdminSession, path: str, operation: str) -> None:
        if session.can_administer:
            return
        context = SecurityRuleContext(path=path, operation=operation, request_data={"userId": session.user_id})
        exc = PermissionDenied(context)
        self.errors.report(exc)
        raise exc

    def _run(self, fn: Callable[[Transaction], T]) -> T:
        with self.errors.reporting():
            return self.store.run_transaction(fn)
