"""Product catalog: explicit creation, lookup, listing and matrix placement."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from gmatrix.core.clock import Clock, utc_now
from gmatrix.core.config import Settings
from gmatrix.core.documents import PRODUCTS, product_from_doc, product_path, product_to_doc
from gmatrix.core.errors import ErrorChannel, NotFound, error_channel
from gmatrix.core.identity import normalize_product_id, require_name
from gmatrix.core.interfaces import DocumentStore, Transaction, Unsubscribe
from gmatrix.core.models import GeoPoint, Product, Quadrant, RatingLabel
from gmatrix.core.stores import nearest_store_km

logger = logging.getLogger(__name__)


def quadrant_for(product: Product, safety_threshold: float = 50.0, taste_threshold: float = 50.0) -> Quadrant:
    safe = product.avg_safety >= safety_threshold
    tasty = product.avg_taste >= taste_threshold
    if safe:
        return Quadrant.SAFE_TASTY if tasty else Quadrant.SAFE_BLAND
    return Quadrant.RISKY_TASTY if tasty else Quadrant.RISKY_BLAND


def rating_label(value: float, thresholds: dict[str, float] | None = None) -> RatingLabel:
    limits = thresholds or {"excellent": 75.0, "good": 50.0, "fair": 25.0}
    if value > limits["excellent"]:
        return RatingLabel.EXCELLENT
    if value > limits["good"]:
        return RatingLabel.GOOD
    if value > limits["fair"]:
        return RatingLabel.FAIR
    return RatingLabel.POOR


class ProductCatalog:
    """
    Owns the product documents outside of voting.

    Products are created here, explicitly; the vote aggregator refuses to
    vote on a product that does not exist.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        errors: ErrorChannel = error_channel,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock
        self.errors = errors

    def create_if_absent(
        self,
        name: str,
        image_url: str = "",
        created_by: Optional[str] = None,
        back_image_url: Optional[str] = None,
        ingredients: Optional[list[str]] = None,
    ) -> tuple[Product, bool]:
        """
        Create the product for name unless one with the same id exists.

        Concurrent callers with the same name converge on a single record:
        the loser's transaction conflicts, re-runs, and sees the winner's document.

        Returns:
            (product, created) where created is False if the product already existed
        """
        display_name = require_name(name)
        product_id = normalize_product_id(display_name)
        path = product_path(product_id)

        def create(tx: Transaction) -> tuple[Product, bool]:
            existing = tx.get(path)
            if existing is not None:
                return product_from_doc(product_id, existing), False
            product = Product(
                id=product_id,
                name=display_name,
                image_url=image_url,
                back_image_url=back_image_url,
                ingredients=list(ingredients) if ingredients is not None else None,
                created_at=self.clock(),
                created_by=created_by,
            )
            tx.set(path, product_to_doc(product))
            return product, True

        with self.errors.reporting():
            product, created = self.store.run_transaction(create)
        if created:
            logger.info("product_created id=%s by=%s", product_id, created_by)
        return product, created

    def get(self, product_id: str) -> Product:
        path = product_path(product_id)
        with self.errors.reporting():
            data = self.store.get(path)
        if data is None:
            raise NotFound(path)
        return product_from_doc(product_id, data)

    def get_by_name(self, name: str) -> Product:
        return self.get(normalize_product_id(require_name(name)))

    def list(self, limit: int | None = 100) -> list[Product]:
        with self.errors.reporting():
            rows = self.store.list(PRODUCTS)
        if limit is not None:
            rows = rows[:limit]
        return [product_from_doc(product_id, data) for product_id, data in rows]

    def near(self, origin: GeoPoint, radius_km: float | None = None) -> list[tuple[Product, float]]:
        """
        Products seen at a geo-tagged store within radius_km of origin.

        Returns:
            (product, distance_km) pairs, nearest first
        """
        radius = self.settings.near_me_radius_km if radius_km is None else radius_km
        hits: list[tuple[Product, float]] = []
        for product in self.list(limit=None):
            distance = nearest_store_km(product.stores, origin)
            if distance is not None and distance <= radius:
                hits.append((product, distance))
        hits.sort(key=lambda hit: (hit[1], hit[0].id))
        return hits

    def quadrant(self, product: Product) -> Quadrant:
        return quadrant_for(
            product,
            safety_threshold=self.settings.quadrant_safety_threshold,
            taste_threshold=self.settings.quadrant_taste_threshold,
        )

    def label(self, value: float) -> RatingLabel:
        return rating_label(value, self.settings.rating_thresholds)

    def subscribe(self, product_id: str, on_change: Callable[[Optional[Product]], None]) -> Unsubscribe:
        """
        Listen to a product's aggregate.

        on_change receives the current product immediately, then every
        committed change; None once the product is deleted.
        """

        def relay(data: Optional[dict]) -> None:
            on_change(product_from_doc(product_id, data) if data is not None else None)

        with self.errors.reporting():
            return self.store.subscribe(product_path(product_id), relay)
