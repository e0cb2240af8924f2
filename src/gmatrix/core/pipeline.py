"""Submission pipeline: wires the stages together with dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gmatrix.core.admin import AdminAuthority
from gmatrix.core.aggregate import VoteAggregator, validate_submission
from gmatrix.core.catalog import ProductCatalog
from gmatrix.core.clock import Clock, utc_now
from gmatrix.core.config import Settings
from gmatrix.core.errors import ErrorChannel, error_channel
from gmatrix.core.gamification import GamificationLedger
from gmatrix.core.gateway import ImageAnalysisGateway
from gmatrix.core.identity import ProductResolver
from gmatrix.core.interfaces import DocumentStore, VisionClient
from gmatrix.core.models import IdentifiedProduct, Product, Rating, StoreReport, VoteOutcome


@dataclass
class SubmissionResult:
    product: Product
    """The product as stored after the vote."""
    created: bool
    outcome: VoteOutcome


class VotePipeline:
    """
    Orchestrates a submission: photo -> name -> product id -> product -> vote -> profile.

    All stages are injected, so storage and the vision client can be swapped
    at runtime.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        vision_client: Optional[VisionClient] = None,
        ledger: Optional[GamificationLedger] = None,
        clock: Clock = utc_now,
        errors: ErrorChannel = error_channel,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.errors = errors
        self.catalog = ProductCatalog(store, settings=self.settings, clock=clock, errors=errors)
        self.resolver = ProductResolver(
            store, match_threshold=self.settings.similar_name_threshold, errors=errors
        )
        self.ledger = ledger or GamificationLedger(store, clock=clock, errors=errors)
        self.aggregator = VoteAggregator(
            store, ledger=self.ledger, settings=self.settings, clock=clock, errors=errors
        )
        self.admin = AdminAuthority(store, clock=clock, errors=errors)
        self.gateway = ImageAnalysisGateway(vision_client, self.settings) if vision_client is not None else None

    def identify(self, photo: bytes, mime_type: str) -> IdentifiedProduct:
        """Name a photographed product; UNNAMED_PRODUCT sends the user to manual naming."""
        if self.gateway is None:
            raise RuntimeError("No vision client configured")
        return self.gateway.identify_product(photo, mime_type)

    def submit(
        self,
        name: str,
        user_id: str,
        rating: Rating,
        is_registered: bool,
        image_url: str = "",
        store_report: StoreReport | None = None,
    ) -> SubmissionResult:
        """
        Vote on the product called name, creating it first if nobody has yet.

        Concurrent first voters on the same new name share one product record.
        """
        validate_submission(user_id, rating, store_report)
        product, created = self.catalog.create_if_absent(name, image_url=image_url, created_by=user_id)
        outcome = self.aggregator.submit_vote(
            product.id, user_id, rating, is_registered, store_report=store_report
        )
        return SubmissionResult(product=self.catalog.get(product.id), created=created, outcome=outcome)
