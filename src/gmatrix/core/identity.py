"""Product identity: name normalization and existence lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass

from rapidfuzz import fuzz

from gmatrix.core.documents import PRODUCTS, product_path
from gmatrix.core.errors import ErrorChannel, ValidationError, error_channel
from gmatrix.core.interfaces import DocumentStore
from gmatrix.core.models import Resolution

_NON_ID_CHAR = re.compile(r"[^a-z0-9]")


def normalize_product_id(display_name: str) -> str:
    """
    Map a display name to its product id.

    Lower-cases, then replaces every character outside [a-z0-9] with '-',
    one hyphen per character. Runs are not collapsed and the ends are not
    trimmed, so "Udi's Bread!" becomes "udi-s-bread-".
    """
    return _NON_ID_CHAR.sub("-", display_name.lower())


def require_name(display_name: str | None) -> str:
    """Return the stripped name, rejecting empty and whitespace-only names."""
    name = (display_name or "").strip()
    if not name:
        raise ValidationError("Product name must not be empty")
    return name


@dataclass
class SimilarProduct:
    product_id: str
    name: str
    score: float


class ProductResolver:
    """
    Read-only lookups used before creating or voting on a product.

    Nothing here writes to the store, so it is safe to call speculatively
    while a user is still typing a name.
    """

    def __init__(
        self, store: DocumentStore, match_threshold: int = 85, errors: ErrorChannel = error_channel
    ) -> None:
        self.store = store
        self.match_threshold = match_threshold
        self.errors = errors

    def exists(self, candidate_name: str) -> Resolution:
        name = require_name(candidate_name)
        product_id = normalize_product_id(name)
        with self.errors.reporting():
            found = self.store.get(product_path(product_id))
        if found is None:
            return Resolution(exists=False, product_id=None)
        return Resolution(exists=True, product_id=product_id)

    def search(self, term: str) -> list[tuple[str, str]]:
        """(product_id, name) pairs whose name contains term, case-insensitively."""
        needle = term.strip().lower()
        with self.errors.reporting():
            rows = self.store.list(PRODUCTS)
        return [
            (product_id, data.get("name", ""))
            for product_id, data in rows
            if needle in str(data.get("name", "")).lower()
        ]

    def similar(self, candidate_name: str, limit: int = 5) -> list[SimilarProduct]:
        """
        Existing products whose names look like candidate_name.

        Exact id matches are excluded; they are what exists() reports.
        """
        name = require_name(candidate_name)
        product_id = normalize_product_id(name)
        with self.errors.reporting():
            rows = self.store.list(PRODUCTS)
        matches: list[SimilarProduct] = []
        for other_id, data in rows:
            if other_id == product_id:
                continue
            other_name = str(data.get("name", ""))
            score = fuzz.WRatio(name, other_name)
            if score >= self.match_threshold:
                matches.append(SimilarProduct(product_id=other_id, name=other_name, score=score))
        matches.sort(key=lambda m: (-m.score, m.product_id))
        return matches[:limit]
