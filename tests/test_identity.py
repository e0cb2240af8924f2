"""Tests for product id normalization and existence lookup."""

import pytest

from gmatrix.core.catalog import ProductCatalog
from gmatrix.core.errors import ErrorChannel, PermissionDenied, ValidationError
from gmatrix.core.identity import ProductResolver, normalize_product_id, require_name
from gmatrix.store.memory import MemoryDocumentStore


def test_normalize_replaces_each_character() -> None:
    assert normalize_product_id("Udi's Bread!") == "udi-s-bread-"


def test_normalize_does_not_collapse_or_trim() -> None:
    assert normalize_product_id("  Oat  Milk ") == "--oat--milk-"
    assert normalize_product_id("Café Crème") == "caf--cr-me"


def test_normalize_is_idempotent() -> None:
    once = normalize_product_id("Nature's Path: Flax Plus")
    assert normalize_product_id(once) == once


def test_names_differing_only_in_punctuation_share_an_id() -> None:
    assert normalize_product_id("Udis Bread?") == normalize_product_id("udis bread!")


def test_require_name_rejects_blank() -> None:
    with pytest.raises(ValidationError):
        require_name("   ")
    with pytest.raises(ValidationError):
        require_name(None)
    assert require_name("  Kind Bar ") == "Kind Bar"


def test_exists_has_no_side_effects(store: MemoryDocumentStore) -> None:
    resolver = ProductResolver(store)
    resolution = resolver.exists("Udi's Bread!")
    assert resolution.exists is False
    assert resolution.product_id is None
    assert store.list("products") == []


def test_exists_after_creation(store: MemoryDocumentStore, catalog: ProductCatalog) -> None:
    catalog.create_if_absent("Udi's Bread!")
    resolution = ProductResolver(store).exists("UDI'S BREAD?")
    assert resolution.exists is True
    assert resolution.product_id == "udi-s-bread-"


def test_similar_flags_near_duplicates(store: MemoryDocumentStore, catalog: ProductCatalog) -> None:
    catalog.create_if_absent("Udi's Gluten Free Bread")
    catalog.create_if_absent("Banza Chickpea Pasta")
    matches = ProductResolver(store).similar("Udis Gluten Free Bread")
    assert [m.product_id for m in matches] == ["udi-s-gluten-free-bread"]
    assert matches[0].score >= 85


def test_similar_excludes_exact_id(store: MemoryDocumentStore, catalog: ProductCatalog) -> None:
    catalog.create_if_absent("Banza Chickpea Pasta")
    assert ProductResolver(store).similar("banza chickpea pasta") == []


def test_search_is_case_insensitive(store: MemoryDocumentStore, catalog: ProductCatalog) -> None:
    catalog.create_if_absent("Banza Chickpea Pasta")
    catalog.create_if_absent("Kind Bar")
    assert ProductResolver(store).search("PASTA") == [("banza-chickpea-pasta", "Banza Chickpea Pasta")]


def test_denied_listing_is_published(store: MemoryDocumentStore) -> None:
    store.rules = lambda path, operation, data: operation != "list"
    errors = ErrorChannel()
    seen: list[PermissionDenied] = []
    errors.on(seen.append)
    resolver = ProductResolver(store, errors=errors)

    with pytest.raises(PermissionDenied):
        resolver.similar("Kind Bar")

    assert [denial.context.operation for denial in seen] == ["list"]
