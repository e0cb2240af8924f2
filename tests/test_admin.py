"""Tests for admin role lookup and sessions."""

import pytest

from gmatrix.core.admin import AdminAuthority
from gmatrix.core.documents import admin_role_path
from gmatrix.core.errors import ErrorChannel, PermissionDenied, ValidationError
from gmatrix.store.memory import MemoryDocumentStore


def test_admin_is_role_document_existence(store: MemoryDocumentStore, admin: AdminAuthority) -> None:
    assert admin.is_admin("root") is False
    assert admin.is_admin("") is False

    store.set(admin_role_path("root"), {})
    assert admin.is_admin("root") is True

    admin.revoke("root")
    assert admin.is_admin("root") is False


def test_grant_records_timestamp(store: MemoryDocumentStore, admin: AdminAuthority) -> None:
    admin.grant("root")
    assert store.get(admin_role_path("root")) == {"grantedAt": "2024-03-01T12:00:00+00:00"}


def test_sessions(admin: AdminAuthority) -> None:
    admin.grant("root")

    session = admin.session("root")
    assert session.is_real_admin is True
    assert session.can_administer is True
    assert session.effective_user_id == "root"

    viewing = admin.session("root", view_as_user=True)
    assert viewing.is_real_admin is True
    assert viewing.can_administer is False

    impersonating = admin.session("root", viewing_as_user_id="u42")
    assert impersonating.can_administer is False
    assert impersonating.effective_user_id == "u42"

    assert admin.session("u1").can_administer is False


def test_denied_grant_is_published_once(
    store: MemoryDocumentStore, admin: AdminAuthority, errors: ErrorChannel
) -> None:
    store.rules = lambda path, operation, data: operation == "get"
    seen: list[PermissionDenied] = []
    errors.on(seen.append)

    with pytest.raises(PermissionDenied):
        admin.grant("root")

    assert len(seen) == 1
    assert seen[0].context.path == admin_role_path("root")
    assert admin.is_admin("root") is False


def test_role_ids_are_single_segments(admin: AdminAuthority) -> None:
    with pytest.raises(ValidationError):
        admin.grant("team/root")
    with pytest.raises(ValidationError):
        admin.revoke("")
