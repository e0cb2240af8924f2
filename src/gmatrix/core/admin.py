"""Admin authority: role lookup and explicit admin sessions."""

from __future__ import annotations

import logging
from typing import Optional

from gmatrix.core.clock import Clock, utc_now
from gmatrix.core.documents import admin_role_path, format_datetime
from gmatrix.core.errors import ErrorChannel, error_channel
from gmatrix.core.interfaces import DocumentStore
from gmatrix.core.models import AdminSession

logger = logging.getLogger(__name__)


class AdminAuthority:
    """
    A user is an admin exactly when roles_admin/{userId} exists.

    The record's fields are informational; only its existence is checked.
    """

    def __init__(self, store: DocumentStore, clock: Clock = utc_now, errors: ErrorChannel = error_channel) -> None:
        self.store = store
        self.clock = clock
        self.errors = errors

    def is_admin(self, user_id: str) -> bool:
        if not user_id:
            return False
        with self.errors.reporting():
            return self.store.get(admin_role_path(user_id)) is not None

    def session(
        self,
        user_id: str,
        view_as_user: bool = False,
        viewing_as_user_id: Optional[str] = None,
    ) -> AdminSession:
        """
        Build the admin context for one request.

        view_as_user drops admin capability for the session (the "view as a
        regular user" toggle); viewing_as_user_id picks whose data is shown.
        """
        return AdminSession(
            user_id=user_id,
            is_real_admin=self.is_admin(user_id),
            viewing_as_user_id=viewing_as_user_id,
            view_as_user=view_as_user or viewing_as_user_id is not None,
        )

    def grant(self, user_id: str) -> None:
        path = admin_role_path(user_id)
        with self.errors.reporting():
            self.store.set(path, {"grantedAt": format_datetime(self.clock())})
        logger.info("admin_granted user=%s", user_id)

    def revoke(self, user_id: str) -> None:
        path = admin_role_path(user_id)
        with self.errors.reporting():
            self.store.delete(path)
        logger.info("admin_revoked user=%s", user_id)
