"""Error taxonomy and the process-wide permission error channel."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

GENERIC_PERMISSION_MESSAGE = "You don't have permission to do that."
GENERIC_RETRY_MESSAGE = "Something went wrong, please try again."


class GMatrixError(Exception):
    """Base class for all gmatrix errors."""


class ValidationError(GMatrixError, ValueError):
    """Bad input (image type/size, out-of-range rating, empty name). Nothing was written."""


class NotFound(GMatrixError, LookupError):
    """The product or vote being operated on does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


@dataclass(frozen=True)
class SecurityRuleContext:
    """The request that an authorization rule rejected."""

    path: str
    operation: str
    """One of: get, list, write, update, delete."""

    request_data: Optional[dict[str, Any]] = None


class PermissionDenied(GMatrixError):
    """An authorization rule rejected the operation."""

    def __init__(self, context: SecurityRuleContext) -> None:
        detail = json.dumps(asdict(context), indent=2, default=str)
        super().__init__(f"Missing or insufficient permissions: the following request was denied:\n{detail}")
        self.context = context
        self.reported = False
        """Set once the error has gone out on an ErrorChannel."""


class ExternalServiceFailure(GMatrixError):
    """The image analysis service failed. Always degraded, never shown as a hard error."""


class ConcurrencyConflict(GMatrixError):
    """A transaction kept conflicting with concurrent writers until the retry budget ran out."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Transaction aborted after {attempts} conflicting attempts")
        self.attempts = attempts


PermissionListener = Callable[[PermissionDenied], None]


class ErrorChannel:
    """
    Single fan-out point for permission errors.

    Call sites emit here instead of each formatting and logging the error, so
    every denial gets the same user-facing treatment.
    """

    def __init__(self) -> None:
        self._listeners: list[PermissionListener] = []
        self._lock = threading.Lock()

    def on(self, listener: PermissionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def off(self, listener: PermissionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, error: PermissionDenied) -> None:
        logger.error("permission_denied path=%s operation=%s", error.context.path, error.context.operation)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(error)

    def report(self, error: PermissionDenied) -> None:
        """Emit error unless a call further down the stack already did."""
        if error.reported:
            return
        error.reported = True
        self.emit(error)

    @contextmanager
    def reporting(self) -> Iterator[None]:
        """Report any PermissionDenied raised inside the block, then re-raise it."""
        try:
            yield
        except PermissionDenied as exc:
            self.report(exc)
            raise


error_channel = ErrorChannel()


def user_message(error: Exception, debug: bool = False) -> str:
    """
    Text to show the user for an error.

    In development (debug=True) permission errors are shown verbatim, with the
    attempted operation and path; in production they collapse to a generic notice.
    """
    if isinstance(error, PermissionDenied):
        return str(error) if debug else GENERIC_PERMISSION_MESSAGE
    if isinstance(error, ConcurrencyConflict):
        return GENERIC_RETRY_MESSAGE
    if isinstance(error, (ValidationError, NotFound)):
        return str(error)
    return str(error) if debug else GENERIC_RETRY_MESSAGE
