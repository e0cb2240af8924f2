"""Protocol definitions for storage backends and external services."""

from typing import Any, Callable, Optional, Protocol, TypeVar, runtime_checkable

from gmatrix.core.models import UserProfile

T = TypeVar("T")

DocumentData = dict[str, Any]
ChangeListener = Callable[[Optional[DocumentData]], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class Transaction(Protocol):
    """
    Read-then-write unit of work against a DocumentStore.

    Every document read is version-checked at commit; all reads must happen
    before the first write.
    """

    def get(self, path: str) -> Optional[DocumentData]:
        """Return the document at path, or None if it does not exist."""
        ...

    def set(self, path: str, data: DocumentData, merge: bool = False) -> None:
        """
        Write a whole document.

        Args:
            path: Document path, e.g. 'products/udi-s-bread-'
            data: Field values
            merge: Keep fields of the existing document that data does not name
        """
        ...

    def update(self, path: str, data: DocumentData) -> None:
        """Overwrite the named fields of an existing document."""
        ...

    def delete(self, path: str) -> None:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Document database with optimistic transactions and change listeners.

    Paths alternate collection/document segments:
    products/{productId}, products/{productId}/votes/{userId},
    users/{userId}, roles_admin/{userId}.
    """

    def get(self, path: str) -> Optional[DocumentData]:
        ...

    def list(self, collection: str) -> list[tuple[str, DocumentData]]:
        """
        Return (document_id, data) pairs of a collection, ordered by id.

        Args:
            collection: Collection path, e.g. 'products' or 'products/x/votes'
        """
        ...

    def set(self, path: str, data: DocumentData, merge: bool = False) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """
        Run fn inside a transaction, retrying it on write conflicts.

        Returns:
            Whatever fn returned on the attempt that committed

        Raises:
            ConcurrencyConflict: If every attempt conflicted
        """
        ...

    def subscribe(self, path: str, on_change: ChangeListener) -> Unsubscribe:
        """
        Listen for changes to one document.

        on_change is called once with the current state, then after every
        committed change (None once the document is deleted).
        """
        ...


@runtime_checkable
class VisionClient(Protocol):
    """External vision-capable completion service."""

    def extract_product_name(self, photo_data_uri: str) -> str:
        """
        Ask the service for the product name shown in a photo.

        Args:
            photo_data_uri: 'data:<mimetype>;base64,<encoded_data>'

        Returns:
            The product name as free text (may be empty)
        """
        ...


class BadgePredicate(Protocol):
    def __call__(self, profile: UserProfile) -> bool:
        ...
