"""Bookmark store client contract.

Every backing store exposes the same four operations: insert one bookmark,
select all of an owner's bookmarks newest first, delete one by identifier,
and subscribe to the owner's change feed. Failures surface as StoreError.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from ..models.bookmark import Bookmark, NewBookmark
from ..models.events import ChangeEvent

ChangeHandler = Callable[[ChangeEvent], None]


class StoreError(Exception):
    """Store operation failed (network, auth, permission or storage)."""

    pass


class BookmarkNotFoundError(StoreError):
    """Bookmark does not exist for this owner."""

    pass


class SubscriptionError(StoreError):
    """Change feed was disrupted."""

    pass


class Subscription:
    """Handle for an open change-feed subscription.

    ``close()`` releases the underlying connection and is safe to call more
    than once.
    """

    def __init__(self, owner_id: str, on_close: Optional[Callable[[], Awaitable[None]]] = None):
        self.owner_id = owner_id
        self._on_close = on_close
        self.closed = False
        self.error: Optional[Exception] = None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            await self._on_close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class BookmarkStoreClient(ABC):
    """Operations the sync core needs from a backing store."""

    owner_id: Optional[str] = None

    @abstractmethod
    async def insert(self, record: NewBookmark) -> Bookmark:
        """Insert one bookmark and return it as stored.

        Raises:
            StoreError: If the insert fails
        """

    @abstractmethod
    async def select_all(self, owner_id: str) -> List[Bookmark]:
        """Return all bookmarks of owner_id ordered by created_at descending.

        Raises:
            StoreError: If the query fails
        """

    @abstractmethod
    async def delete_by_id(self, bookmark_id: str) -> None:
        """Delete one bookmark.

        Raises:
            BookmarkNotFoundError: If no such bookmark exists
            StoreError: If the delete fails
        """

    @abstractmethod
    async def subscribe_changes(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        """Start delivering owner_id's change events to handler.

        Raises:
            SubscriptionError: If the feed cannot be opened
        """

    def set_owner(self, owner_id: Optional[str]) -> None:
        """Set the identity that subsequent calls act as.

        The store uses it to scope deletes to the signed-in owner. None
        means signed out.
        """
        self.owner_id = owner_id

    async def aclose(self) -> None:
        """Release client resources."""
