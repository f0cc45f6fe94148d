"""Bookmark list state for one owner, kept in sync from three channels.

The list merges:

* bulk fetches (mount, refresh, retry, cross-tab signal), which replace the
  whole collection and repair any drift;
* the store's change feed, applied as idempotent id-keyed edits;
* local deletes, applied before the store confirms them.

Duplicate or late deliveries are harmless because every edit is keyed by
bookmark id: inserting a present id, or updating/deleting an absent one, is
a no-op.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple

from ..models.bookmark import Bookmark
from ..models.events import ChangeEvent, DeleteEvent, InsertEvent, UpdateEvent
from .cross_tab import CrossTabSignal
from .notifier import Notifier
from .store import BookmarkStoreClient, StoreError, Subscription

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Error loading bookmarks"
DELETE_FAILED_MESSAGE = "Error deleting bookmark"


class ListState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    LOAD_FAILED = "load_failed"


class ListReconciler:
    """Owns the newest-first, id-unique bookmark collection of one owner."""

    def __init__(
        self,
        owner_id: str,
        store: BookmarkStoreClient,
        signal: CrossTabSignal,
        notifier: Notifier,
        on_change: Optional[Callable[["ListReconciler"], None]] = None,
        rollback_failed_deletes: bool = False,
    ):
        self.owner_id = owner_id
        self.store = store
        self.signal = signal
        self.notifier = notifier
        self.on_change = on_change
        self.rollback_failed_deletes = rollback_failed_deletes
        self.state = ListState.LOADING
        self.mounted = False
        self._bookmarks: List[Bookmark] = []
        self._subscription: Optional[Subscription] = None
        self._remove_signal_listener: Optional[Callable[[], None]] = None
        self._pending: Set[asyncio.Task] = set()
        self._fetch_started = 0
        self._fetch_applied = 0
        self._edits = 0
        self._deleting: Set[str] = set()

    @property
    def bookmarks(self) -> List[Bookmark]:
        """Snapshot of the collection, newest first."""
        return list(self._bookmarks)

    def __len__(self) -> int:
        return len(self._bookmarks)

    def __contains__(self, bookmark_id: object) -> bool:
        return self._index_of(bookmark_id) is not None

    # Lifecycle

    async def mount(self) -> None:
        """Open the change feed and signal listener, then load the collection."""
        if self.mounted:
            return

        self.mounted = True
        try:
            self._subscription = await self.store.subscribe_changes(
                self.owner_id, self.apply_change
            )
        except StoreError as e:
            # The list still works from bulk fetches without live events
            logger.error(f"Could not open change feed for {self.owner_id}: {e}")
        self._remove_signal_listener = self.signal.add_listener(self._on_signal)

        await self.bulk_fetch()

    async def unmount(self) -> None:
        """Release the feed and listener and drop the collection."""
        self.mounted = False
        try:
            if self._remove_signal_listener is not None:
                self._remove_signal_listener()
                self._remove_signal_listener = None
            if self._subscription is not None:
                await self._subscription.close()
        finally:
            self._subscription = None
            for task in list(self._pending):
                task.cancel()
            self._pending.clear()
            self._bookmarks = []
            self.state = ListState.LOADING

    async def __aenter__(self) -> "ListReconciler":
        try:
            await self.mount()
        except BaseException:
            await self.unmount()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.unmount()
        return False

    # Bulk fetch

    async def bulk_fetch(self) -> bool:
        """Replace the collection with the store's current list.

        Returns:
            True if the fetched list was applied
        """
        while True:
            self._fetch_started += 1
            fetch_id = self._fetch_started
            edits = self._edits

            try:
                bookmarks = await self.store.select_all(self.owner_id)
            except StoreError as e:
                logger.error(f"Error fetching bookmarks: {e}")
                if not self.mounted:
                    return False
                if self.state is ListState.LOADING:
                    self.state = ListState.LOAD_FAILED
                    self._changed()
                self.notifier.alert(LOAD_FAILED_MESSAGE)
                return False

            if not self.mounted:
                logger.debug("Discarding fetch result after unmount")
                return False
            if fetch_id < self._fetch_applied:
                logger.debug(f"Discarding fetch {fetch_id}; fetch {self._fetch_applied} is newer")
                return False
            if self._edits == edits:
                break
            # The snapshot predates an edit made while it was in flight
            logger.debug(f"Fetch {fetch_id} raced a local edit, fetching again")

        self._fetch_applied = fetch_id
        self._bookmarks = [b for b in self._dedupe(bookmarks) if b.id not in self._deleting]
        self.state = ListState.READY
        self._changed()
        return True

    async def refresh(self) -> bool:
        """External refresh request; same as a bulk fetch, with no loading state."""
        return await self.bulk_fetch()

    async def retry(self) -> bool:
        """Manual retry after a failed load."""
        logger.info(f"Retrying bookmark load for {self.owner_id}")
        return await self.bulk_fetch()

    # Change feed

    def apply_change(self, event: ChangeEvent) -> None:
        """Apply one change-feed event to the collection."""
        if not self.mounted:
            return

        if isinstance(event, InsertEvent):
            changed = self._insert(event.record)
        elif isinstance(event, UpdateEvent):
            changed = self._replace(event.record)
        elif isinstance(event, DeleteEvent):
            changed = self._remove(event.id) is not None
        else:
            logger.warning(f"Ignoring unknown change event: {event!r}")
            return

        logger.debug(f"Applied {event.kind} event (changed={changed})")
        if changed:
            self._changed()

    # Local delete

    async def delete(self, bookmark_id: str) -> bool:
        """Delete a bookmark, removing it locally before the store confirms.

        Returns:
            True if the store accepted the delete
        """
        removed = self._remove(bookmark_id)
        if removed is not None:
            self._changed()

        self._deleting.add(bookmark_id)
        try:
            await self.store.delete_by_id(bookmark_id)
        except StoreError as e:
            logger.error(f"Error deleting bookmark {bookmark_id}: {e}")
            self.notifier.alert(DELETE_FAILED_MESSAGE)
            if self.rollback_failed_deletes and removed is not None and self.mounted:
                self._restore(*removed)
            return False
        finally:
            self._deleting.discard(bookmark_id)

        await self.signal.notify_siblings()
        return True

    # Cross-tab signal

    def _on_signal(self, marker: int) -> None:
        if not self.mounted:
            return

        logger.info(f"Cross-tab update detected ({marker}), refetching")
        task = asyncio.get_running_loop().create_task(self.bulk_fetch())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # Collection edits; each returns whether anything changed

    def _index_of(self, bookmark_id: object) -> Optional[int]:
        for index, bookmark in enumerate(self._bookmarks):
            if bookmark.id == bookmark_id:
                return index
        return None

    def _insert(self, bookmark: Bookmark) -> bool:
        if self._index_of(bookmark.id) is not None:
            return False
        self._bookmarks.insert(0, bookmark)
        self._edits += 1
        return True

    def _replace(self, bookmark: Bookmark) -> bool:
        index = self._index_of(bookmark.id)
        if index is None:
            return False
        self._bookmarks[index] = bookmark
        self._edits += 1
        return True

    def _remove(self, bookmark_id: str) -> Optional[Tuple[int, Bookmark]]:
        index = self._index_of(bookmark_id)
        if index is None:
            return None
        self._edits += 1
        return index, self._bookmarks.pop(index)

    def _restore(self, index: int, bookmark: Bookmark) -> None:
        if self._index_of(bookmark.id) is not None:
            return
        self._bookmarks.insert(min(index, len(self._bookmarks)), bookmark)
        self._edits += 1
        self._changed()

    @staticmethod
    def _dedupe(bookmarks: List[Bookmark]) -> List[Bookmark]:
        seen = set()
        unique = []
        for bookmark in bookmarks:
            if bookmark.id not in seen:
                seen.add(bookmark.id)
                unique.append(bookmark)
        return unique

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
