"""YAML-file bookmark store with an in-process change feed."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from ..models.bookmark import Bookmark, NewBookmark, newest_first
from ..models.events import ChangeEvent, DeleteEvent, InsertEvent, UpdateEvent
from ..utils.file_lock import FileLocker, FileLockError
from ..utils.yaml_handler import YAMLError, load_bookmark_from_file, save_bookmark_to_file
from .store import (
    BookmarkNotFoundError,
    BookmarkStoreClient,
    ChangeHandler,
    StoreError,
    Subscription,
)

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


class LocalBookmarkStore(BookmarkStoreClient):
    """Stores one YAML file per bookmark under ``<root>/bookmarks``.

    Every read goes to disk, so writes made by other processes sharing the
    directory are visible on the next ``select_all``. The change feed only
    reaches subscribers in this process; sibling processes learn about
    changes through the cross-tab signal instead.
    """

    def __init__(self, root: Path):
        """Initialize local store.

        Args:
            root: Storage directory; created if missing
        """
        self.root = Path(root)
        self.bookmarks_path = self.root / "bookmarks"
        self.owner_id: Optional[str] = None
        self.load_errors: List[str] = []
        self._subscribers: Dict[str, List[Tuple[Subscription, ChangeHandler]]] = {}

    async def initialize(self) -> None:
        """Create the storage structure and check it is writable.

        Raises:
            StoreError: If the directory cannot be created or written
        """
        try:
            await asyncio.to_thread(self.bookmarks_path.mkdir, parents=True, exist_ok=True)
            test_file = self.root / ".livemarks_test"
            await asyncio.to_thread(test_file.touch)
            await asyncio.to_thread(test_file.unlink)
        except PermissionError:
            raise StoreError(f"Cannot access storage: Permission denied for {self.root}")
        except Exception as e:
            raise StoreError(f"Cannot access storage {self.root}: {e}") from e

    async def insert(self, record: NewBookmark) -> Bookmark:
        bookmark = Bookmark(
            id=str(uuid4()),
            title=record.title,
            url=record.url,
            user_id=record.user_id,
            created_at=datetime.now(timezone.utc),
        )
        await self._write(bookmark)

        logger.info(f"Inserted bookmark {bookmark.id} for {bookmark.user_id}")
        self._publish(bookmark.user_id, InsertEvent(record=bookmark))
        return bookmark

    async def select_all(self, owner_id: str) -> List[Bookmark]:
        try:
            bookmarks = await asyncio.to_thread(self._load_all)
        except OSError as e:
            raise StoreError(f"Failed to read storage {self.root}: {e}") from e

        return newest_first(b for b in bookmarks if b.user_id == owner_id)

    async def get(self, bookmark_id: str) -> Bookmark:
        """Load one bookmark by identifier.

        Raises:
            BookmarkNotFoundError: If no such bookmark exists
            StoreError: If the record cannot be read
        """
        file_path = self._file_path(bookmark_id)
        if not file_path.exists():
            raise BookmarkNotFoundError(f"Bookmark not found: {bookmark_id}")

        try:
            return await asyncio.to_thread(load_bookmark_from_file, file_path)
        except YAMLError as e:
            raise StoreError(f"Failed to read bookmark {bookmark_id}: {e}") from e

    async def update(
        self,
        bookmark_id: str,
        title: Optional[str] = None,
        url: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Bookmark:
        """Change title and/or url of a bookmark.

        Args:
            bookmark_id: Bookmark to change
            title: New title
            url: New url
            owner_id: Acting owner; defaults to the owner set with set_owner

        Raises:
            BookmarkNotFoundError: If no such bookmark exists for the current owner
            StoreError: If the write fails
        """
        existing = await self._get_owned(bookmark_id, owner_id)

        data = existing.model_dump()
        if title is not None:
            data["title"] = title
        if url is not None:
            data["url"] = url

        # Re-validate so blank values are rejected like on insert
        updated = Bookmark(**data)
        await self._write(updated)

        logger.info(f"Updated bookmark {bookmark_id}")
        self._publish(updated.user_id, UpdateEvent(record=updated))
        return updated

    async def delete_by_id(self, bookmark_id: str, owner_id: Optional[str] = None) -> None:
        bookmark = await self._get_owned(bookmark_id, owner_id)
        file_path = self._file_path(bookmark_id)

        try:
            async with FileLocker(file_path):
                await asyncio.to_thread(file_path.unlink, missing_ok=True)
        except FileLockError as e:
            raise StoreError(f"Could not acquire lock for {bookmark_id}: {e}") from e
        except OSError as e:
            raise StoreError(f"Failed to delete bookmark {bookmark_id}: {e}") from e

        logger.info(f"Deleted bookmark {bookmark_id}")
        self._publish(bookmark.user_id, DeleteEvent(id=bookmark_id))

    async def subscribe_changes(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        async def remove() -> None:
            entries = self._subscribers.get(owner_id, [])
            self._subscribers[owner_id] = [e for e in entries if e[0] is not subscription]
            logger.debug(f"Closed change feed for {owner_id}")

        subscription = Subscription(owner_id, on_close=remove)
        self._subscribers.setdefault(owner_id, []).append((subscription, handler))
        logger.debug(f"Opened change feed for {owner_id}")
        return subscription

    def subscriber_count(self, owner_id: str) -> int:
        """Number of open change-feed subscriptions for owner_id."""
        return len(self._subscribers.get(owner_id, []))

    async def _get_owned(self, bookmark_id: str, owner_id: Optional[str] = None) -> Bookmark:
        bookmark = await self.get(bookmark_id)
        acting_owner = owner_id or self.owner_id
        if acting_owner is not None and bookmark.user_id != acting_owner:
            # Other owners' rows are invisible, not forbidden
            raise BookmarkNotFoundError(f"Bookmark not found: {bookmark_id}")
        return bookmark

    async def _write(self, bookmark: Bookmark) -> None:
        file_path = self._file_path(bookmark.id)
        try:
            async with FileLocker(file_path):
                await asyncio.to_thread(save_bookmark_to_file, bookmark, file_path)
        except FileLockError as e:
            raise StoreError(f"Could not acquire lock for {bookmark.id}: {e}") from e
        except YAMLError as e:
            raise StoreError(f"Failed to save bookmark {bookmark.id}: {e}") from e

    def _load_all(self) -> List[Bookmark]:
        self.load_errors = []
        if not self.bookmarks_path.exists():
            return []

        bookmarks = []
        for yaml_file in self.bookmarks_path.glob("*.yaml"):
            try:
                bookmarks.append(load_bookmark_from_file(yaml_file))
            except YAMLError as e:
                # Skip corrupted or concurrently removed files
                error_msg = f"Skipped {yaml_file.name}: {e}"
                logger.warning(error_msg)
                self.load_errors.append(error_msg)

        return bookmarks

    def _file_path(self, bookmark_id: str) -> Path:
        if not _ID_PATTERN.match(bookmark_id):
            raise BookmarkNotFoundError(f"Bookmark not found: {bookmark_id}")
        return self.bookmarks_path / f"{bookmark_id}.yaml"

    def _publish(self, owner_id: str, event: ChangeEvent) -> None:
        """Queue event for every subscriber of owner_id.

        Delivery happens on a later loop iteration, as a pushed event would.
        """
        entries = list(self._subscribers.get(owner_id, []))
        if not entries:
            return

        loop = asyncio.get_running_loop()
        for subscription, handler in entries:
            loop.call_soon(self._deliver, subscription, handler, event)

    @staticmethod
    def _deliver(subscription: Subscription, handler: ChangeHandler, event: ChangeEvent) -> None:
        if subscription.closed:
            return
        try:
            handler(event)
        except Exception:
            logger.exception(f"Change handler failed for {event.kind} event")
