"""Add-bookmark form state and submission."""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from pydantic import ValidationError

from ..models.bookmark import Bookmark, NewBookmark
from ..utils.url_utils import is_absolute_url
from .cross_tab import CrossTabSignal
from .notifier import Notifier
from .store import BookmarkStoreClient, StoreError

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Please enter both URL and title"
INVALID_URL_MESSAGE = "Please enter a valid URL"
ADD_FAILED_MESSAGE = "Error adding bookmark"


class CreationFormController:
    """Holds the title/url being typed and submits them as a new bookmark."""

    def __init__(
        self,
        owner_id: str,
        store: BookmarkStoreClient,
        signal: CrossTabSignal,
        notifier: Notifier,
        on_added: Optional[Callable[[Bookmark], None]] = None,
    ):
        self.owner_id = owner_id
        self.store = store
        self.signal = signal
        self.notifier = notifier
        self.on_added = on_added
        self.title = ""
        self.url = ""
        self.submitting = False

    def set_title(self, value: str) -> None:
        self.title = value

    def set_url(self, value: str) -> None:
        self.url = value

    def validation_error(self) -> Optional[str]:
        """Message explaining why the current input cannot be submitted, if any."""
        if not self.title.strip() or not self.url.strip():
            return MISSING_FIELDS_MESSAGE
        if not is_absolute_url(self.url):
            return INVALID_URL_MESSAGE
        return None

    async def submit(self) -> Optional[Bookmark]:
        """Insert the entered bookmark.

        Returns:
            The created bookmark, or None if the submit was rejected, ignored
            because another submit is in flight, or failed at the store.
        """
        if self.submitting:
            logger.debug("Ignoring submit while another is in flight")
            return None

        error = self.validation_error()
        if error:
            self.notifier.alert(error)
            return None

        try:
            record = NewBookmark(
                title=self.title.strip(),
                url=self.url.strip(),
                user_id=self.owner_id,
            )
        except ValidationError as e:
            self.notifier.alert(f"Invalid bookmark: {e.errors()[0]['msg']}")
            return None

        with self._in_flight():
            try:
                bookmark = await self.store.insert(record)
            except StoreError as e:
                logger.error(f"Error adding bookmark: {e}")
                self.notifier.alert(ADD_FAILED_MESSAGE)
                return None

            self.title = ""
            self.url = ""
            await self.signal.notify_siblings()

        if self.on_added is not None:
            self.on_added(bookmark)
        return bookmark

    @contextmanager
    def _in_flight(self) -> Iterator[None]:
        self.submitting = True
        try:
            yield
        finally:
            self.submitting = False
