"""Top-level bookmark view: sign-in gate plus the form and list of the signed-in owner."""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Set

from ..models.bookmark import Bookmark
from ..models.session import Session
from .cross_tab import CrossTabSignal
from .form_controller import CreationFormController
from .list_reconciler import ListReconciler
from .notifier import Notifier
from .session import SessionProvider
from .store import BookmarkStoreClient

logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    LOADING = "loading"
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"


class BookmarkView:
    """Mounts a form and list for whoever is signed in, and swaps them on identity change."""

    def __init__(
        self,
        session_provider: SessionProvider,
        store: BookmarkStoreClient,
        signal: CrossTabSignal,
        notifier: Notifier,
        refresh_on_add: bool = True,
        rollback_failed_deletes: bool = False,
        on_render: Optional[Callable[["BookmarkView"], None]] = None,
    ):
        self.session_provider = session_provider
        self.store = store
        self.signal = signal
        self.notifier = notifier
        self.refresh_on_add = refresh_on_add
        self.rollback_failed_deletes = rollback_failed_deletes
        self.on_render = on_render

        self.state = ViewState.LOADING
        self.session: Optional[Session] = None
        self.form: Optional[CreationFormController] = None
        self.bookmark_list: Optional[ListReconciler] = None

        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    @property
    def owner_id(self) -> Optional[str]:
        return self.session.user_id if self.session else None

    async def mount(self) -> None:
        """Resolve the initial session once, then follow session changes."""
        await self.signal.start()
        session = await self.session_provider.get_current_session()
        self._unsubscribe = self.session_provider.on_session_change(self._on_session_change)
        await self.apply_session(session)

    async def unmount(self) -> None:
        try:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            for task in list(self._pending):
                task.cancel()
            self._pending.clear()
            async with self._lock:
                await self._unmount_children()
        finally:
            await self.signal.stop()
            self.state = ViewState.LOADING

    async def __aenter__(self) -> "BookmarkView":
        try:
            await self.mount()
        except BaseException:
            await self.unmount()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.unmount()
        return False

    async def apply_session(self, session: Optional[Session]) -> None:
        """Show the view for session, remounting children only when the owner changes."""
        async with self._lock:
            new_owner = session.user_id if session else None
            owner_changed = new_owner != self.owner_id or self.state is ViewState.LOADING
            self.session = session

            if owner_changed:
                await self._unmount_children()
                self.store.set_owner(new_owner)
                if session is not None:
                    await self._mount_children(session)

            self.state = ViewState.SIGNED_IN if session else ViewState.SIGNED_OUT
        self.render()

    async def sign_out(self) -> None:
        """Sign out through the provider; its notification drops the list."""
        await self.session_provider.sign_out()
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for scheduled session changes and refreshes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def render(self) -> None:
        if self.on_render is not None:
            self.on_render(self)

    async def _mount_children(self, session: Session) -> None:
        self.form = CreationFormController(
            owner_id=session.user_id,
            store=self.store,
            signal=self.signal,
            notifier=self.notifier,
            on_added=self._handle_bookmark_added,
        )
        self.bookmark_list = ListReconciler(
            owner_id=session.user_id,
            store=self.store,
            signal=self.signal,
            notifier=self.notifier,
            on_change=lambda _: self.render(),
            rollback_failed_deletes=self.rollback_failed_deletes,
        )
        logger.info(f"Showing bookmarks for {session.email}")
        await self.bookmark_list.mount()

    async def _unmount_children(self) -> None:
        bookmark_list, self.bookmark_list = self.bookmark_list, None
        self.form = None
        if bookmark_list is not None:
            await bookmark_list.unmount()

    def _on_session_change(self, session: Optional[Session]) -> None:
        self.schedule(self.apply_session(session))

    def _handle_bookmark_added(self, bookmark: Bookmark) -> None:
        logger.debug(f"Bookmark {bookmark.id} added from this view")
        if self.refresh_on_add and self.bookmark_list is not None:
            self.schedule(self.bookmark_list.refresh())

    def schedule(self, coro) -> asyncio.Task:
        """Run coro in the background, tracked so unmount can cancel it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
