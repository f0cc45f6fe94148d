"""Tests for BookmarkView: sign-in gating and identity switches."""

import asyncio
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from livemarks.core.cross_tab import CrossTabSignal
from livemarks.core.list_reconciler import ListState
from livemarks.core.local_store import LocalBookmarkStore
from livemarks.core.notifier import RecordingNotifier
from livemarks.core.session import FileSessionProvider
from livemarks.core.view import BookmarkView, ViewState
from livemarks.models.bookmark import NewBookmark
from livemarks.models.session import owner_id_for_email

ALICE = "alice@example.com"
BOB = "bob@example.com"


@pytest.fixture
def temp_root():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
async def store(temp_root):
    local_store = LocalBookmarkStore(temp_root / "storage")
    await local_store.initialize()
    return local_store


@pytest.fixture
def provider(temp_root):
    return FileSessionProvider(temp_root / "session.yaml")


@pytest.fixture
def renders():
    return []


@pytest.fixture
def view(provider, store, temp_root, renders):
    return BookmarkView(
        session_provider=provider,
        store=store,
        signal=CrossTabSignal(temp_root / "signals", poll_interval=0.01),
        notifier=RecordingNotifier(),
        on_render=lambda v: renders.append(v.state),
    )


async def _add(store, email: str, title: str):
    return await store.insert(
        NewBookmark(title=title, url="https://example.com", user_id=owner_id_for_email(email))
    )


class TestSignInGate:
    """Test what the view shows for each session state."""

    @pytest.mark.asyncio
    async def test_signed_out_shows_no_list(self, view, renders):
        """Test no session means no form and no list."""
        async with view:
            assert view.state is ViewState.SIGNED_OUT
            assert view.form is None
            assert view.bookmark_list is None

        assert renders == [ViewState.SIGNED_OUT]

    @pytest.mark.asyncio
    async def test_signed_in_shows_own_bookmarks(self, view, provider, store):
        """Test an existing session mounts the owner's list."""
        await provider.sign_in(ALICE)
        mine = await _add(store, ALICE, "Mine")
        await _add(store, BOB, "Theirs")

        async with view:
            assert view.state is ViewState.SIGNED_IN
            assert view.session.email == ALICE
            assert view.form is not None
            assert view.bookmark_list.state is ListState.READY
            assert [b.id for b in view.bookmark_list.bookmarks] == [mine.id]
            assert store.owner_id == owner_id_for_email(ALICE)

    @pytest.mark.asyncio
    async def test_unmount_releases_everything(self, view, provider, store):
        """Test leaving the view closes the feed and stops the signal."""
        await provider.sign_in(ALICE)

        async with view:
            assert view.signal.running

        assert not view.signal.running
        assert store.subscriber_count(owner_id_for_email(ALICE)) == 0
        assert view.state is ViewState.LOADING


class TestIdentitySwitch:
    """Test sign-in, sign-out and account switches while mounted."""

    @pytest.mark.asyncio
    async def test_switch_account_remounts_list(self, view, provider, store):
        """Test signing in as someone else swaps the list and feed."""
        await provider.sign_in(ALICE)
        await _add(store, ALICE, "Alice's")
        bobs = await _add(store, BOB, "Bob's")

        async with view:
            alice_list = view.bookmark_list

            await provider.sign_in(BOB)
            await view.wait_idle()

            assert view.session.email == BOB
            assert view.bookmark_list is not alice_list
            assert [b.id for b in view.bookmark_list.bookmarks] == [bobs.id]
            assert not alice_list.mounted
            assert store.subscriber_count(owner_id_for_email(ALICE)) == 0
            assert store.subscriber_count(owner_id_for_email(BOB)) == 1
            assert store.owner_id == owner_id_for_email(BOB)

    @pytest.mark.asyncio
    async def test_sign_out_drops_list(self, view, provider, store):
        """Test sign out from the view returns to the signed-out state."""
        await provider.sign_in(ALICE)

        async with view:
            await view.sign_out()

            assert view.state is ViewState.SIGNED_OUT
            assert view.bookmark_list is None
            assert store.owner_id is None
            assert await provider.get_current_session() is None

    @pytest.mark.asyncio
    async def test_sign_out_renders_once(self, view, provider, renders):
        """Test sign out moves to signed-out with a single transition."""
        await provider.sign_in(ALICE)

        async with view:
            renders.clear()
            await view.sign_out()

            assert renders == [ViewState.SIGNED_OUT]

    @pytest.mark.asyncio
    async def test_sign_out_in_another_process(self, store, temp_root):
        """Test a sign-out written by another process drops the open list."""
        session_file = temp_root / "session.yaml"
        await FileSessionProvider(session_file).sign_in(ALICE)
        watching = FileSessionProvider(session_file, poll_interval=0.01)
        view = BookmarkView(
            session_provider=watching,
            store=store,
            signal=CrossTabSignal(temp_root / "signals"),
            notifier=RecordingNotifier(),
        )

        async with watching, view:
            assert view.state is ViewState.SIGNED_IN

            await FileSessionProvider(session_file).sign_out()
            for _ in range(200):
                if view.state is ViewState.SIGNED_OUT:
                    break
                await asyncio.sleep(0.01)
            await view.wait_idle()

            assert view.state is ViewState.SIGNED_OUT
            assert view.bookmark_list is None
            assert store.subscriber_count(owner_id_for_email(ALICE)) == 0

    @pytest.mark.asyncio
    async def test_sign_in_while_open(self, view, provider):
        """Test a sign-in elsewhere in the process shows the list."""
        async with view:
            await provider.sign_in(ALICE)
            await view.wait_idle()

            assert view.state is ViewState.SIGNED_IN
            assert view.bookmark_list.state is ListState.READY

    @pytest.mark.asyncio
    async def test_same_owner_does_not_remount(self, view, provider):
        """Test a repeated session for the same owner keeps the list."""
        session = await provider.sign_in(ALICE)

        async with view:
            current = view.bookmark_list

            await view.apply_session(session)

            assert view.bookmark_list is current


class TestAddRefresh:
    """Test the list refresh after the form adds a bookmark."""

    @pytest.mark.asyncio
    async def test_add_refreshes_list(self, view, provider, store):
        """Test a form submit schedules a bulk fetch."""
        await provider.sign_in(ALICE)

        async with view:
            real_select = store.select_all
            with patch.object(store, "select_all", side_effect=real_select) as select_all:
                view.form.set_title("Docs")
                view.form.set_url("https://docs.python.org")
                bookmark = await view.form.submit()
                await view.wait_idle()

            assert select_all.call_count == 1
            assert bookmark.id in view.bookmark_list

    @pytest.mark.asyncio
    async def test_add_without_refresh(self, provider, store, temp_root):
        """Test refresh_on_add=False relies on the change feed alone."""
        await provider.sign_in(ALICE)
        view = BookmarkView(
            session_provider=provider,
            store=store,
            signal=CrossTabSignal(temp_root / "signals"),
            notifier=RecordingNotifier(),
            refresh_on_add=False,
        )

        async with view:
            real_select = store.select_all
            with patch.object(store, "select_all", side_effect=real_select) as select_all:
                view.form.set_title("Docs")
                view.form.set_url("https://docs.python.org")
                bookmark = await view.form.submit()
                await view.wait_idle()

            select_all.assert_not_called()
            assert bookmark.id in view.bookmark_list


class TestTwoTabs:
    """Test two views of one owner sharing a config directory."""

    @pytest.mark.asyncio
    async def test_add_in_one_view_reaches_sibling(self, provider, store, temp_root):
        """Test an add in view one shows up in view two through the cross-tab signal."""
        session = await provider.sign_in(ALICE)
        # A second process: its own store client, so no shared in-process feed
        sibling_store = LocalBookmarkStore(store.root)
        views = [
            BookmarkView(
                session_provider=provider,
                store=tab_store,
                signal=CrossTabSignal(temp_root / "signals", poll_interval=0.01),
                notifier=RecordingNotifier(),
            )
            for tab_store in (store, sibling_store)
        ]

        async with views[0] as first, views[1] as second:
            assert len(first.bookmark_list) == 0
            assert len(second.bookmark_list) == 0

            real_insert = store.insert
            real_select = sibling_store.select_all
            with patch.object(store, "insert", side_effect=real_insert) as insert, \
                    patch.object(sibling_store, "select_all", side_effect=real_select) as sibling_fetch:
                first.form.set_title("Example")
                first.form.set_url("https://example.com")
                bookmark = await first.form.submit()
                await first.wait_idle()

                for _ in range(200):
                    if bookmark.id in second.bookmark_list:
                        break
                    await asyncio.sleep(0.01)

            assert insert.call_count == 1
            assert insert.call_args[0][0].user_id == session.user_id
            assert [(b.title, b.url) for b in first.bookmark_list.bookmarks] == [
                ("Example", "https://example.com")
            ]
            assert sibling_fetch.call_count >= 1
            assert [b.id for b in second.bookmark_list.bookmarks] == [bookmark.id]
