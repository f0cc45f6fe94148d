"""Session providers: who is signed in, and notifications when that changes."""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from ..models.session import Session
from ..utils.yaml_handler import YAMLError, load_model_from_file, save_model_to_file

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class SessionError(Exception):
    """Sign-in or sign-out failed."""

    pass


class SessionProvider(ABC):
    """Supplies the current identity and announces sign-in/sign-out."""

    def __init__(self):
        self._listeners: List[SessionListener] = []

    @abstractmethod
    async def get_current_session(self) -> Optional[Session]:
        """Resolve the current session once (None when signed out)."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session and notify listeners."""

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")


class FileSessionProvider(SessionProvider):
    """Keeps the signed-in session in ``session.yaml`` inside the config directory.

    While started, the provider also polls the file so that a sign-in or
    sign-out made by another process reaches this process's listeners.
    """

    def __init__(self, session_file: Path, poll_interval: float = 0.5):
        super().__init__()
        self.session_file = session_file
        self.poll_interval = poll_interval
        self._known_user_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def watching(self) -> bool:
        return self._task is not None and not self._task.done()

    async def get_current_session(self) -> Optional[Session]:
        if not self.session_file.exists():
            return None

        try:
            return await asyncio.to_thread(load_model_from_file, self.session_file, Session)
        except YAMLError as e:
            # A damaged session file means signed out, not a crash
            logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return None

    async def sign_in(self, email: str) -> Session:
        """Sign in as email, replacing any current session.

        Raises:
            ValueError: If the email is invalid
            SessionError: If the session cannot be stored
        """
        session = Session.for_email(email)
        previous, self._known_user_id = self._known_user_id, session.user_id
        try:
            await asyncio.to_thread(save_model_to_file, session, self.session_file)
        except YAMLError as e:
            self._known_user_id = previous
            raise SessionError(f"Failed to store session: {e}") from e

        logger.info(f"Signed in as {session.email}")
        self._notify(session)
        return session

    async def sign_out(self) -> None:
        previous, self._known_user_id = self._known_user_id, None
        try:
            await asyncio.to_thread(self.session_file.unlink, missing_ok=True)
        except OSError as e:
            self._known_user_id = previous
            raise SessionError(f"Failed to remove session: {e}") from e

        logger.info("Signed out")
        self._notify(None)

    async def start(self) -> None:
        """Begin watching the session file for changes made elsewhere."""
        if self.watching:
            return

        session = await self.get_current_session()
        self._known_user_id = session.user_id if session else None
        self._task = asyncio.create_task(self._watch(), name="livemarks-session-watch")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "FileSessionProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False

    async def check(self) -> bool:
        """Read the session file once; notify listeners if the owner changed.

        Returns:
            True if listeners were notified
        """
        session = await self.get_current_session()
        user_id = session.user_id if session else None
        if user_id == self._known_user_id:
            return False

        self._known_user_id = user_id
        if session is None:
            logger.info("Signed out in another process")
        else:
            logger.info(f"Signed in as {session.email} in another process")
        self._notify(session)
        return True

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.check()
