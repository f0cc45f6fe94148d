"""Cross-tab signal: a shared change marker for sibling views on one device.

The slot is a single small YAML file holding the latest marker and the
origin that wrote it. Views poll the file and tell their listeners when a
*different* origin wrote a new marker; the marker itself means nothing
beyond "something changed, go check".
"""

import asyncio
import contextlib
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from ..utils.file_lock import FileLocker, FileLockError
from ..utils.yaml_handler import YAMLError, dump_mapping, load_mapping, write_yaml_atomic

logger = logging.getLogger(__name__)

SignalListener = Callable[[int], None]


class CrossTabSignal:
    """One named slot shared by every view using the same signal directory."""

    def __init__(
        self,
        signal_dir: Path,
        key: str = "bookmark-update",
        poll_interval: float = 0.25,
        origin: Optional[str] = None,
    ):
        """Initialize the signal.

        Args:
            signal_dir: Directory shared by sibling views
            key: Slot name
            poll_interval: Seconds between slot checks while started
            origin: Identity of this view; random if omitted
        """
        self.key = key
        self.slot_path = Path(signal_dir) / f"{key}.yaml"
        self.poll_interval = poll_interval
        self.origin = origin or uuid4().hex
        self._listeners: List[SignalListener] = []
        self._last_seen: Optional[Tuple[int, str]] = None
        self._last_written = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: SignalListener) -> Callable[[], None]:
        """Register listener for markers written by other views; returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def write(self) -> int:
        """Store a new marker in the slot and return it.

        Markers increase strictly, even when two writes land in the same
        millisecond or the wall clock steps back.

        Raises:
            FileLockError: If the slot lock cannot be acquired
            YAMLError: If the slot cannot be written
        """
        async with FileLocker(self.slot_path, timeout=2.0):
            current = await asyncio.to_thread(self._read_slot)
            floor = max(self._last_written, current[0] if current else 0)
            marker = max(int(time.time() * 1000), floor + 1)
            content = dump_mapping({"value": marker, "origin": self.origin})
            await asyncio.to_thread(write_yaml_atomic, content, self.slot_path)

        self._last_written = marker
        # Our own write must never come back to us as a change
        self._last_seen = (marker, self.origin)
        logger.debug(f"Wrote signal {self.key}={marker}")
        return marker

    async def notify_siblings(self) -> None:
        """Write a marker, logging instead of raising if the slot is unavailable."""
        try:
            await self.write()
        except (FileLockError, YAMLError) as e:
            logger.warning(f"Could not write cross-tab signal {self.key}: {e}")

    async def start(self) -> None:
        """Begin watching the slot. Markers present before start are not reported."""
        if self.running:
            return

        try:
            self._last_seen = await asyncio.to_thread(self._read_slot)
        except YAMLError as e:
            logger.warning(f"Ignoring unreadable signal slot {self.slot_path}: {e}")
            self._last_seen = None

        self._task = asyncio.create_task(self._watch(), name=f"livemarks-signal-{self.key}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "CrossTabSignal":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False

    async def check(self) -> bool:
        """Read the slot once; notify listeners if a sibling wrote a new marker.

        Returns:
            True if listeners were notified
        """
        try:
            entry = await asyncio.to_thread(self._read_slot)
        except YAMLError as e:
            logger.warning(f"Ignoring unreadable signal slot {self.slot_path}: {e}")
            return False

        if entry is None or entry == self._last_seen:
            return False

        self._last_seen = entry
        marker, origin = entry
        if origin == self.origin or not marker:
            return False

        logger.debug(f"Observed signal {self.key}={marker} from {origin}")
        for listener in list(self._listeners):
            try:
                listener(marker)
            except Exception:
                logger.exception("Signal listener failed")
        return True

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.check()

    def _read_slot(self) -> Optional[Tuple[int, str]]:
        data = load_mapping(self.slot_path)
        if data is None:
            return None

        try:
            return int(data.get("value") or 0), str(data.get("origin") or "")
        except (TypeError, ValueError) as e:
            raise YAMLError(f"Malformed signal slot {self.slot_path}: {e}") from e
