"""Lock files guarding bookmark records and the shared signal slot."""

import asyncio
import os
import time
from pathlib import Path


class FileLockError(Exception):
    """File locking error."""

    pass


class FileLocker:
    """Context manager holding a ``<file>.lock`` sibling for the lifetime of a block.

    The lock file is created with O_EXCL so two processes cannot both
    acquire it. A lock older than twice the timeout is treated as left behind
    by a dead process and removed.
    """

    def __init__(self, file_path: Path, timeout: float = 5.0, poll_interval: float = 0.05):
        """Initialize file locker.

        Args:
            file_path: Path to the file to lock
            timeout: Maximum time to wait for lock acquisition (seconds)
            poll_interval: Delay between acquisition attempts (seconds)
        """
        self.file_path = file_path
        self.lock_path = Path(str(file_path) + ".lock")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.acquired = False

    def __enter__(self) -> "FileLocker":
        start_time = time.monotonic()
        while not self._try_acquire():
            self._check_timeout(start_time)
            time.sleep(self.poll_interval)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._release_lock()
        return False

    async def __aenter__(self) -> "FileLocker":
        start_time = time.monotonic()
        while not await asyncio.to_thread(self._try_acquire):
            self._check_timeout(start_time)
            await asyncio.sleep(self.poll_interval)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._release_lock()
        return False

    def _try_acquire(self) -> bool:
        """Attempt a single exclusive creation of the lock file."""
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            self._remove_if_stale()
            return False
        except OSError as e:
            raise FileLockError(f"Could not create lock for {self.file_path}: {e}") from e

        os.close(fd)
        self.acquired = True
        return True

    def _remove_if_stale(self) -> None:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self.timeout * 2:
            self.lock_path.unlink(missing_ok=True)

    def _check_timeout(self, start_time: float) -> None:
        if time.monotonic() - start_time > self.timeout:
            raise FileLockError(
                f"Could not acquire lock on {self.file_path} after {self.timeout}s"
            )

    def _release_lock(self) -> None:
        if self.acquired:
            self.lock_path.unlink(missing_ok=True)
            self.acquired = False
