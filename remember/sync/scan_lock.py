"""
Cross-process scan lock.

A lock file created with O_EXCL marks a pass in progress, so a one-shot
``remember scan`` never overlaps a ``remember watch`` pass on the same store.
A lock file older than ``stale_seconds`` is left over from a crashed
process and is taken over.
"""

from __future__ import annotations

import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from remember.core.errors import ScanLockedError


class ScanLock:
    """
    Lock file guarding scan passes across processes.

    Usage:
        lock = ScanLock(".remember-scan.lock")
        with lock.hold(timeout=30):
            service.scan(force=True)
    """

    def __init__(self, path: str | Path, stale_seconds: float = 3600, poll_seconds: float = 0.5):
        self.path = Path(path)
        self.stale_seconds = stale_seconds
        self.poll_seconds = poll_seconds
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        """Take the lock if it is free; never waits."""
        self._break_stale()
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self._held = True
        return True

    def acquire(self, timeout: float | None = None) -> None:
        """
        Wait for the lock.

        Args:
            timeout: Seconds to wait; None waits forever

        Raises:
            ScanLockedError: If the lock is still held when the timeout expires
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.try_acquire():
            if deadline is not None and time.monotonic() >= deadline:
                raise ScanLockedError(f"Another scan holds {self.path}")
            logger.debug("Waiting for scan lock {}", self.path)
            time.sleep(self.poll_seconds)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("Scan lock {} vanished before release", self.path)

    @contextmanager
    def hold(self, timeout: float | None = None) -> Iterator[ScanLock]:
        self.acquire(timeout)
        try:
            yield self
        finally:
            self.release()

    def _break_stale(self) -> None:
        try:
            age = time.time() - self.path.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self.stale_seconds:
            logger.warning("Removing stale scan lock {} ({:.0f}s old)", self.path, age)
            self.path.unlink(missing_ok=True)
