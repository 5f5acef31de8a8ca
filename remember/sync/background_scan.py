"""
Background scan manager.

Runs periodic scan passes in a background thread:
- The timer runs an unforced pass every ``interval_seconds``; if a pass is
  already running, that tick is skipped
- A forced pass (CLI or trigger toggle) waits for the running pass to
  finish and then runs
- ``request_scan`` wakes the loop for a forced pass; it is safe to call from
  a signal handler

Only one pass runs at a time. With a ``process_lock`` that also holds for
passes started by other processes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from remember.sync.scan_lock import ScanLock
from remember.sync.scan_service import ScanResult, ScanService


@dataclass
class ScanStatus:
    """Current background scan status."""

    is_running: bool = False
    is_scanning: bool = False
    last_scan_at: datetime | None = None
    last_scan_success: bool = True
    error_message: str | None = None
    total_scans: int = 0
    skipped_ticks: int = 0


@dataclass
class BackgroundScanner:
    """
    Background scan manager.

    Usage:
        scanner = BackgroundScanner(service, interval_seconds=60)
        scanner.start()
        # ... app runs ...
        scanner.stop()
    """

    service: ScanService
    interval_seconds: float = 60
    on_scan_complete: Callable[[ScanResult], None] | None = None
    process_lock: ScanLock | None = None

    # Internal state
    _status: ScanStatus = field(default_factory=ScanStatus)
    _thread: threading.Thread | None = field(default=None, repr=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, repr=False)
    _trigger_event: threading.Event = field(default_factory=threading.Event, repr=False)
    _busy: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def status(self) -> ScanStatus:
        """Get current scan status."""
        return self._status

    def start(self, initial_scan: bool = True) -> None:
        """Start the periodic loop; the first pass runs right away unless disabled."""
        if self._status.is_running:
            logger.warning("Background scanner already running")
            return

        self._status.is_running = True
        self._stop_event.clear()
        self._trigger_event.clear()
        self._thread = threading.Thread(
            target=self._scan_loop,
            args=(initial_scan,),
            name="remember-background-scan",
            daemon=True,
        )
        self._thread.start()
        logger.info("Background scanner started (interval: {}s)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop gracefully; a running pass is allowed to finish."""
        if not self._status.is_running:
            return

        logger.info("Stopping background scanner...")
        self._stop_event.set()
        self._trigger_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

        self._status.is_running = False
        logger.info("Background scanner stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scanner is stopped; True if it was."""
        return self._stop_event.wait(timeout)

    # ========================================
    # Triggers
    # ========================================

    def scan_if_idle(self) -> ScanResult | None:
        """Run an unforced pass unless one is in progress here or in another process."""
        if not self._busy.acquire(blocking=False):
            self._status.skipped_ticks += 1
            logger.debug("Scan already in progress - skipping")
            return None
        try:
            if self.process_lock is not None and not self.process_lock.try_acquire():
                self._status.skipped_ticks += 1
                logger.debug("Another process is scanning - skipping")
                return None
            try:
                return self._do_scan(force=False)
            finally:
                if self.process_lock is not None:
                    self.process_lock.release()
        finally:
            self._busy.release()

    def force_scan(self) -> ScanResult:
        """Run a forced pass, waiting for any running pass to finish first."""
        with self._busy:
            if self.process_lock is None:
                return self._do_scan(force=True)
            with self.process_lock.hold():
                return self._do_scan(force=True)

    def on_trigger_toggled(self, value: Any = None) -> ScanResult:
        """
        Handle the trigger setting being flipped.

        The value itself is irrelevant; any change requests a forced scan.
        """
        logger.info("Scan trigger toggled ({!r}); forcing a scan", value)
        return self.force_scan()

    def request_scan(self) -> None:
        """Ask the loop thread for a forced pass without waiting for it."""
        self._trigger_event.set()

    # ========================================
    # Internals
    # ========================================

    def _scan_loop(self, initial_scan: bool) -> None:
        if initial_scan:
            self.scan_if_idle()
        while not self._stop_event.is_set():
            triggered = self._trigger_event.wait(timeout=self.interval_seconds)
            if self._stop_event.is_set():
                break
            if triggered:
                self._trigger_event.clear()
                self.on_trigger_toggled("request")
            else:
                self.scan_if_idle()

    def _do_scan(self, force: bool) -> ScanResult:
        self._status.is_scanning = True
        try:
            result = self.service.scan(force=force)
        finally:
            self._status.is_scanning = False

        self._status.last_scan_at = datetime.now()
        self._status.last_scan_success = result.error is None
        self._status.error_message = result.error
        self._status.total_scans += 1

        if self.on_scan_complete:
            try:
                self.on_scan_complete(result)
            except Exception as exc:
                logger.warning("Scan callback failed: {}", exc)

        return result
