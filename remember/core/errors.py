"""
Error taxonomy for remember-sync.

FormatError is fatal to the current scan pass. NotFoundError marks a single
item as inconsistent; callers log it and move on.
"""

from __future__ import annotations


class RememberError(Exception):
    """Base class for all remember-sync errors."""


class FormatError(RememberError):
    """Persisted text does not match its grammar (table, grid, log, review)."""


class NotFoundError(RememberError):
    """A referenced document, folder or block does not exist."""


class AmbiguousResultError(RememberError):
    """A lookup that should match at most once matched several documents."""


class StoreError(RememberError):
    """The document store rejected a request or could not be reached."""


class ScanAbortedError(RememberError):
    """A scan pass stopped early on purpose and should be retried later."""


class ScanLockedError(RememberError):
    """Another process is running a scan pass on the same store."""
