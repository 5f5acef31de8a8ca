"""Shared errors and logging setup."""

from remember.core.errors import (
    AmbiguousResultError,
    FormatError,
    NotFoundError,
    RememberError,
    ScanAbortedError,
    StoreError,
)

__all__ = [
    "RememberError",
    "FormatError",
    "NotFoundError",
    "AmbiguousResultError",
    "StoreError",
    "ScanAbortedError",
]
