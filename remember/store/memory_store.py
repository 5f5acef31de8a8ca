"""
In-process document store.

Keeps notes and folders in dictionaries. Useful for dry runs and as the
store behind the test suite; the clock is injectable so edit times can be
controlled.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from remember.store.base import LocalDocumentStore


class MemoryDocumentStore(LocalDocumentStore):
    """Dictionary-backed :class:`LocalDocumentStore`."""

    def __init__(self, page_size: int = 100, clock: Callable[[], datetime] | None = None) -> None:
        super().__init__(page_size=page_size, clock=clock)
        self.folders: dict[str, dict[str, Any]] = {}
        self.notes: dict[str, dict[str, Any]] = {}

    def _list_folders(self) -> list[dict[str, Any]]:
        return [dict(f) for f in self.folders.values()]

    def _get_folder(self, folder_id: str) -> dict[str, Any] | None:
        folder = self.folders.get(folder_id)
        return dict(folder) if folder is not None else None

    def _save_folder(self, folder: dict[str, Any]) -> None:
        self.folders[folder["id"]] = dict(folder)

    def _delete_folder(self, folder_id: str) -> None:
        del self.folders[folder_id]

    def _list_notes(self, parent_id: str | None = None) -> list[dict[str, Any]]:
        return [
            dict(n)
            for n in self.notes.values()
            if parent_id is None or n.get("parent_id") == parent_id
        ]

    def _get_note(self, note_id: str) -> dict[str, Any] | None:
        note = self.notes.get(note_id)
        return dict(note) if note is not None else None

    def _save_note(self, note: dict[str, Any]) -> None:
        self.notes[note["id"]] = dict(note)

    def _delete_note(self, note_id: str) -> None:
        del self.notes[note_id]
