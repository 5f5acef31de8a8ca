"""
Typed note and folder access on top of a :class:`DocumentStore`.

Also emulates lookups by a deterministic key: managed notes carry
``<prefix><key>`` in their ``source_url`` attribute, which the store can
search on.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from remember.core.errors import AmbiguousResultError
from remember.store.base import DocumentStore, ms_to_datetime, paginated

NOTE_FIELDS = ["id", "parent_id", "title", "body", "source_url", "updated_time"]
FOLDER_FIELDS = ["id", "parent_id", "title"]


@dataclass
class Folder:
    id: str
    title: str
    parent_id: str = ""

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Folder:
        return cls(id=item["id"], title=item.get("title", ""), parent_id=item.get("parent_id") or "")


@dataclass
class Note:
    id: str
    title: str
    body: str
    parent_id: str = ""
    source_url: str = ""
    updated_time: datetime | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> Note:
        updated = item.get("updated_time")
        return cls(
            id=item["id"],
            title=item.get("title", ""),
            body=item.get("body", ""),
            parent_id=item.get("parent_id") or "",
            source_url=item.get("source_url") or "",
            updated_time=ms_to_datetime(updated) if updated else None,
        )


class NoteStore:
    """Folder and note operations used by the scanner."""

    def __init__(self, store: DocumentStore, key_prefix: str = "joplin-remember/") -> None:
        self.store = store
        self.key_prefix = key_prefix

    # ---- folders ----------------------------------------------------------

    def folders(self) -> Iterator[Folder]:
        for item in paginated(self.store, ["folders"], {"fields": FOLDER_FIELDS}):
            yield Folder.from_item(item)

    def find_folder(self, title: str, parent_id: str = "") -> Folder | None:
        for folder in self.folders():
            if folder.parent_id == parent_id and folder.title == title:
                return folder
        return None

    def ensure_folder(self, title: str, parent_id: str = "") -> Folder:
        """Find a folder by title under ``parent_id``, creating it if missing."""
        folder = self.find_folder(title, parent_id)
        if folder is not None:
            logger.debug("Found existing folder {} ({})", title, folder.id)
            return folder

        logger.info("Could not find folder {}; creating", title)
        item = self.store.post(["folders"], {"title": title, "parent_id": parent_id})
        return Folder.from_item({"title": title, "parent_id": parent_id, **item})

    # ---- notes ------------------------------------------------------------

    def notes(self, folder_id: str | None = None) -> Iterator[Note]:
        """Every note, or the notes of one folder."""
        path = ["folders", folder_id, "notes"] if folder_id else ["notes"]
        for item in paginated(self.store, path, {"fields": NOTE_FIELDS}):
            yield Note.from_item(item)

    def search(self, query: str) -> Iterator[Note]:
        for item in paginated(self.store, ["search"], {"query": query, "fields": NOTE_FIELDS}):
            yield Note.from_item(item)

    def get_note(self, note_id: str) -> Note:
        return Note.from_item(self.store.get(["notes", note_id], {"fields": NOTE_FIELDS}))

    def create_note(self, title: str, body: str, parent_id: str, source_url: str = "") -> Note:
        item = self.store.post(
            ["notes"],
            {"title": title, "body": body, "parent_id": parent_id, "source_url": source_url},
        )
        return Note.from_item(
            {"title": title, "body": body, "parent_id": parent_id, "source_url": source_url, **item}
        )

    def update_note(self, note_id: str, **fields: Any) -> None:
        self.store.put(["notes", note_id], fields)

    def delete_note(self, note_id: str) -> None:
        self.store.delete(["notes", note_id])

    # ---- deterministic keys -----------------------------------------------

    def key_value(self, key: str) -> str:
        """The source_url value identifying the note with ``key``."""
        return self.key_prefix + key

    def find_by_key(self, key: str, folder_id: str, strict: bool = False) -> Note | None:
        """
        Retrieve the note carrying ``key`` inside ``folder_id``.

        When several notes match, the first is kept and the others are
        deleted, unless ``strict`` asks for an AmbiguousResultError instead.
        """
        value = self.key_value(key)
        matches = [
            n
            for n in self.search(f"sourceurl:{value}")
            if n.parent_id == folder_id and n.source_url == value
        ]
        if not matches:
            return None

        if len(matches) > 1:
            if strict:
                raise AmbiguousResultError(f"Key {key!r} matched {len(matches)} notes")
            logger.warning("Key {!r} matched {} notes; keeping {}", key, len(matches), matches[0].id)
            for extra in matches[1:]:
                self.delete_note(extra.id)

        return matches[0]
