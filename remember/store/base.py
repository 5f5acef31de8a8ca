"""
Abstract document store.

The store is shaped after the Joplin Data API: resources are addressed by a
path (``["notes", id]``, ``["folders", id, "notes"]``, ``["search"]``) and list
endpoints are paginated, returning ``{"items": [...], "has_more": bool}``.

Search query syntax (the subset the scanner relies on):

- ``updated:YYYYMMDD``   updated on or after that day
- ``-updated:YYYYMMDD``  updated before that day
- ``sourceurl:<value>``  exact match on the source_url attribute
- any other word        case-insensitive substring of title or body
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from remember.core.errors import NotFoundError, StoreError
from remember.study.scheduler import parse_day

Path = Sequence[str]

NOTE_DEFAULTS: dict[str, Any] = {
    "title": "",
    "body": "",
    "parent_id": "",
    "source_url": "",
}
FOLDER_DEFAULTS: dict[str, Any] = {
    "title": "",
    "parent_id": "",
}


class DocumentStore(ABC):
    """CRUD plus search over notes and folders."""

    @abstractmethod
    def get(self, path: Path, query: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fetch one resource or one page of a list resource."""

    @abstractmethod
    def post(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource and return it."""

    @abstractmethod
    def put(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        """Update fields of a resource and return it."""

    @abstractmethod
    def delete(self, path: Path) -> None:
        """Delete a resource."""


def paginated(
    store: DocumentStore,
    path: Path,
    query: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Iterate every item of a paginated list resource.

    Pages are fetched lazily; calling again restarts from page 1.
    """
    query = dict(query or {})
    page = 1
    while True:
        query["page"] = page
        response = store.get(path, query)
        yield from response.get("items", [])
        if not response.get("has_more"):
            break
        page += 1


# =============================================================================
# Search
# =============================================================================


@dataclass
class SearchQuery:
    """Parsed form of a search string."""

    updated_from: date | None = None
    updated_before: date | None = None
    source_url: str | None = None
    terms: list[str] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> SearchQuery:
        parsed = cls()
        for token in text.split():
            key, sep, value = token.partition(":")
            if sep and key == "updated":
                parsed.updated_from = parse_day(value)
            elif sep and key == "-updated":
                parsed.updated_before = parse_day(value)
            elif sep and key == "sourceurl":
                parsed.source_url = value
            else:
                parsed.terms.append(token.lower())
        return parsed

    def matches(self, note: dict[str, Any]) -> bool:
        updated = ms_to_datetime(note.get("updated_time", 0)).date()
        if self.updated_from is not None and updated < self.updated_from:
            return False
        if self.updated_before is not None and updated >= self.updated_before:
            return False
        if self.source_url is not None and note.get("source_url", "") != self.source_url:
            return False
        haystack = f"{note.get('title', '')}\n{note.get('body', '')}".lower()
        return all(term in haystack for term in self.terms)


def datetime_to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000)


def _fields(query: dict[str, Any]) -> list[str] | None:
    fields = query.get("fields")
    if not fields:
        return None
    if isinstance(fields, str):
        return [f.strip() for f in fields.split(",") if f.strip()]
    return list(fields)


def _project(item: dict[str, Any], fields: list[str] | None) -> dict[str, Any]:
    if fields is None:
        return dict(item)
    return {k: item[k] for k in fields if k in item}


# =============================================================================
# Local stores
# =============================================================================


class LocalDocumentStore(DocumentStore):
    """
    Routes Data API paths onto record-level primitives.

    Subclasses only persist plain dicts; paths, pagination, projection and
    timestamps are handled here. All calls are serialized by one lock.
    """

    def __init__(self, page_size: int = 100, clock: Callable[[], datetime] | None = None) -> None:
        self.page_size = page_size
        self.clock = clock or datetime.now
        self._lock = threading.RLock()

    # ---- primitives -------------------------------------------------------

    @abstractmethod
    def _list_folders(self) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _get_folder(self, folder_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def _save_folder(self, folder: dict[str, Any]) -> None: ...

    @abstractmethod
    def _delete_folder(self, folder_id: str) -> None: ...

    @abstractmethod
    def _list_notes(self, parent_id: str | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _get_note(self, note_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def _save_note(self, note: dict[str, Any]) -> None: ...

    @abstractmethod
    def _delete_note(self, note_id: str) -> None: ...

    def _search_notes(self, query: SearchQuery) -> list[dict[str, Any]]:
        return [n for n in self._list_notes() if query.matches(n)]

    # ---- routing ----------------------------------------------------------

    def _page(self, items: list[dict[str, Any]], query: dict[str, Any]) -> dict[str, Any]:
        page = int(query.get("page", 1))
        limit = int(query.get("limit", self.page_size))
        start = (page - 1) * limit
        fields = _fields(query)
        return {
            "items": [_project(i, fields) for i in items[start : start + limit]],
            "has_more": start + limit < len(items),
        }

    def _require(self, item: dict[str, Any] | None, kind: str, item_id: str) -> dict[str, Any]:
        if item is None:
            raise NotFoundError(f"No {kind} with id {item_id}")
        return item

    def get(self, path: Path, query: dict[str, Any] | None = None) -> dict[str, Any]:
        query = query or {}
        parts = tuple(path)
        with self._lock:
            if parts == ("folders",):
                return self._page(self._list_folders(), query)
            if len(parts) == 2 and parts[0] == "folders":
                return _project(self._require(self._get_folder(parts[1]), "folder", parts[1]), _fields(query))
            if len(parts) == 3 and parts[0] == "folders" and parts[2] == "notes":
                self._require(self._get_folder(parts[1]), "folder", parts[1])
                return self._page(self._list_notes(parts[1]), query)
            if parts == ("notes",):
                return self._page(self._list_notes(), query)
            if len(parts) == 2 and parts[0] == "notes":
                return _project(self._require(self._get_note(parts[1]), "note", parts[1]), _fields(query))
            if parts == ("search",):
                search = SearchQuery.parse(query.get("query", ""))
                return self._page(self._search_notes(search), query)
        raise StoreError(f"Unsupported GET path: {list(path)}")

    def post(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        parts = tuple(path)
        if parts == ("folders",):
            defaults, save = FOLDER_DEFAULTS, self._save_folder
        elif parts == ("notes",):
            defaults, save = NOTE_DEFAULTS, self._save_note
        else:
            raise StoreError(f"Unsupported POST path: {list(path)}")

        now = datetime_to_ms(self.clock())
        item = {**defaults, **body, "id": body.get("id") or uuid.uuid4().hex}
        item.setdefault("created_time", now)
        item.setdefault("updated_time", now)
        with self._lock:
            save(item)
        return dict(item)

    def put(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        parts = tuple(path)
        if len(parts) == 2 and parts[0] == "folders":
            kind, load, save = "folder", self._get_folder, self._save_folder
        elif len(parts) == 2 and parts[0] == "notes":
            kind, load, save = "note", self._get_note, self._save_note
        else:
            raise StoreError(f"Unsupported PUT path: {list(path)}")

        now = datetime_to_ms(self.clock())
        with self._lock:
            item = {**self._require(load(parts[1]), kind, parts[1]), **body}
            item["id"] = parts[1]
            item["updated_time"] = body.get("updated_time", now)
            save(item)
        return dict(item)

    def delete(self, path: Path) -> None:
        parts = tuple(path)
        if len(parts) == 2 and parts[0] == "folders":
            kind, load, remove = "folder", self._get_folder, self._delete_folder
        elif len(parts) == 2 and parts[0] == "notes":
            kind, load, remove = "note", self._get_note, self._delete_note
        else:
            raise StoreError(f"Unsupported DELETE path: {list(path)}")

        with self._lock:
            self._require(load(parts[1]), kind, parts[1])
            remove(parts[1])
