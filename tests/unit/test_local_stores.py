"""
Unit tests for the local document stores.

The same behaviour is checked against the in-memory store and the
SQLAlchemy store on an in-memory SQLite database.
"""

from datetime import datetime

import pytest

from remember.core.errors import NotFoundError, StoreError
from remember.store.base import SearchQuery, paginated
from remember.store.memory_store import MemoryDocumentStore
from remember.store.sql_store import SqlDocumentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock):
    if request.param == "memory":
        return MemoryDocumentStore(page_size=2, clock=clock)
    return SqlDocumentStore("sqlite://", page_size=2, clock=clock)


class TestFoldersAndNotes:
    """Tests for CRUD over Data API paths."""

    def test_post_and_get_note(self, store):
        created = store.post(["notes"], {"title": "T", "body": "B", "parent_id": "f"})

        fetched = store.get(["notes", created["id"]])

        assert fetched["title"] == "T"
        assert fetched["body"] == "B"
        assert fetched["source_url"] == ""
        assert fetched["updated_time"] == created["updated_time"]

    def test_fields_projection(self, store):
        created = store.post(["notes"], {"title": "T", "body": "B"})
        fetched = store.get(["notes", created["id"]], {"fields": "id,title"})
        assert fetched == {"id": created["id"], "title": "T"}

    def test_put_updates_fields_and_time(self, store, clock):
        created = store.post(["notes"], {"title": "T", "body": "old"})
        clock.advance(minutes=5)

        store.put(["notes", created["id"]], {"body": "new"})
        fetched = store.get(["notes", created["id"]])

        assert fetched["body"] == "new"
        assert fetched["title"] == "T"
        assert fetched["updated_time"] > created["updated_time"]

    def test_delete(self, store):
        created = store.post(["notes"], {"title": "T"})
        store.delete(["notes", created["id"]])

        with pytest.raises(NotFoundError):
            store.get(["notes", created["id"]])

    def test_missing_note_raises(self, store):
        with pytest.raises(NotFoundError):
            store.put(["notes", "nope"], {"body": "x"})

    def test_folder_notes(self, store):
        folder = store.post(["folders"], {"title": "F"})
        store.post(["notes"], {"title": "in", "parent_id": folder["id"]})
        store.post(["notes"], {"title": "out"})

        items = list(paginated(store, ["folders", folder["id"], "notes"]))

        assert [i["title"] for i in items] == ["in"]

    def test_unsupported_path(self, store):
        with pytest.raises(StoreError):
            store.get(["tags"])
        with pytest.raises(StoreError):
            store.post(["notes", "x"], {})


class TestPagination:
    """Tests for paginated listings."""

    def test_pages_and_has_more(self, store):
        for i in range(3):
            store.post(["notes"], {"title": f"n{i}"})

        first = store.get(["notes"], {"page": 1})
        second = store.get(["notes"], {"page": 2})

        assert len(first["items"]) == 2 and first["has_more"]
        assert len(second["items"]) == 1 and not second["has_more"]

    def test_paginated_walks_every_page_in_order(self, store):
        for i in range(5):
            store.post(["notes"], {"title": f"n{i}"})

        titles = [i["title"] for i in paginated(store, ["notes"])]

        assert titles == [f"n{i}" for i in range(5)]

    def test_paginated_is_restartable(self, store):
        store.post(["notes"], {"title": "only"})
        assert len(list(paginated(store, ["notes"]))) == 1
        assert len(list(paginated(store, ["notes"]))) == 1


class TestSearch:
    """Tests for the search endpoint."""

    def test_source_url_is_exact(self, store):
        store.post(["notes"], {"title": "a", "source_url": "joplin-remember/log/1"})
        store.post(["notes"], {"title": "b", "source_url": "joplin-remember/log/10"})

        items = list(paginated(store, ["search"], {"query": "sourceurl:joplin-remember/log/1"}))

        assert [i["title"] for i in items] == ["a"]

    def test_updated_window(self, store, clock):
        store.post(["notes"], {"title": "old"})
        clock.advance(days=1)
        store.post(["notes"], {"title": "new"})

        since = list(paginated(store, ["search"], {"query": "updated:20210108"}))
        before = list(paginated(store, ["search"], {"query": "-updated:20210108"}))

        assert [i["title"] for i in since] == ["new"]
        assert [i["title"] for i in before] == ["old"]

    def test_free_text_terms(self, store):
        store.post(["notes"], {"title": "Capitals", "body": "Paris and Rome"})
        store.post(["notes"], {"title": "Rivers", "body": "Seine"})

        items = list(paginated(store, ["search"], {"query": "paris ROME"}))

        assert [i["title"] for i in items] == ["Capitals"]


class TestSearchQuery:
    """Tests for search string parsing."""

    def test_parse(self):
        query = SearchQuery.parse("updated:20210101 -updated:20210107 sourceurl:x/y word")

        assert query.updated_from == datetime(2021, 1, 1).date()
        assert query.updated_before == datetime(2021, 1, 7).date()
        assert query.source_url == "x/y"
        assert query.terms == ["word"]
