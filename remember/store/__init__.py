"""
Document store backends.

Components:
- base: DocumentStore interface, pagination and search query parsing
- memory_store: in-process store
- sql_store: SQLAlchemy-backed embedded store
- joplin_client: Joplin Data API over HTTP
- notes: typed folder/note access and key lookups
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from remember.store.base import DocumentStore, paginated
from remember.store.notes import Folder, Note, NoteStore

if TYPE_CHECKING:
    from config import Settings


def create_store(settings: Settings) -> DocumentStore:
    """Build the document store selected by ``settings.store_backend`` (lazy imports)."""
    if settings.store_backend == "joplin":
        from remember.store.joplin_client import JoplinClient

        return JoplinClient(
            base_url=settings.joplin_api_url,
            token=settings.joplin_token,
            timeout=settings.request_timeout,
            retries=settings.request_retries,
            page_size=settings.page_size,
        )
    if settings.store_backend == "sqlite":
        from remember.store.sql_store import SqlDocumentStore

        return SqlDocumentStore(
            database_url=settings.database_url,
            page_size=settings.page_size,
            echo=settings.log_level == "DEBUG",
        )

    from remember.store.memory_store import MemoryDocumentStore

    return MemoryDocumentStore(page_size=settings.page_size)


__all__ = [
    "DocumentStore",
    "Folder",
    "Note",
    "NoteStore",
    "create_store",
    "paginated",
]
