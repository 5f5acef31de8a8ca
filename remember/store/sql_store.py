"""
SQLAlchemy-backed document store.

An embedded alternative to the Joplin Data API: the same notes/folders
model persisted in any SQLAlchemy database (SQLite by default). Search
filters on dates and source URLs are pushed down into SQL.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Any

from loguru import logger
from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from remember.store.base import LocalDocumentStore, SearchQuery, datetime_to_ms
from remember.store.models import Base, FolderRow, NoteRow


def _day_start_ms(day: date) -> int:
    return datetime_to_ms(datetime.combine(day, time.min))


class SqlDocumentStore(LocalDocumentStore):
    """:class:`LocalDocumentStore` persisted through SQLAlchemy."""

    def __init__(
        self,
        database_url: str = "sqlite:///remember.db",
        page_size: int = 100,
        clock: Callable[[], datetime] | None = None,
        echo: bool = False,
    ) -> None:
        super().__init__(page_size=page_size, clock=clock)

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(database_url, **engine_kwargs)
        self._sessions = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=self.engine)
        logger.debug("SqlDocumentStore initialized at {}", database_url)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    # ---- folders ----------------------------------------------------------

    def _list_folders(self) -> list[dict[str, Any]]:
        with self.session_scope() as session:
            rows = session.scalars(select(FolderRow).order_by(FolderRow.created_time, FolderRow.id))
            return [row.to_dict() for row in rows]

    def _get_folder(self, folder_id: str) -> dict[str, Any] | None:
        with self.session_scope() as session:
            row = session.get(FolderRow, folder_id)
            return row.to_dict() if row is not None else None

    def _save_folder(self, folder: dict[str, Any]) -> None:
        with self.session_scope() as session:
            row = session.get(FolderRow, folder["id"]) or FolderRow(id=folder["id"])
            for key in ("parent_id", "title", "created_time", "updated_time"):
                setattr(row, key, folder.get(key))
            session.add(row)

    def _delete_folder(self, folder_id: str) -> None:
        with self.session_scope() as session:
            session.execute(delete(FolderRow).where(FolderRow.id == folder_id))

    # ---- notes ------------------------------------------------------------

    def _list_notes(self, parent_id: str | None = None) -> list[dict[str, Any]]:
        stmt = select(NoteRow).order_by(NoteRow.seq)
        if parent_id is not None:
            stmt = stmt.where(NoteRow.parent_id == parent_id)
        with self.session_scope() as session:
            return [row.to_dict() for row in session.scalars(stmt)]

    def _get_note(self, note_id: str) -> dict[str, Any] | None:
        with self.session_scope() as session:
            row = session.scalar(select(NoteRow).where(NoteRow.id == note_id))
            return row.to_dict() if row is not None else None

    def _save_note(self, note: dict[str, Any]) -> None:
        with self.session_scope() as session:
            row = session.scalar(select(NoteRow).where(NoteRow.id == note["id"])) or NoteRow(id=note["id"])
            for key in NoteRow.COLUMNS[1:]:
                setattr(row, key, note.get(key))
            session.add(row)

    def _delete_note(self, note_id: str) -> None:
        with self.session_scope() as session:
            session.execute(delete(NoteRow).where(NoteRow.id == note_id))

    def _search_notes(self, query: SearchQuery) -> list[dict[str, Any]]:
        stmt = select(NoteRow).order_by(NoteRow.seq)
        if query.updated_from is not None:
            stmt = stmt.where(NoteRow.updated_time >= _day_start_ms(query.updated_from))
        if query.updated_before is not None:
            stmt = stmt.where(NoteRow.updated_time < _day_start_ms(query.updated_before))
        if query.source_url is not None:
            stmt = stmt.where(NoteRow.source_url == query.source_url)

        with self.session_scope() as session:
            candidates = [row.to_dict() for row in session.scalars(stmt)]
        # Free-text terms are matched in Python
        return [n for n in candidates if query.matches(n)]
