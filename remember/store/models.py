"""
Table models for the local SQL document store.

Rows mirror the Joplin Data API item shapes; timestamps are epoch milliseconds.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class FolderRow(Base):
    """A notebook; top-level folders have an empty parent_id."""

    __tablename__ = "folders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    parent_id: Mapped[str] = mapped_column(String(32), default="", index=True)
    title: Mapped[str] = mapped_column(Text, default="")
    created_time: Mapped[int] = mapped_column(BigInteger)
    updated_time: Mapped[int] = mapped_column(BigInteger)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "title": self.title,
            "created_time": self.created_time,
            "updated_time": self.updated_time,
        }


class NoteRow(Base):
    """A markdown note."""

    __tablename__ = "notes"
    __table_args__ = (Index("ix_notes_updated_time", "updated_time"),)

    seq: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True)
    parent_id: Mapped[str] = mapped_column(String(32), default="", index=True)
    title: Mapped[str] = mapped_column(Text, default="")
    body: Mapped[str] = mapped_column(Text, default="")
    source_url: Mapped[str] = mapped_column(Text, default="", index=True)
    created_time: Mapped[int] = mapped_column(BigInteger)
    updated_time: Mapped[int] = mapped_column(BigInteger)

    COLUMNS = ("id", "parent_id", "title", "body", "source_url", "created_time", "updated_time")

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.COLUMNS}
