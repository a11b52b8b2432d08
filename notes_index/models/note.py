"""Model representing an indexed note."""

from datetime import datetime, timezone
from typing import List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel

from notes_index.config.settings import settings


class Note(SQLModel, table=True):
    """A note as persisted in the search index.

    Rows are only written by the indexing pipeline; the source note id is the
    primary key, so a re-index overwrites the previous row.
    """

    __tablename__ = "notes"

    id: str = Field(primary_key=True, max_length=512)
    title: str = Field(default="", sa_column=Column(Text, nullable=False))
    body: str = Field(default="", sa_column=Column(Text, nullable=False))
    raw_body: str = Field(default="", sa_column=Column(Text, nullable=False))
    folder_path: Optional[str] = Field(default=None, max_length=512, index=True)
    creation_time: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True))
    modification_time: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True))
    content_hash: str = Field(max_length=64, index=True)
    embedding: Optional[List[float]] = Field(
        default=None,
        sa_column=Column(Vector(settings.EMBEDDING_DIMENSIONS), nullable=True),
    )
    has_images: bool = Field(default=False, index=True)
    indexed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True)),
    )
