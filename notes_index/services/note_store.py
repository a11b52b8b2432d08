"""Persistence and query layer for indexed notes (PostgreSQL + pgvector + pg_trgm)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notes_index.config.logger import app_logger
from notes_index.config.settings import settings
from notes_index.models.note import Note
from notes_index.models.search import SearchFilters, SearchResult, SortBy, SortOrder

DELETE_CHUNK_SIZE = 500

_RESULT_COLUMNS = (
    Note.id,
    Note.title,
    Note.body,
    Note.folder_path,
    Note.creation_time,
    Note.modification_time,
)


@dataclass(frozen=True)
class NoteMetadata:
    """Last-known persisted state of a note, used for sync planning."""

    modification_time: datetime
    content_hash: str


@dataclass(frozen=True)
class LargeNote:
    title: str
    folder_path: Optional[str]
    content_length: int
    html_length: int
    modification_time: Optional[datetime]


def _row_to_result(row, score: float) -> SearchResult:
    return SearchResult(
        id=row.id,
        title=row.title,
        body=row.body,
        score=float(score),
        folder_path=row.folder_path,
        creation_time=row.creation_time,
        modification_time=row.modification_time,
    )


def filter_conditions(filters: SearchFilters) -> list:
    """Translate search filters into WHERE clauses on the notes table."""
    conditions = []
    if filters.created_before is not None:
        conditions.append(Note.creation_time < filters.created_before)
    if filters.created_after is not None:
        conditions.append(Note.creation_time > filters.created_after)
    if filters.modified_before is not None:
        conditions.append(Note.modification_time < filters.modified_before)
    if filters.modified_after is not None:
        conditions.append(Note.modification_time > filters.modified_after)
    if filters.has_images is not None:
        conditions.append(Note.has_images.is_(filters.has_images))
    if filters.folder_path is not None:
        conditions.append(Note.folder_path == filters.folder_path)
    return conditions


def _text_score(query: str):
    return func.similarity(Note.title, query) + func.similarity(Note.body, query)


def _text_match(query: str):
    return or_(Note.title.op("%")(query), Note.body.op("%")(query))


def build_fused_query(
    query_embedding: Sequence[float],
    query: str,
    filters: SearchFilters,
    limit: int,
    fetch_size: int,
    rrf_k: int,
    missing_rank: int,
):
    """Build the single-statement hybrid query.

    Two filtered sub-rankings (vector distance, trigram similarity), each capped
    at fetch_size, are full-outer-joined on note id and scored with RRF. Ranks
    are 0-based; a note missing from one side gets missing_rank for that side.
    """
    conditions = filter_conditions(filters)
    distance = Note.embedding.cosine_distance(query_embedding)
    text_score = _text_score(query)

    vector_search = (
        select(
            Note.id.label("id"),
            (func.row_number().over(order_by=distance) - 1).label("rank"),
        )
        .where(Note.embedding.is_not(None), *conditions)
        .order_by(distance)
        .limit(fetch_size)
        .cte("vector_search")
    )
    text_search = (
        select(
            Note.id.label("id"),
            (func.row_number().over(order_by=text_score.desc()) - 1).label("rank"),
        )
        .where(_text_match(query), *conditions)
        .order_by(text_score.desc())
        .limit(fetch_size)
        .cte("text_search")
    )

    rrf_score = (
        1.0 / (rrf_k + func.coalesce(vector_search.c.rank, missing_rank))
        + 1.0 / (rrf_k + func.coalesce(text_search.c.rank, missing_rank))
    ).label("rrf_score")
    fused = (
        select(
            func.coalesce(vector_search.c.id, text_search.c.id).label("id"),
            rrf_score,
        )
        .select_from(
            vector_search.join(text_search, vector_search.c.id == text_search.c.id, full=True)
        )
        .subquery("fused")
    )

    sort_by = filters.effective_sort
    if sort_by == SortBy.RELEVANCE:
        order_by = [fused.c.rrf_score.desc(), fused.c.id]
    else:
        column = Note.creation_time if sort_by == SortBy.CREATION_DATE else Note.modification_time
        direction = column.asc() if filters.sort_order == SortOrder.ASC else column.desc()
        order_by = [direction, fused.c.id]

    return (
        select(*_RESULT_COLUMNS, fused.c.rrf_score)
        .join(fused, fused.c.id == Note.id)
        .order_by(*order_by)
        .limit(limit)
    )


class NoteStore:
    """Index store for notes.

    Each call runs in its own session and transaction, so concurrent
    per-document writes from one batch never share a session.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        rrf_k: Optional[int] = None,
        missing_rank: Optional[int] = None,
    ):
        self._session_maker = session_maker
        self.rrf_k = rrf_k if rrf_k is not None else settings.RRF_K
        self.missing_rank = missing_rank if missing_rank is not None else settings.FUSED_MISSING_RANK

    @staticmethod
    def _insert_for(session: AsyncSession):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"Upsert is not supported on {dialect}")

    async def upsert(self, note: Note) -> None:
        """Insert the note or overwrite the row with the same id."""
        values = {column.name: getattr(note, column.name) for column in Note.__table__.columns}
        async with self._session_maker() as session:
            insert = self._insert_for(session)
            stmt = insert(Note).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={name: stmt.excluded[name] for name in values if name != "id"},
            )
            await session.execute(stmt)
            await session.commit()

    async def delete_by_ids(self, ids: Sequence[str]) -> int:
        """Delete notes by id; returns the number of rows removed."""
        ids = list(ids)
        if not ids:
            return 0
        deleted = 0
        async with self._session_maker() as session:
            for i in range(0, len(ids), DELETE_CHUNK_SIZE):
                result = await session.execute(
                    delete(Note).where(Note.id.in_(ids[i : i + DELETE_CHUNK_SIZE]))
                )
                deleted += result.rowcount or 0
            await session.commit()
        app_logger.info(f"Deleted {deleted} notes from the index")
        return deleted

    async def list_metadata(self) -> Dict[str, NoteMetadata]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Note.id, Note.modification_time, Note.content_hash)
            )
            return {
                row.id: NoteMetadata(
                    modification_time=row.modification_time,
                    content_hash=row.content_hash,
                )
                for row in result
            }

    async def get(self, note_id: str) -> Optional[Note]:
        async with self._session_maker() as session:
            return await session.get(Note, note_id)

    async def count(self) -> int:
        async with self._session_maker() as session:
            result = await session.execute(select(func.count()).select_from(Note))
            return int(result.scalar_one())

    async def vector_search(self, query_embedding: Sequence[float], limit: int) -> List[SearchResult]:
        """Top notes by cosine similarity; notes without an embedding are skipped."""
        distance = Note.embedding.cosine_distance(query_embedding)
        stmt = (
            select(*_RESULT_COLUMNS, (1 - distance).label("similarity"))
            .where(Note.embedding.is_not(None))
            .order_by(distance)
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_row_to_result(row, row.similarity) for row in result]

    async def text_search(self, query: str, limit: int) -> List[SearchResult]:
        """Top notes by trigram similarity of title plus body."""
        score = _text_score(query)
        stmt = (
            select(*_RESULT_COLUMNS, score.label("similarity"))
            .where(_text_match(query))
            .order_by(score.desc())
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_row_to_result(row, row.similarity) for row in result]

    async def fused_search(
        self,
        query_embedding: Sequence[float],
        query: str,
        filters: SearchFilters,
        limit: int,
        fetch_size: Optional[int] = None,
    ) -> List[SearchResult]:
        stmt = build_fused_query(
            query_embedding,
            query,
            filters,
            limit=limit,
            fetch_size=fetch_size if fetch_size is not None else settings.FUSED_FETCH_SIZE,
            rrf_k=self.rrf_k,
            missing_rank=self.missing_rank,
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_row_to_result(row, row.rrf_score) for row in result]

    async def list_large_notes(self, min_size: int, limit: int = 20) -> List[LargeNote]:
        """Notes whose converted body exceeds min_size characters, largest first."""
        content_length = func.length(Note.body)
        stmt = (
            select(
                Note.title,
                Note.folder_path,
                content_length.label("content_length"),
                func.length(Note.raw_body).label("html_length"),
                Note.modification_time,
            )
            .where(content_length > min_size)
            .order_by(content_length.desc())
            .limit(limit)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [
                LargeNote(
                    title=row.title,
                    folder_path=row.folder_path,
                    content_length=int(row.content_length),
                    html_length=int(row.html_length),
                    modification_time=row.modification_time,
                )
                for row in result
            ]
