"""Shared fixtures and in-memory collaborators for the notes-index tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from notes_index.db.db import create_engine_and_sessionmaker, create_schema
from notes_index.models.search import SearchResult
from notes_index.services.errors import EmbeddingError, SourceError
from notes_index.services.note_source import NoteSource, NoteSummary, SourceNote
from notes_index.services.note_store import NoteMetadata

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A UTC timestamp `minutes` after a fixed base time."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_source_note(note_id: str, modified: int = 0, content: Optional[str] = None, folder: Optional[str] = None) -> SourceNote:
    return SourceNote(
        id=note_id,
        title=f"Note {note_id}",
        content=content if content is not None else f"<p>Body of {note_id}</p>",
        folder=folder,
        creation_time=at(0),
        modification_time=at(modified),
    )


def make_result(note_id: str, score: float = 0.0, title: Optional[str] = None) -> SearchResult:
    return SearchResult(id=note_id, title=title or f"Note {note_id}", body=f"Body of {note_id}", score=score)


class FakeSource(NoteSource):
    """Dict-backed source; ids in `failing` raise on fetch, ids in `vanishing` fetch as None."""

    def __init__(self, notes: List[SourceNote]):
        self.notes: Dict[str, SourceNote] = {note.id: note for note in notes}
        self.failing: set = set()
        self.vanishing: set = set()
        self.list_error: Optional[Exception] = None
        self.fetched: List[str] = []

    async def list_summaries(self) -> List[NoteSummary]:
        if self.list_error:
            raise self.list_error
        return [NoteSummary(id=n.id, modification_time=n.modification_time) for n in self.notes.values()]

    async def fetch(self, note_id: str) -> Optional[SourceNote]:
        self.fetched.append(note_id)
        if note_id in self.failing:
            raise SourceError(f"cannot read {note_id}")
        if note_id in self.vanishing:
            return None
        return self.notes.get(note_id)

    async def fetch_all(self) -> List[SourceNote]:
        if self.list_error:
            raise self.list_error
        return list(self.notes.values())


class FakeStore:
    """In-memory NoteStore with canned search results and an operation log."""

    def __init__(self):
        self.notes: Dict[str, object] = {}
        self.failing: set = set()
        self.operations: List[tuple] = []
        self.vector_results: List[SearchResult] = []
        self.text_results: List[SearchResult] = []
        self.fused_results: List[SearchResult] = []
        self.search_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.fused_calls: List[dict] = []
        self.block: Optional[asyncio.Event] = None
        self.write_started = asyncio.Event()

    async def upsert(self, note) -> None:
        self.write_started.set()
        if self.block is not None:
            await self.block.wait()
        if note.id in self.failing:
            raise RuntimeError(f"write failed for {note.id}")
        self.operations.append(("upsert", note.id))
        self.notes[note.id] = note

    async def delete_by_ids(self, ids) -> int:
        ids = list(ids)
        self.operations.append(("delete", tuple(ids)))
        if self.delete_error:
            raise self.delete_error
        deleted = 0
        for note_id in ids:
            if self.notes.pop(note_id, None) is not None:
                deleted += 1
        return deleted

    async def list_metadata(self) -> Dict[str, NoteMetadata]:
        return {
            note_id: NoteMetadata(modification_time=note.modification_time, content_hash=note.content_hash)
            for note_id, note in self.notes.items()
        }

    async def vector_search(self, query_embedding, limit):
        if self.search_error:
            raise self.search_error
        return self.vector_results[:limit]

    async def text_search(self, query, limit):
        if self.search_error:
            raise self.search_error
        return self.text_results[:limit]

    async def fused_search(self, query_embedding, query, filters, limit, fetch_size=None):
        if self.search_error:
            raise self.search_error
        self.fused_calls.append({"query": query, "filters": filters, "limit": limit, "fetch_size": fetch_size})
        return self.fused_results[:limit]

    async def list_large_notes(self, min_size, limit):
        return []


class FakeEmbedder:
    """Deterministic embedder; counts initializations and can be told to fail."""

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.initialize_calls = 0
        self.embedded: List[str] = []
        self.fail_on: set = set()
        self.init_error: Optional[Exception] = None

    async def initialize(self):
        self.initialize_calls += 1
        if self.init_error:
            raise self.init_error
        return self

    async def embed(self, text: str) -> List[float]:
        if text in self.fail_on:
            raise EmbeddingError(f"cannot embed {text!r}")
        self.embedded.append(text)
        return [float(len(text))] + [0.0] * (self.dimensions - 1)

    async def close(self) -> None:
        return None


class FakeOpenAIClient:
    """Stands in for AsyncOpenAI: `embeddings.create(...)` returns indexed vectors."""

    def __init__(self, dimensions: int, delay: float = 0.0, error: Optional[Exception] = None):
        self.dimensions = dimensions
        self.delay = delay
        self.error = error
        self.requests: List[dict] = []
        self.closed = False
        self.embeddings = SimpleNamespace(create=self._create)

    async def _create(self, model, input, **kwargs):
        self.requests.append({"model": model, "input": list(input), **kwargs})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        # Reversed on purpose: callers must reorder by index
        data = [
            SimpleNamespace(index=i, embedding=[float(i)] * self.dimensions)
            for i in range(len(input))
        ]
        return SimpleNamespace(data=list(reversed(data)))

    async def close(self):
        self.closed = True


@pytest.fixture
async def session_maker(tmp_path):
    """Session factory over a fresh SQLite file database."""
    engine, maker = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path / 'index.db'}")
    await create_schema(engine)
    yield maker
    await engine.dispose()
