"""Note sources: where the raw notes come from.

The indexer only depends on the NoteSource contract. DirectoryNoteSource reads
notes exported as one HTML file per note, with sub-directories as folders.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from bs4 import BeautifulSoup

from notes_index.config.logger import app_logger
from notes_index.config.settings import settings
from notes_index.services.errors import SourceError


@dataclass(frozen=True)
class NoteSummary:
    """Cheap listing entry used for sync planning."""

    id: str
    modification_time: datetime


@dataclass
class SourceNote:
    """A fully fetched note as reported by the source."""

    id: str
    title: str
    content: str
    folder: Optional[str]
    creation_time: datetime
    modification_time: datetime


class NoteSource(ABC):
    """Contract for a mutable external note collection."""

    @abstractmethod
    async def list_summaries(self) -> List[NoteSummary]:
        """List every live note (trashed notes excluded) without content."""

    @abstractmethod
    async def fetch(self, note_id: str) -> Optional[SourceNote]:
        """Fetch one note, or None if it no longer exists."""

    @abstractmethod
    async def fetch_all(self) -> List[SourceNote]:
        """Fetch every live note with content."""


def _to_utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _extract_title(html: str, fallback: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag_name in ("title", "h1"):
        tag = soup.find(tag_name)
        if tag:
            title = tag.get_text(" ", strip=True)
            if title:
                return title
    return fallback


class DirectoryNoteSource(NoteSource):
    """Reads notes from ``<root>/**/*.html``.

    The note id is the path relative to root, the folder is the parent
    directory and timestamps come from the filesystem.
    """

    def __init__(self, root: Path | str | None = None, trash_folder: Optional[str] = None):
        self.root = Path(root or settings.NOTES_DIR).resolve()
        self.trash_folder = trash_folder if trash_folder is not None else settings.NOTES_TRASH_FOLDER

    def _check_root(self) -> None:
        if not self.root.is_dir():
            raise SourceError(f"Notes directory not found: {self.root}")

    def _is_trashed(self, rel_path: Path) -> bool:
        return bool(self.trash_folder) and rel_path.parts[0] == self.trash_folder

    def _iter_paths(self) -> List[Path]:
        self._check_root()
        paths = []
        for path in sorted(self.root.rglob("*.html")):
            if not path.is_file():
                continue
            if self._is_trashed(path.relative_to(self.root)):
                continue
            paths.append(path)
        return paths

    def _resolve(self, note_id: str) -> Optional[Path]:
        path = (self.root / note_id).resolve()
        if self.root not in path.parents:
            return None
        if self._is_trashed(path.relative_to(self.root)):
            return None
        return path if path.is_file() else None

    def _read_note(self, path: Path) -> SourceNote:
        rel_path = path.relative_to(self.root)
        stat = path.stat()
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            content = path.read_text(encoding="latin-1")

        created = getattr(stat, "st_birthtime", None) or stat.st_ctime
        folder = rel_path.parent.as_posix()
        return SourceNote(
            id=rel_path.as_posix(),
            title=_extract_title(content, path.stem),
            content=content,
            folder=None if folder == "." else folder,
            creation_time=_to_utc(min(created, stat.st_mtime)),
            modification_time=_to_utc(stat.st_mtime),
        )

    def _list_summaries_sync(self) -> List[NoteSummary]:
        return [
            NoteSummary(
                id=path.relative_to(self.root).as_posix(),
                modification_time=_to_utc(os.stat(path).st_mtime),
            )
            for path in self._iter_paths()
        ]

    def _fetch_sync(self, note_id: str) -> Optional[SourceNote]:
        self._check_root()
        path = self._resolve(note_id)
        if path is None:
            return None
        try:
            return self._read_note(path)
        except FileNotFoundError:
            # Deleted between listing and fetching
            return None

    def _fetch_all_sync(self) -> List[SourceNote]:
        notes = []
        for path in self._iter_paths():
            try:
                notes.append(self._read_note(path))
            except FileNotFoundError:
                continue
        return notes

    async def list_summaries(self) -> List[NoteSummary]:
        summaries = await asyncio.to_thread(self._list_summaries_sync)
        app_logger.debug(f"Listed {len(summaries)} note summaries from {self.root}")
        return summaries

    async def fetch(self, note_id: str) -> Optional[SourceNote]:
        return await asyncio.to_thread(self._fetch_sync, note_id)

    async def fetch_all(self) -> List[SourceNote]:
        notes = await asyncio.to_thread(self._fetch_all_sync)
        app_logger.debug(f"Fetched {len(notes)} notes from {self.root}")
        return notes
