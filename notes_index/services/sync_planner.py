"""Incremental sync planning: diff source summaries against the index."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Mapping

from notes_index.services.note_source import NoteSummary
from notes_index.services.note_store import NoteMetadata


@dataclass(frozen=True)
class SyncPlan:
    """Ids to (re)index and ids to delete for one sync run."""

    to_update: frozenset[str]
    to_delete: frozenset[str]

    @property
    def total(self) -> int:
        return len(self.to_update) + len(self.to_delete)

    @property
    def is_empty(self) -> bool:
        return not self.to_update and not self.to_delete


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def plan_sync(summaries: Iterable[NoteSummary], metadata: Mapping[str, NoteMetadata]) -> SyncPlan:
    """Compute the minimal change set.

    A note is updated when it is new or its source modification time is
    strictly newer than the indexed one; equal timestamps count as unchanged.
    Indexed notes the source no longer reports are deleted.
    """
    live = {summary.id: summary for summary in summaries}

    to_delete = frozenset(note_id for note_id in metadata if note_id not in live)

    to_update = set()
    for note_id, summary in live.items():
        existing = metadata.get(note_id)
        if existing is None:
            to_update.add(note_id)
        elif _as_utc(summary.modification_time) > _as_utc(existing.modification_time):
            to_update.add(note_id)

    return SyncPlan(to_update=frozenset(to_update), to_delete=to_delete)
