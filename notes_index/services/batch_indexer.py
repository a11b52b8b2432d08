"""Full and incremental indexing of notes into the search index."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from notes_index.config.logger import app_logger, log_performance
from notes_index.config.settings import settings
from notes_index.models.indexing_job import JobMode, JobStatus
from notes_index.models.note import Note
from notes_index.services.embeddings import Embedder, prepare_text_for_embedding
from notes_index.services.errors import PlanningError, SourceError
from notes_index.services.html_convert import compute_content_hash, has_images, html_to_markdown
from notes_index.services.job_tracker import JobTracker
from notes_index.services.note_source import NoteSource, SourceNote
from notes_index.services.note_store import NoteStore
from notes_index.services.sync_planner import SyncPlan, plan_sync

T = TypeVar("T")


@dataclass
class IndexingResult:
    """Outcome of one indexing run."""

    job_id: int
    mode: str
    total_notes: int
    processed_notes: int
    failed_notes: int
    status: str
    elapsed_seconds: float = 0.0
    deleted_notes: int = 0


class BatchIndexer:
    """Drives full and sync runs over a note source.

    Batches run one after another; the notes inside a batch are processed
    concurrently and each note succeeds or fails on its own. Job progress is
    written after every batch.
    """

    def __init__(
        self,
        source: NoteSource,
        store: NoteStore,
        embedder: Embedder,
        tracker: JobTracker,
        batch_size: Optional[int] = None,
    ):
        self.source = source
        self.store = store
        self.embedder = embedder
        self.tracker = tracker
        self.batch_size = batch_size if batch_size is not None else settings.INDEX_BATCH_SIZE
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    async def build_note(self, source_note: SourceNote) -> Note:
        """Convert, hash and embed one source note into an index row."""
        body = html_to_markdown(source_note.content)
        embedding_text = prepare_text_for_embedding(source_note.title, body)
        # Empty notes are still indexed; they just stay out of the vector ranking
        embedding = await self.embedder.embed(embedding_text) if embedding_text else None

        return Note(
            id=source_note.id,
            title=source_note.title,
            body=body,
            raw_body=source_note.content,
            folder_path=source_note.folder,
            creation_time=source_note.creation_time,
            modification_time=source_note.modification_time,
            content_hash=compute_content_hash(source_note.content),
            embedding=embedding,
            has_images=has_images(source_note.content),
            indexed_at=datetime.now(timezone.utc),
        )

    async def index_note(self, source_note: SourceNote) -> None:
        note = await self.build_note(source_note)
        await self.store.upsert(note)

    async def _fetch_and_index(self, note_id: str) -> None:
        source_note = await self.source.fetch(note_id)
        if source_note is None:
            raise SourceError(f"Note {note_id} disappeared from the source before it could be fetched")
        await self.index_note(source_note)

    async def _run_batches(
        self,
        job_id: int,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[None]],
        describe: Callable[[T], str],
        processed: int = 0,
        failed: int = 0,
    ) -> tuple[int, int]:
        total_batches = (len(items) + self.batch_size - 1) // self.batch_size
        for batch_number, start in enumerate(range(0, len(items), self.batch_size), start=1):
            batch = items[start : start + self.batch_size]
            app_logger.info(f"Batch {batch_number}/{total_batches}: processing {len(batch)} notes")

            results = await asyncio.gather(
                *(worker(item) for item in batch),
                return_exceptions=True,
            )
            for item, result in zip(batch, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    failed += 1
                    app_logger.error(
                        f"Failed to index note {describe(item)}: {type(result).__name__}: {result}"
                    )
                else:
                    processed += 1

            await self.tracker.update_progress(job_id, processed, failed)
            app_logger.info(f"Progress: {processed + failed}/{len(items)} ({failed} failed)")
        return processed, failed

    async def _finish(
        self,
        job_id: int,
        mode: JobMode,
        total: int,
        processed: int,
        failed: int,
        started: float,
        deleted: int = 0,
    ) -> IndexingResult:
        job = await self.tracker.complete(job_id, JobStatus.COMPLETED)
        elapsed = time.perf_counter() - started
        app_logger.info(
            f"{mode.value.capitalize()} run summary: total={total}, processed={processed}, "
            f"failed={failed}, deleted={deleted}, elapsed={elapsed:.2f}s"
        )
        log_performance(f"{mode.value}_index", elapsed, total=total, failed=failed)
        return IndexingResult(
            job_id=job_id,
            mode=mode.value,
            total_notes=total,
            processed_notes=processed,
            failed_notes=failed,
            status=job.status,
            elapsed_seconds=round(elapsed, 2),
            deleted_notes=deleted,
        )

    async def _preload_embedder(self) -> None:
        app_logger.info("Pre-loading embedding model")
        try:
            await self.embedder.initialize()
        except Exception as exc:
            # Each note retries the load and is counted as failed on its own
            app_logger.error(f"Embedding model failed to load: {exc}")

    async def _cancel(self, job_id: int) -> None:
        app_logger.warning(f"Indexing job {job_id} cancelled")
        await asyncio.shield(self.tracker.complete(job_id, JobStatus.CANCELLED))

    async def _abort(self, job_id: int, exc: Exception) -> None:
        """Close a job whose run died outside the per-note pipeline.

        Counters keep the last progress write; the original error is re-raised
        by the caller.
        """
        app_logger.error(f"Indexing job {job_id} failed: {type(exc).__name__}: {exc}")
        try:
            await asyncio.shield(self.tracker.complete(job_id, JobStatus.FAILED))
        except Exception as complete_exc:
            app_logger.error(f"Could not mark indexing job {job_id} as failed: {complete_exc}")

    async def run_full(self) -> IndexingResult:
        """Index every note currently at the source."""
        started = time.perf_counter()
        app_logger.info("Starting full indexing run")
        try:
            notes: List[SourceNote] = await self.source.fetch_all()
        except Exception as exc:
            raise PlanningError(f"Could not list notes at the source: {exc}") from exc
        total = len(notes)
        app_logger.info(f"Found {total} notes at the source")

        job_id = await self.tracker.create(total, JobMode.FULL)
        try:
            if notes:
                await self._preload_embedder()
            processed, failed = await self._run_batches(
                job_id, notes, self.index_note, lambda note: note.id
            )
        except asyncio.CancelledError:
            await self._cancel(job_id)
            raise
        except Exception as exc:
            await self._abort(job_id, exc)
            raise

        return await self._finish(job_id, JobMode.FULL, total, processed, failed, started)

    async def plan(self) -> SyncPlan:
        """List the source and the index and diff them.

        Any failure here aborts the run before anything is changed.
        """
        try:
            app_logger.info("Fetching note summaries from source")
            summaries = await self.source.list_summaries()
            app_logger.info(f"Found {len(summaries)} notes at the source")
            metadata = await self.store.list_metadata()
            app_logger.info(f"Found {len(metadata)} notes in the index")
        except Exception as exc:
            raise PlanningError(f"Could not plan sync: {exc}") from exc

        sync_plan = plan_sync(summaries, metadata)
        app_logger.info(
            f"Sync analysis: {len(sync_plan.to_update)} to update, {len(sync_plan.to_delete)} to delete"
        )
        return sync_plan

    async def run_sync(self) -> IndexingResult:
        """Index only new or modified notes and drop notes removed at the source."""
        started = time.perf_counter()
        sync_plan = await self.plan()

        job_id = await self.tracker.create(sync_plan.total, JobMode.SYNC)
        processed = failed = deleted = 0
        try:
            if sync_plan.to_delete:
                app_logger.info(f"Deleting {len(sync_plan.to_delete)} removed notes")
                deleted = await self.store.delete_by_ids(sorted(sync_plan.to_delete))
                processed += len(sync_plan.to_delete)
                await self.tracker.update_progress(job_id, processed, failed)

            to_update = sorted(sync_plan.to_update)
            if to_update:
                await self._preload_embedder()
            processed, failed = await self._run_batches(
                job_id, to_update, self._fetch_and_index, str, processed, failed
            )
        except asyncio.CancelledError:
            await self._cancel(job_id)
            raise
        except Exception as exc:
            await self._abort(job_id, exc)
            raise

        return await self._finish(
            job_id, JobMode.SYNC, sync_plan.total, processed, failed, started, deleted
        )
