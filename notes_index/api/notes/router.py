"""Note indexing, job status and hybrid search endpoints."""

import time
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from notes_index.api.notes.schemas import (
    IndexingResultResponse,
    JobStatusResponse,
    LargeNoteEntry,
    LargeNotesResponse,
    SearchRequest,
    SearchResponse,
)
from notes_index.config.logger import app_logger
from notes_index.config.settings import settings
from notes_index.models.indexing_job import IndexingJob
from notes_index.services.batch_indexer import BatchIndexer
from notes_index.services.errors import PlanningError, SearchError
from notes_index.services.job_tracker import JobTracker
from notes_index.services.note_store import NoteStore
from notes_index.services.search import RankFusionSearch
from notes_index.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/notes", tags=["notes"])


def _state_attr(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} is not available; check database and embedding configuration",
        )
    return service


def get_indexer(request: Request) -> BatchIndexer:
    return _state_attr(request, "indexer")


def get_tracker(request: Request) -> JobTracker:
    return _state_attr(request, "job_tracker")


def get_search_engine(request: Request) -> RankFusionSearch:
    return _state_attr(request, "search_engine")


def get_store(request: Request) -> NoteStore:
    return _state_attr(request, "note_store")


def _job_response(job: IndexingJob) -> JobStatusResponse:
    return JobStatusResponse(
        job_id=job.id,
        mode=job.mode,
        total_count=job.total_count,
        processed_count=job.processed_count,
        failed_count=job.failed_count,
        status=job.status,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


@router.post(
    "/index",
    response_model=SuccessResponse[IndexingResultResponse],
    summary="Index every note at the source",
)
async def run_full_index(
    indexer: BatchIndexer = Depends(get_indexer),
) -> SuccessResponse[IndexingResultResponse]:
    """Re-embed and upsert every note, regardless of what is already indexed."""
    try:
        result = await indexer.run_full()
    except PlanningError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except Exception as exc:  # pragma: no cover - unexpected errors
        app_logger.error(f"Full index failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Full index failed: {str(exc)}",
        )

    return success_response(
        data=IndexingResultResponse(**asdict(result)),
        message="Full indexing run completed",
    )


@router.post(
    "/sync",
    response_model=SuccessResponse[IndexingResultResponse],
    summary="Index new and modified notes and drop removed ones",
)
async def run_sync(
    indexer: BatchIndexer = Depends(get_indexer),
) -> SuccessResponse[IndexingResultResponse]:
    """Incremental sync; unchanged notes are neither fetched nor re-embedded."""
    try:
        result = await indexer.run_sync()
    except PlanningError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except Exception as exc:  # pragma: no cover - unexpected errors
        app_logger.error(f"Sync failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Sync failed: {str(exc)}",
        )

    return success_response(
        data=IndexingResultResponse(**asdict(result)),
        message="Notes synced successfully",
    )


@router.get(
    "/jobs/latest",
    response_model=SuccessResponse[JobStatusResponse],
    summary="Progress of the most recent indexing job",
)
async def get_latest_job(
    tracker: JobTracker = Depends(get_tracker),
) -> SuccessResponse[JobStatusResponse]:
    job = await tracker.get_latest()
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No indexing jobs yet")
    return success_response(data=_job_response(job), message="Indexing job retrieved")


@router.get(
    "/jobs/{job_id}",
    response_model=SuccessResponse[JobStatusResponse],
    summary="Progress of an indexing job",
)
async def get_job(
    job_id: int,
    tracker: JobTracker = Depends(get_tracker),
) -> SuccessResponse[JobStatusResponse]:
    job = await tracker.get(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Indexing job {job_id} not found",
        )
    return success_response(data=_job_response(job), message="Indexing job retrieved")


@router.post(
    "/search",
    response_model=SuccessResponse[SearchResponse],
    summary="Hybrid semantic and keyword search over notes",
)
async def search_notes(
    request: SearchRequest,
    engine: RankFusionSearch = Depends(get_search_engine),
) -> SuccessResponse[SearchResponse]:
    """Fuse vector and trigram rankings with Reciprocal Rank Fusion.

    Filters or a date sort run the fusion as a single SQL query so the
    predicates apply before ranking.
    """
    filters = engine.parse_filters(request.filters)
    strategy = engine.select_strategy(filters)
    start = time.perf_counter()
    try:
        results = await engine.search(request.query, limit=request.limit, filters=filters)
    except SearchError as exc:
        code = status.HTTP_400_BAD_REQUEST if exc.invalid_input else status.HTTP_503_SERVICE_UNAVAILABLE
        raise HTTPException(status_code=code, detail=str(exc))

    return success_response(
        data=SearchResponse(
            results=results,
            total_results=len(results),
            strategy=strategy.value,
            processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
        ),
        message="Search completed",
    )


@router.get(
    "/large",
    response_model=SuccessResponse[LargeNotesResponse],
    summary="Indexed notes whose text exceeds a size threshold",
)
async def list_large_notes(
    min_size: int = Query(default=settings.LARGE_NOTE_MIN_SIZE, ge=0),
    limit: int = Query(default=20, ge=1),
    store: NoteStore = Depends(get_store),
) -> SuccessResponse[LargeNotesResponse]:
    notes = await store.list_large_notes(min_size, limit)
    return success_response(
        data=LargeNotesResponse(
            min_size=min_size,
            notes=[LargeNoteEntry(**asdict(note)) for note in notes],
        ),
        message=f"Found {len(notes)} large notes",
    )
