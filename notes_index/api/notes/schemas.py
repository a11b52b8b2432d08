"""Request and response schemas for note indexing and search."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from notes_index.models.search import SearchFilters, SearchResult


class SearchRequest(BaseModel):
    """Request schema for POST /v1/notes/search."""

    query: str = Field(..., min_length=1, description="Free-text query.")
    limit: int = Field(default=20, ge=1, description="Maximum number of results.")
    filters: Optional[SearchFilters] = Field(
        default=None,
        description="Date, image and folder predicates plus result ordering.",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "query": "quarterly planning notes",
                "limit": 10,
                "filters": {"modified_after": "2024-06-01T00:00:00Z", "sort_by": "modification_date"},
            }
        }
    }


class SearchResponse(BaseModel):
    """Response payload for /v1/notes/search."""

    results: List[SearchResult] = Field(default_factory=list)
    total_results: int = Field(ge=0)
    strategy: str = Field(description="result_set (in-process fusion) or pushdown (single SQL query).")
    processing_time_ms: float = Field(ge=0)


class IndexingResultResponse(BaseModel):
    """Summary of a full or sync indexing run."""

    job_id: int
    mode: str
    total_notes: int = Field(ge=0)
    processed_notes: int = Field(ge=0)
    failed_notes: int = Field(ge=0)
    deleted_notes: int = Field(default=0, ge=0)
    status: str
    elapsed_seconds: float = Field(ge=0)


class JobStatusResponse(BaseModel):
    """Snapshot of an indexing job's progress."""

    job_id: int
    mode: str
    total_count: int = Field(ge=0)
    processed_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class LargeNoteEntry(BaseModel):
    title: str
    folder_path: Optional[str] = None
    content_length: int = Field(ge=0, description="Characters of converted text.")
    html_length: int = Field(ge=0, description="Characters of source HTML.")
    modification_time: Optional[datetime] = None


class LargeNotesResponse(BaseModel):
    """Response payload for /v1/notes/large."""

    min_size: int
    notes: List[LargeNoteEntry] = Field(default_factory=list)
