"""Search filter and result models shared by the search service and the API."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    CREATION_DATE = "creation_date"
    MODIFICATION_DATE = "modification_date"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchFilters(BaseModel):
    """Optional predicates and ordering for a hybrid search.

    Any date, image or folder predicate, or a sort other than relevance,
    switches the search to the single fused query with the predicates
    applied inside both sub-rankings.
    """

    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    modified_before: Optional[datetime] = None
    modified_after: Optional[datetime] = None
    has_images: Optional[bool] = None
    folder_path: Optional[str] = None
    sort_by: Optional[SortBy] = None
    sort_order: SortOrder = SortOrder.DESC

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "example": {
                "created_after": "2024-01-01T00:00:00Z",
                "has_images": False,
                "sort_by": "creation_date",
                "sort_order": "asc",
            }
        },
    }

    @property
    def has_predicates(self) -> bool:
        return any(
            value is not None
            for value in (
                self.created_before,
                self.created_after,
                self.modified_before,
                self.modified_after,
                self.has_images,
                self.folder_path,
            )
        )

    @property
    def effective_sort(self) -> SortBy:
        return self.sort_by or SortBy.RELEVANCE

    @property
    def requires_pushdown(self) -> bool:
        return self.has_predicates or self.effective_sort != SortBy.RELEVANCE


class SearchResult(BaseModel):
    """One ranked note."""

    id: str = Field(description="Source note id")
    title: str
    body: str
    score: float = Field(description="Fused RRF score, or raw similarity for single-signal searches")
    folder_path: Optional[str] = None
    creation_time: Optional[datetime] = None
    modification_time: Optional[datetime] = None
