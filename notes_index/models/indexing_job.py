"""Indexing job model used to report progress of full and sync runs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class JobStatus(str, Enum):
    """Lifecycle states of an indexing job."""

    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class JobMode(str, Enum):
    FULL = "full"
    SYNC = "sync"


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED.value, JobStatus.CANCELLED.value, JobStatus.FAILED.value}
)


class IndexingJob(SQLModel, table=True):
    """Progress record for one indexing run.

    processed_count + failed_count never exceeds total_count, and status moves
    from running to a terminal status exactly once.
    """

    __tablename__ = "indexing_jobs"

    id: Optional[int] = Field(default=None, primary_key=True)
    mode: str = Field(default=JobMode.FULL.value, max_length=16)
    total_count: int = Field(default=0, ge=0)
    processed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    status: str = Field(default=JobStatus.RUNNING.value, max_length=16, index=True)
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES
