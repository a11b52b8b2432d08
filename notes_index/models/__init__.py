"""Models module - imports all models for SQLModel registration."""

# Import all models so SQLModel can register them
from notes_index.models.indexing_job import IndexingJob, JobMode, JobStatus
from notes_index.models.note import Note

__all__ = [
    "IndexingJob",
    "JobMode",
    "JobStatus",
    "Note",
]
