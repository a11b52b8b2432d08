"""Persistence of indexing job lifecycle and progress."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from notes_index.config.logger import app_logger
from notes_index.models.indexing_job import TERMINAL_STATUSES, IndexingJob, JobMode, JobStatus
from notes_index.services.errors import JobStateError


class JobTracker:
    """Creates, advances and reports indexing jobs.

    Every operation is its own transaction. Progress writes set both counters
    in a single UPDATE, so a concurrent reader sees either the previous or the
    next consistent pair.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def create(self, total_count: int, mode: JobMode | str = JobMode.FULL) -> int:
        if total_count < 0:
            raise JobStateError("total_count must be >= 0")
        job = IndexingJob(
            total_count=total_count,
            mode=JobMode(mode).value,
            status=JobStatus.RUNNING.value,
        )
        async with self._session_maker() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        app_logger.info(f"Created indexing job {job.id} ({job.mode}, {total_count} notes)")
        return job.id

    async def get(self, job_id: int) -> Optional[IndexingJob]:
        async with self._session_maker() as session:
            return await session.get(IndexingJob, job_id)

    async def get_latest(self) -> Optional[IndexingJob]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(IndexingJob).order_by(IndexingJob.id.desc()).limit(1)
            )
            return result.scalars().first()

    async def _require(self, session, job_id: int) -> IndexingJob:
        job = await session.get(IndexingJob, job_id)
        if job is None:
            raise JobStateError(f"Indexing job {job_id} not found")
        return job

    async def update_progress(self, job_id: int, processed: int, failed: int) -> None:
        """Record cumulative processed/failed counts for a running job."""
        async with self._session_maker() as session:
            job = await self._require(session, job_id)
            if job.status != JobStatus.RUNNING.value:
                raise JobStateError(f"Indexing job {job_id} is {job.status}, not running")
            if processed < job.processed_count or failed < job.failed_count:
                raise JobStateError(
                    f"Progress for job {job_id} cannot decrease "
                    f"({job.processed_count}/{job.failed_count} -> {processed}/{failed})"
                )
            if processed + failed > job.total_count:
                raise JobStateError(
                    f"Progress for job {job_id} exceeds total ({processed}+{failed} > {job.total_count})"
                )

            await session.execute(
                update(IndexingJob)
                .where(IndexingJob.id == job_id)
                .values(processed_count=processed, failed_count=failed)
            )
            await session.commit()

    async def complete(self, job_id: int, status: JobStatus | str = JobStatus.COMPLETED) -> IndexingJob:
        """Move a running job to a terminal status exactly once."""
        status = JobStatus(status)
        if status.value not in TERMINAL_STATUSES:
            raise JobStateError(f"{status.value} is not a terminal status")

        async with self._session_maker() as session:
            result = await session.execute(
                update(IndexingJob)
                .where(
                    IndexingJob.id == job_id,
                    IndexingJob.status == JobStatus.RUNNING.value,
                )
                .values(status=status.value, completed_at=datetime.now(timezone.utc))
            )
            await session.commit()
            if not result.rowcount:
                job = await self._require(session, job_id)
                raise JobStateError(f"Indexing job {job_id} already {job.status}")

            job = await session.get(IndexingJob, job_id, populate_existing=True)
        app_logger.info(
            f"Indexing job {job_id} {status.value}: "
            f"{job.processed_count} processed, {job.failed_count} failed of {job.total_count}"
        )
        return job
