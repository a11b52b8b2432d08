"""Tests for indexing job lifecycle and progress accounting."""

import asyncio

import pytest

from notes_index.models.indexing_job import JobMode, JobStatus
from notes_index.services.errors import JobStateError
from notes_index.services.job_tracker import JobTracker


@pytest.fixture
def tracker(session_maker):
    return JobTracker(session_maker)


class TestJobLifecycle:
    """create -> update_progress -> complete."""

    async def test_create_starts_running(self, tracker):
        job_id = await tracker.create(10, JobMode.SYNC)

        job = await tracker.get(job_id)
        assert job.status == JobStatus.RUNNING.value
        assert job.mode == "sync"
        assert (job.total_count, job.processed_count, job.failed_count) == (10, 0, 0)
        assert job.started_at is not None
        assert job.completed_at is None
        assert not job.is_finished

    async def test_progress_is_visible_mid_run(self, tracker):
        job_id = await tracker.create(10)

        await tracker.update_progress(job_id, 4, 1)

        job = await tracker.get(job_id)
        assert (job.processed_count, job.failed_count) == (4, 1)
        assert job.status == JobStatus.RUNNING.value

    async def test_complete(self, tracker):
        job_id = await tracker.create(2)
        await tracker.update_progress(job_id, 2, 0)

        job = await tracker.complete(job_id)

        assert job.status == JobStatus.COMPLETED.value
        assert job.completed_at is not None
        assert job.is_finished

    async def test_get_latest(self, tracker):
        assert await tracker.get_latest() is None

        await tracker.create(1)
        second = await tracker.create(2)

        latest = await tracker.get_latest()
        assert latest.id == second

    async def test_unknown_job(self, tracker):
        assert await tracker.get(999) is None
        with pytest.raises(JobStateError):
            await tracker.update_progress(999, 1, 0)
        with pytest.raises(JobStateError):
            await tracker.complete(999)


class TestJobInvariants:
    """Counters never regress or overflow; completion happens once."""

    async def test_counters_cannot_decrease(self, tracker):
        job_id = await tracker.create(10)
        await tracker.update_progress(job_id, 5, 2)

        with pytest.raises(JobStateError):
            await tracker.update_progress(job_id, 4, 2)
        with pytest.raises(JobStateError):
            await tracker.update_progress(job_id, 5, 1)

    async def test_counters_cannot_exceed_total(self, tracker):
        job_id = await tracker.create(3)
        with pytest.raises(JobStateError):
            await tracker.update_progress(job_id, 3, 1)

    async def test_complete_twice_is_rejected(self, tracker):
        job_id = await tracker.create(0)
        await tracker.complete(job_id)

        with pytest.raises(JobStateError):
            await tracker.complete(job_id, JobStatus.CANCELLED)
        assert (await tracker.get(job_id)).status == JobStatus.COMPLETED.value

    async def test_no_progress_after_completion(self, tracker):
        job_id = await tracker.create(5)
        await tracker.complete(job_id, JobStatus.CANCELLED)

        with pytest.raises(JobStateError):
            await tracker.update_progress(job_id, 1, 0)

    async def test_failed_is_terminal(self, tracker):
        job_id = await tracker.create(4)
        await tracker.update_progress(job_id, 1, 1)

        job = await tracker.complete(job_id, JobStatus.FAILED)

        assert job.status == JobStatus.FAILED.value
        assert job.is_finished
        assert (job.processed_count, job.failed_count) == (1, 1)
        with pytest.raises(JobStateError):
            await tracker.update_progress(job_id, 2, 1)

    async def test_running_is_not_a_terminal_status(self, tracker):
        job_id = await tracker.create(1)
        with pytest.raises(JobStateError):
            await tracker.complete(job_id, JobStatus.RUNNING)

    async def test_negative_total_is_rejected(self, tracker):
        with pytest.raises(JobStateError):
            await tracker.create(-1)

    async def test_concurrent_reads_see_consistent_counters(self, tracker):
        job_id = await tracker.create(100)

        async def writer():
            for step in range(1, 11):
                await tracker.update_progress(job_id, step * 8, step * 2)

        async def reader():
            snapshots = []
            for _ in range(20):
                job = await tracker.get(job_id)
                snapshots.append((job.processed_count, job.failed_count))
                await asyncio.sleep(0)
            return snapshots

        _, snapshots = await asyncio.gather(writer(), reader())

        for processed, failed in snapshots:
            assert processed + failed <= 100
            assert processed == failed * 4
