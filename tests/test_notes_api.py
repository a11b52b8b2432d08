"""Tests for the /v1/notes endpoints with in-memory services on app.state."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEmbedder, FakeStore, make_result
from notes_index.config.settings import settings
from notes_index.main import app
from notes_index.models.indexing_job import IndexingJob
from notes_index.services.batch_indexer import IndexingResult
from notes_index.services.errors import PlanningError
from notes_index.services.note_store import LargeNote
from notes_index.services.search import RankFusionSearch

SERVICES = ("indexer", "job_tracker", "search_engine", "note_store")


class StubIndexer:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def run_full(self):
        self.calls.append("full")
        if self.error:
            raise self.error
        return IndexingResult(job_id=1, mode="full", total_notes=3, processed_notes=2, failed_notes=1, status="completed", elapsed_seconds=0.5)

    async def run_sync(self):
        self.calls.append("sync")
        if self.error:
            raise self.error
        return IndexingResult(job_id=2, mode="sync", total_notes=2, processed_notes=2, failed_notes=0, status="completed", elapsed_seconds=0.1, deleted_notes=1)


class StubTracker:
    def __init__(self, jobs):
        self.jobs = {job.id: job for job in jobs}

    async def get(self, job_id):
        return self.jobs.get(job_id)

    async def get_latest(self):
        return self.jobs[max(self.jobs)] if self.jobs else None


class LargeNoteStore(FakeStore):
    async def list_large_notes(self, min_size, limit):
        self.large_args = (min_size, limit)
        return [LargeNote(title="Huge", folder_path="Archive", content_length=150_000, html_length=400_000, modification_time=None)]


def running_job(job_id=7):
    return IndexingJob(
        id=job_id,
        mode="sync",
        total_count=10,
        processed_count=4,
        failed_count=1,
        status="running",
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def services():
    store = LargeNoteStore()
    embedder = FakeEmbedder()
    state = {
        "indexer": StubIndexer(),
        "job_tracker": StubTracker([running_job()]),
        "search_engine": RankFusionSearch(store, embedder, rrf_k=60, fetch_size=50, default_limit=20),
        "note_store": store,
    }
    for name, service in state.items():
        setattr(app.state, name, service)
    yield {**state, "embedder": embedder}
    for name in SERVICES:
        setattr(app.state, name, None)


@pytest.fixture
def client():
    return TestClient(app)


class TestIndexEndpoints:
    """POST /v1/notes/index and /v1/notes/sync."""

    def test_full_index(self, client, services):
        response = client.post("/v1/notes/index")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["mode"] == "full"
        assert body["data"]["failed_notes"] == 1
        assert services["indexer"].calls == ["full"]

    def test_sync(self, client, services):
        response = client.post("/v1/notes/sync")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["deleted_notes"] == 1
        assert data["processed_notes"] + data["failed_notes"] == data["total_notes"]

    def test_sync_planning_failure_is_503(self, client, services):
        app.state.indexer = StubIndexer(error=PlanningError("source unreachable"))

        response = client.post("/v1/notes/sync")

        assert response.status_code == 503
        assert "source unreachable" in response.json()["detail"]

    def test_services_missing_is_503(self, client, services):
        app.state.indexer = None
        assert client.post("/v1/notes/index").status_code == 503


class TestJobEndpoints:
    """GET /v1/notes/jobs/..."""

    def test_job_by_id(self, client, services):
        response = client.get("/v1/notes/jobs/7")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["job_id"] == 7
        assert data["status"] == "running"
        assert (data["processed_count"], data["failed_count"], data["total_count"]) == (4, 1, 10)

    def test_latest_job(self, client, services):
        response = client.get("/v1/notes/jobs/latest")
        assert response.status_code == 200
        assert response.json()["data"]["job_id"] == 7

    def test_unknown_job_is_404(self, client, services):
        assert client.get("/v1/notes/jobs/999").status_code == 404

    def test_no_jobs_yet_is_404(self, client, services):
        app.state.job_tracker = StubTracker([])
        assert client.get("/v1/notes/jobs/latest").status_code == 404


class TestSearchEndpoint:
    """POST /v1/notes/search."""

    def test_unfiltered_search_fuses_in_process(self, client, services):
        store = services["note_store"]
        store.vector_results = [make_result("D1"), make_result("D2")]
        store.text_results = [make_result("D2")]

        response = client.post("/v1/notes/search", json={"query": "plans", "limit": 5})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["strategy"] == "result_set"
        assert data["total_results"] == 2
        assert [r["id"] for r in data["results"]] == ["D2", "D1"]
        assert {"title", "body", "score"} <= set(data["results"][0])

    def test_filtered_search_uses_pushdown(self, client, services):
        store = services["note_store"]
        store.fused_results = [make_result("F1")]

        response = client.post(
            "/v1/notes/search",
            json={"query": "plans", "filters": {"has_images": True, "sort_by": "creation_date", "sort_order": "asc"}},
        )

        assert response.status_code == 200
        assert response.json()["data"]["strategy"] == "pushdown"
        assert store.fused_calls[0]["filters"].has_images is True

    def test_blank_query_is_400(self, client, services):
        assert client.post("/v1/notes/search", json={"query": "   "}).status_code == 400

    def test_schema_violations_are_422(self, client, services):
        assert client.post("/v1/notes/search", json={"query": ""}).status_code == 422
        assert client.post("/v1/notes/search", json={"query": "x", "limit": 0}).status_code == 422
        assert client.post("/v1/notes/search", json={"query": "x", "filters": {"bogus": 1}}).status_code == 422

    def test_backend_failure_is_503(self, client, services):
        services["note_store"].search_error = RuntimeError("db down")
        assert client.post("/v1/notes/search", json={"query": "x"}).status_code == 503

    def test_large_limit_is_accepted(self, client, services):
        services["note_store"].vector_results = [make_result(f"D{i}") for i in range(3)]

        response = client.post("/v1/notes/search", json={"query": "plans", "limit": 500})

        assert response.status_code == 200
        assert response.json()["data"]["total_results"] == 3


class TestLargeNotesEndpoint:
    def test_lists_large_notes(self, client, services):
        response = client.get("/v1/notes/large", params={"min_size": 120000, "limit": 5})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["min_size"] == 120000
        assert data["notes"][0]["title"] == "Huge"
        assert services["note_store"].large_args == (120000, 5)

    def test_default_limit_is_twenty(self, client, services):
        response = client.get("/v1/notes/large")

        assert response.status_code == 200
        assert services["note_store"].large_args == (settings.LARGE_NOTE_MIN_SIZE, 20)
