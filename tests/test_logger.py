"""Tests for log channel routing."""

import pytest
from loguru import logger
from starlette.requests import Request

from notes_index.config.logger import (
    PERFORMANCE_CHANNEL,
    REQUEST_CHANNEL,
    app_logger,
    channel_filter,
    log_performance,
    log_request_end,
    log_request_error,
    setup_logging,
)
from notes_index.config.settings import settings


def make_request(path="/v1/notes/search"):
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": b"",
            "headers": [],
            "client": ("10.0.0.5", 51000),
        }
    )


@pytest.fixture
def captured():
    records = {REQUEST_CHANNEL: [], PERFORMANCE_CHANNEL: []}
    handler_ids = [
        logger.add(lambda message, channel=channel: records[channel].append(message.record["message"]), filter=channel_filter(channel), level="DEBUG")
        for channel in records
    ]
    yield records
    for handler_id in handler_ids:
        logger.remove(handler_id)


class TestChannels:
    """Request and timing records carry their channel; plain records carry none."""

    def test_performance_records(self, captured):
        log_performance("hybrid_search", 0.25, strategy="pushdown", results=3)

        assert captured[PERFORMANCE_CHANNEL] == ["hybrid_search took 0.2500s strategy=pushdown results=3"]
        assert captured[REQUEST_CHANNEL] == []

    def test_request_records(self, captured):
        request = make_request()

        log_request_end(request, 200, 0.01)
        log_request_error(request, RuntimeError("db down"), 0.5)

        assert captured[REQUEST_CHANNEL] == [
            "POST /v1/notes/search -> 200 (0.0100s)",
            "POST /v1/notes/search failed from 10.0.0.5: RuntimeError: db down (0.5000s)",
        ]
        assert captured[PERFORMANCE_CHANNEL] == []

    def test_plain_records_stay_out_of_channels(self, captured):
        app_logger.info("Found 3 notes at the source")

        assert captured == {REQUEST_CHANNEL: [], PERFORMANCE_CHANNEL: []}


class TestSetup:
    def test_writes_channel_files(self, tmp_path):
        try:
            setup_logging("INFO", str(tmp_path))
            log_performance("full_index", 1.5, total=4)
            app_logger.info("unrelated")
        finally:
            setup_logging(settings.LOG_LEVEL, settings.LOGS_DIR)

        assert {"app.log", "errors.log", "requests.log", "performance.log"} <= {p.name for p in tmp_path.iterdir()}
        performance = (tmp_path / "performance.log").read_text()
        assert "full_index took 1.5000s total=4" in performance
        assert "unrelated" not in performance
        assert "unrelated" in (tmp_path / "app.log").read_text()
        assert (tmp_path / "requests.log").read_text() == ""
