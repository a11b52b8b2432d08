import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from notes_index.config.logger import app_logger, log_request_start, log_request_end, log_request_error
from notes_index.config.settings import settings
from notes_index.db.db import close_db, get_session_maker, init_db, ping_database
from notes_index.api.notes.router import router as notes_router
from notes_index.services.batch_indexer import BatchIndexer
from notes_index.services.embeddings import Embedder
from notes_index.services.errors import NotesIndexError
from notes_index.services.job_tracker import JobTracker
from notes_index.services.note_source import DirectoryNoteSource
from notes_index.services.note_store import NoteStore
from notes_index.services.search import RankFusionSearch
from notes_index.utils.responses import exception_response


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


def build_services(app: FastAPI, embedder: Embedder) -> None:
    """Wire the indexing and search services onto app.state."""
    session_maker = get_session_maker()
    store = NoteStore(session_maker)
    tracker = JobTracker(session_maker)
    source = DirectoryNoteSource(settings.NOTES_DIR, settings.NOTES_TRASH_FOLDER)

    app.state.note_store = store
    app.state.job_tracker = tracker
    app.state.indexer = BatchIndexer(source, store, embedder, tracker)
    app.state.search_engine = RankFusionSearch(store, embedder)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup and shutdown events."""
    # Startup
    app_logger.info(f"{settings.APP_NAME} API starting up")
    app_logger.info(f"Logging system active - logs will be saved to {settings.LOGS_DIR}/ directory")

    # The model loads lazily on first use, so startup never calls the embedding API
    embedder = Embedder()
    app.state.embedder = embedder

    try:
        await init_db()
        build_services(app, embedder)
        app_logger.info(f"Notes directory: {settings.NOTES_DIR}")
    except Exception as e:
        app_logger.warning(f"Database initialization: {e}")
        app_logger.warning("Indexing and search endpoints will return 503. Check DATABASE_URL.")

    app_logger.info("Application initialized successfully")

    yield

    # Shutdown
    app_logger.info(f"{settings.APP_NAME} API shutting down")
    await embedder.close()
    await close_db()
    app_logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    servers=[
        {
            "url": "http://localhost:8000",
            "description": "Development server",
        },
    ],
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information using Loguru."""
    start_time = datetime.now()

    log_request_start(request)

    try:
        response = await call_next(request)

        process_time = (datetime.now() - start_time).total_seconds()
        log_request_end(request, response.status_code, process_time)

        return response

    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_error(request, e, process_time)
        raise


@app.exception_handler(NotesIndexError)
async def notes_index_error_handler(request: Request, exc: NotesIndexError):
    """Service errors that escaped an endpoint's own mapping."""
    app_logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=exception_response("Notes index error", exc).model_dump(mode="json"),
    )


@app.get("/", tags=["health"])
async def root():
    """Root endpoint with basic API information."""
    app_logger.info("Root endpoint accessed")
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "status": "operational",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/status", tags=["health"])
async def status():
    """Status endpoint with build information for CI/CD monitoring."""
    app_logger.info("Status endpoint accessed")

    # Get build information from environment variables (CI-injected)
    build_number = os.getenv("BUILD_NUMBER", "local-dev")
    git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
    environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

    return {
        "status": "ok",
        "build": build_number,
        "sha": git_sha,
        "env": environment
    }


@app.get("/health/db", tags=["health"])
async def health_db():
    """Database health endpoint: runs SELECT 1 against the index database."""
    is_ok, message = await ping_database()
    if not is_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": "unavailable", "message": message}
        )
    return {"status": "ok", "db": "available", "message": message}


# Include API routers
app.include_router(notes_router)


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} API server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
