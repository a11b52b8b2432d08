"""Database connection management using SQLModel with asyncpg."""

from typing import AsyncGenerator, Optional
from urllib.parse import urlparse, urlunparse

from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from notes_index.config.settings import settings
from notes_index.config.logger import app_logger

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None

# Postgres-only objects; SQLite (local dev, tests) has no vector or trigram operators
POSTGRES_EXTENSIONS = ("vector", "pg_trgm")
POSTGRES_INDEXES = (
    "CREATE INDEX IF NOT EXISTS ix_notes_title_trgm ON notes USING gin (title gin_trgm_ops)",
    "CREATE INDEX IF NOT EXISTS ix_notes_body_trgm ON notes USING gin (body gin_trgm_ops)",
    "CREATE INDEX IF NOT EXISTS ix_notes_embedding_hnsw ON notes USING hnsw (embedding vector_cosine_ops)",
)


def get_db_url() -> str:
    """Get database URL for SQLAlchemy with asyncpg driver."""
    db_url = settings.effective_database_url
    if not db_url:
        raise ValueError("DATABASE_URL not configured")
    # SQLite or other non-Postgres URLs are returned as-is
    if db_url.startswith("sqlite"):
        return db_url

    # asyncpg does not understand sslmode in the query string
    parsed = urlparse(db_url)
    query_parts = [p for p in parsed.query.split("&") if not p.startswith("sslmode=") and p]
    query = "&".join(query_parts)
    clean_url = urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            query,
            parsed.fragment,
        )
    )

    # Convert to asyncpg driver
    if clean_url.startswith("postgresql://"):
        clean_url = clean_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif clean_url.startswith("postgres://"):
        clean_url = clean_url.replace("postgres://", "postgresql+asyncpg://", 1)

    return clean_url


def create_engine_and_sessionmaker(db_url: str) -> tuple[AsyncEngine, async_sessionmaker]:
    """Build an async engine and its session factory for the given URL."""
    engine_kwargs = {"echo": False}
    if db_url.startswith("postgresql"):
        engine_kwargs.update(pool_size=settings.DATABASE_POOL_SIZE, max_overflow=0)

    engine = create_async_engine(db_url, **engine_kwargs)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_maker


async def create_schema(engine: AsyncEngine) -> None:
    """Create extensions, tables and search indexes."""
    # Import all models to register them with SQLModel
    from notes_index.models import indexing_job, note  # noqa: F401

    is_postgres = engine.dialect.name == "postgresql"
    async with engine.begin() as conn:
        if is_postgres:
            for extension in POSTGRES_EXTENSIONS:
                await conn.execute(text(f"CREATE EXTENSION IF NOT EXISTS {extension}"))
        await conn.run_sync(SQLModel.metadata.create_all)
        if is_postgres:
            for statement in POSTGRES_INDEXES:
                await conn.execute(text(statement))


async def init_db() -> None:
    """Initialize the database engine and create tables."""
    global _engine, _session_maker

    db_url = get_db_url()
    app_logger.info("Initializing database connection")

    _engine, _session_maker = create_engine_and_sessionmaker(db_url)
    try:
        await create_schema(_engine)
    except Exception as e:
        app_logger.error(f"Failed to initialize database: {e}")
        app_logger.error(f"Error type: {type(e).__name__}")
        await close_db()
        raise

    if _engine.dialect.name != "postgresql":
        app_logger.warning("Database is not PostgreSQL - vector and trigram search are unavailable")
    app_logger.info("Database initialized successfully")


async def close_db() -> None:
    """Close the database engine."""
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        app_logger.info("Database connection closed")


def get_session_maker() -> async_sessionmaker:
    """Return the session factory shared by the store and the job tracker."""
    if not _session_maker:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_maker


@asynccontextmanager
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager for scripts and background tasks."""
    async with get_session_maker()() as session:
        yield session


async def ping_database() -> tuple[bool, str]:
    """Run a lightweight health query against the database."""
    if not _engine or not _session_maker:
        return False, "Database not initialized"

    try:
        async with _session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            row = result.scalar()
            if row == 1:
                return True, "Database connection healthy"
            return False, f"Unexpected response: {row}"
    except Exception as e:
        return False, f"Database query failed: {str(e)}"
