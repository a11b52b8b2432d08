from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Notes Index"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Incremental note indexing and hybrid semantic search API"

    LOG_LEVEL: str = "INFO"
    LOGS_DIR: str = "logs"

    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./local.db"
    DATABASE_POOL_SIZE: int = 20

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL for the application.

        Priority:
        1. Explicit DATABASE_URL (Postgres with pgvector + pg_trgm)
        2. Local SQLite fallback for development: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./local.db"

    # OpenAI embedding settings
    OPENAI_API_KEY: str = ""
    OPENAI_API_BASE: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = Field(default=384, ge=1, description="Vector length stored per note")
    EMBEDDING_SUB_BATCH_SIZE: int = Field(default=10, ge=1)
    EMBEDDING_TIMEOUT_SECONDS: float = 60.0

    # Note source settings
    NOTES_DIR: str = "notes"  # Directory of exported HTML notes, one file per note
    NOTES_TRASH_FOLDER: str = "Recently Deleted"

    # Indexing settings
    INDEX_BATCH_SIZE: int = Field(default=50, ge=1)

    # Search settings
    SEARCH_DEFAULT_LIMIT: int = Field(default=20, ge=1)
    RRF_K: int = 60
    FUSED_FETCH_SIZE: int = Field(default=50, ge=1)
    FUSED_MISSING_RANK: int = 9999

    LARGE_NOTE_MIN_SIZE: int = 100_000


settings = Settings()
