"""Application configuration using pydantic-settings."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Development mode - bypasses the identity header for local development
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # AI providers - an empty key means the provider is not configured
    anthropic_api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    google_api_key: str = Field(default="", validation_alias="GOOGLE_API_KEY")
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")

    text_model: str = Field(default="claude-3-haiku-20240307", validation_alias="TEXT_MODEL")
    vision_model: str = Field(
        default="claude-3-5-sonnet-20241022", validation_alias="VISION_MODEL",
    )
    gemini_embedding_model: str = Field(
        default="text-embedding-004", validation_alias="GEMINI_EMBEDDING_MODEL",
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small", validation_alias="OPENAI_EMBEDDING_MODEL",
    )

    # Timeouts (seconds). Embedding runs in the background and may take longer.
    scrape_timeout: float = Field(default=10.0, validation_alias="SCRAPE_TIMEOUT")
    ai_timeout: float = Field(default=30.0, validation_alias="AI_TIMEOUT")
    embedding_timeout: float = Field(default=60.0, validation_alias="EMBEDDING_TIMEOUT")

    # Enrichment tuning
    max_generated_tags: int = Field(default=5, validation_alias="MAX_GENERATED_TAGS")
    max_merged_tags: int = Field(default=8, validation_alias="MAX_MERGED_TAGS")
    max_image_tags: int = Field(default=10, validation_alias="MAX_IMAGE_TAGS")
    content_analysis_min_length: int = Field(
        default=100, validation_alias="CONTENT_ANALYSIS_MIN_LENGTH",
    )
    embedding_content_chars: int = Field(
        default=2000, validation_alias="EMBEDDING_CONTENT_CHARS",
    )
    embedding_max_chars: int = Field(default=8000, validation_alias="EMBEDDING_MAX_CHARS")

    # Search tuning
    search_overfetch_factor: int = Field(default=3, validation_alias="SEARCH_OVERFETCH_FACTOR")
    default_search_limit: int = Field(default=20, validation_alias="DEFAULT_SEARCH_LIMIT")
    max_search_limit: int = Field(default=100, validation_alias="MAX_SEARCH_LIMIT")

    # Background embedding queue
    embedding_workers: int = Field(default=2, validation_alias="EMBEDDING_WORKERS")

    # Create the pgvector extension and tables on startup (no migration runner)
    init_db_on_startup: bool = Field(default=False, validation_alias="INIT_DB_ON_STARTUP")

    # Bulk regeneration pause between bookmarks (upstream rate limits)
    regeneration_delay_seconds: float = Field(
        default=0.1, validation_alias="REGENERATION_DELAY_SECONDS",
    )

    # Field and payload limits
    max_image_bytes: int = Field(default=5 * 1024 * 1024, validation_alias="MAX_IMAGE_BYTES")
    max_title_length: int = Field(default=500, validation_alias="MAX_TITLE_LENGTH")
    max_content_length: int = Field(default=512_000, validation_alias="MAX_CONTENT_LENGTH")

    @model_validator(mode="after")
    def validate_dev_mode_security(self) -> "Settings":
        """
        Prevent DEV_MODE from being enabled with a production database.

        DEV_MODE trusts every request as the dev user, so it must only be used
        with local development databases.
        """
        if not self.dev_mode:
            return self

        try:
            parsed = urlparse(self.database_url)
            hostname = parsed.hostname or ""
        except Exception:
            # If we can't parse the URL, block DEV_MODE (fail-safe)
            hostname = ""

        local_hosts = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}
        if hostname.lower() not in local_hosts:
            raise ValueError(
                f"DEV_MODE cannot be enabled with a non-local database. "
                f"Database host '{hostname}' appears to be a production database. "
                f"DEV_MODE bypasses user identification and must only be used locally.",
            )

        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
