"""Configuration management for the ZÉTO Workspace API."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The completion credential is deliberately optional here: its absence is
    reported per request as a ``ConfigError`` instead of failing startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # OpenAI configuration
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    CHAT_MODEL: str = Field(default="gpt-4o-mini", description="Default chat completion model")

    # Supabase configuration (database project + object store)
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )
    STORAGE_BUCKET: str = Field(default="project-files", description="Object store bucket")
    SIGNED_URL_TTL_SECONDS: int = Field(
        default=3600, description="Lifetime of issued signed URLs"
    )

    # Shared API key guard; disabled when unset
    CENTRAL_API_KEY: str | None = Field(default=None, description="Value expected in X-API-Key")

    CORS_ALLOW_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Environment
    ZETO_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Context assembly limits
    CHAT_MAX_DOCS: int = Field(default=5, description="Max documents sent to the model")
    CHAT_MAX_CHARS_PER_DOC: int = Field(
        default=6000, description="Hard character cutoff per document"
    )

    # Streaming relay
    SSE_PING_INTERVAL_SECONDS: float = Field(
        default=15.0, description="Interval between liveness pings on the event stream"
    )

    # Project lock policy for fileIds lookups.
    # False (lenient): reject only documents bound to a different project.
    # True (strict): documents must be bound to the requested project.
    STRICT_PROJECT_LOCK: bool = Field(
        default=False, description="Require documents to belong to the requested project"
    )

    # PDF ingestion
    MAX_PDF_BYTES: int = Field(default=10 * 1024 * 1024, description="Max PDF size in bytes")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()
