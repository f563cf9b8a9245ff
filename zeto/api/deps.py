"""FastAPI dependencies: API key guard and access to app-scoped clients.

The completion gateway and the database handle are created in the
application lifespan and stored on ``app.state``; routes receive them
through these dependencies (tests override them).
"""

from fastapi import Depends, Header, HTTPException, Request

from zeto.core.completion_gateway import CompletionGateway
from zeto.core.config import Settings, get_settings
from zeto.core.errors import ConfigError
from zeto.db.conversations import ConversationRepository
from zeto.db.documents import DocumentRepository
from zeto.db.storage import ObjectStore
from zeto.db.supabase_client import SupabaseDatabase


async def require_api_key(
    x_api_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests whose X-API-Key does not match CENTRAL_API_KEY."""
    if settings.CENTRAL_API_KEY and x_api_key != settings.CENTRAL_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing central API key")


def get_gateway(request: Request, settings: Settings = Depends(get_settings)) -> CompletionGateway:
    """
    Completion gateway for the request.

    Raises:
        ConfigError: If the completion credential is unset
    """
    if not settings.OPENAI_API_KEY:
        raise ConfigError("OpenAI API key not configured. Set OPENAI_API_KEY in the environment.")

    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise ConfigError("Completion gateway is not initialized.")
    return gateway


def get_optional_database(request: Request) -> SupabaseDatabase | None:
    return getattr(request.app.state, "database", None)


def get_database(
    database: SupabaseDatabase | None = Depends(get_optional_database),
) -> SupabaseDatabase:
    if database is None:
        raise ConfigError("Database is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.")
    return database


def get_document_repository(
    database: SupabaseDatabase = Depends(get_database),
) -> DocumentRepository:
    return DocumentRepository(database)


def get_optional_document_repository(
    database: SupabaseDatabase | None = Depends(get_optional_database),
) -> DocumentRepository | None:
    return DocumentRepository(database) if database is not None else None


def get_conversation_repository(
    database: SupabaseDatabase = Depends(get_database),
) -> ConversationRepository:
    return ConversationRepository(database)


def get_optional_conversation_repository(
    database: SupabaseDatabase | None = Depends(get_optional_database),
) -> ConversationRepository | None:
    return ConversationRepository(database) if database is not None else None


def get_object_store(
    database: SupabaseDatabase = Depends(get_database),
    settings: Settings = Depends(get_settings),
) -> ObjectStore:
    return ObjectStore(database, settings.STORAGE_BUCKET)
