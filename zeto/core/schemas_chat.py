"""Pydantic schemas for chat requests, messages and conversations."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from zeto.core.schemas_documents import DocumentReference, MissingDocument


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single message in a project conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: f"msg-{uuid4().hex}")
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    is_provisional: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_provisional", "isProvisional"),
    )


class Conversation(BaseModel):
    """The single conversation attached to a project."""

    id: str
    project_id: str
    title: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ChatRequest(BaseModel):
    """Request to chat with the assistant.

    ``files`` carries document references (optionally with inline content);
    ``fileIds`` asks the server to resolve documents from the store.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    files: list[DocumentReference] = Field(default_factory=list)
    file_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("file_ids", "fileIds")
    )
    project_id: str | None = Field(
        default=None, validation_alias=AliasChoices("project_id", "projectId")
    )
    stream: bool = False
    model: str | None = None


class UsedContext(BaseModel):
    """Which documents ended up grounding an answer."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: str | None = Field(default=None, alias="projectId")
    file_ids: list[str] = Field(default_factory=list, alias="fileIds")
    missing: list[MissingDocument] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Single-shot chat answer."""

    response: str
    used: UsedContext


class AppendMessagesRequest(BaseModel):
    """Messages persisted by the client once a stream has completed."""

    messages: list[ChatMessage] = Field(..., min_length=1)
