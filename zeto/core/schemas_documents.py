"""Pydantic schemas for project documents and their extracted text."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MissingReason(str, Enum):
    """Why a referenced document was left out of the prompt."""

    NOT_FOUND = "not_found"
    EMPTY_TEXT = "empty_text"
    PROJECT_MISMATCH = "project_mismatch"
    OVER_LIMIT = "over_limit"


class DocumentReference(BaseModel):
    """A document selected for grounding a chat answer.

    Accepts both the canonical field names and the short names sent by the
    web client (``name``, ``type``, ``url``). ``content`` carries inline
    text for clients that ship the file body with the request.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Document id")
    display_name: str = Field(
        default="document",
        validation_alias=AliasChoices("display_name", "displayName", "name", "fileName"),
    )
    mime_type: str = Field(
        default="unknown",
        validation_alias=AliasChoices("mime_type", "mimeType", "type"),
    )
    locator_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("locator_url", "locatorURL", "url"),
    )
    project_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("project_id", "projectId"),
    )
    content: str | None = Field(default=None, description="Inline extracted text")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DocumentReference":
        """Build a reference from a stored ``files`` row."""
        return cls(
            id=str(record["id"]),
            display_name=record.get("file_name") or record.get("name") or "document",
            mime_type=record.get("mime_type") or "unknown",
            locator_url=record.get("url"),
            project_id=record.get("project_id"),
        )


class ExtractedText(BaseModel):
    """Text extracted from a document, keyed by document id."""

    document_id: str
    text: str
    extracted_at: datetime | None = None

    @classmethod
    def from_record(cls, document_id: str, record: dict[str, Any]) -> "ExtractedText | None":
        """Text stored on a ``files`` row, or None if it was never extracted."""
        if record.get("extracted_text") is None:
            return None
        return cls(
            document_id=document_id,
            text=record["extracted_text"],
            extracted_at=record.get("extracted_at"),
        )


class MissingDocument(BaseModel):
    """A referenced document that could not be used, and why."""

    id: str
    reason: MissingReason


class DocumentPage(BaseModel):
    """One page of a project's documents."""

    documents: list[DocumentReference]
    limit: int
    offset: int
    next_offset: int | None = None


class ExtractPdfResponse(BaseModel):
    """Response for PDF text ingestion."""

    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., serialization_alias="fileId")
    extracted: bool = True
    text_preview: str = Field(..., serialization_alias="textPreview")
    meta: dict[str, Any] = Field(default_factory=dict)
