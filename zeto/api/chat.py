"""Chat assistant API endpoint."""

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from zeto.api.deps import (
    get_gateway,
    get_optional_conversation_repository,
    get_optional_document_repository,
)
from zeto.core.chat_stream import relay_stream
from zeto.core.completion_gateway import CompletionGateway
from zeto.core.config import Settings, get_settings
from zeto.core.context_assembler import ContextLimits, assemble, fetch_document_texts
from zeto.core.errors import EmptyQuery
from zeto.core.logging import get_logger, log_with_context
from zeto.core.schemas_chat import ChatMessage, ChatRequest, ChatResponse, ChatRole, UsedContext
from zeto.core.schemas_documents import DocumentReference
from zeto.db.conversations import ConversationRepository
from zeto.db.documents import DocumentRepository

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _collect_references(body: ChatRequest) -> list[DocumentReference]:
    """Inline files first, then ids to resolve from the store, without duplicates."""
    refs: list[DocumentReference] = []
    seen: set[str] = set()
    for ref in body.files:
        if ref.id not in seen:
            seen.add(ref.id)
            refs.append(ref)
    for file_id in body.file_ids:
        if file_id and file_id not in seen:
            seen.add(file_id)
            refs.append(DocumentReference(id=file_id))
    return refs


@router.post("/chat", response_model=ChatResponse)
async def chat_with_assistant(
    body: ChatRequest,
    request: Request,
    gateway: CompletionGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
    documents: DocumentRepository | None = Depends(get_optional_document_repository),
    conversations: ConversationRepository | None = Depends(get_optional_conversation_repository),
):
    """
    Answer a chat message, optionally grounded in project documents.

    The completion credential is checked by the gateway dependency before
    anything else runs; the query and the document context are validated
    before any upstream call.

    Args:
        body: Chat request (message, files / fileIds, projectId, stream)

    Returns:
        ``{response, used}`` JSON, or an SSE stream when ``stream`` is true
    """
    request_id = uuid4().hex[:12]

    if not body.message.strip():
        raise EmptyQuery()

    refs = _collect_references(body)
    limits = ContextLimits(
        max_docs=settings.CHAT_MAX_DOCS,
        max_chars_per_doc=settings.CHAT_MAX_CHARS_PER_DOC,
    )

    fetched = await fetch_document_texts(
        documents,
        refs,
        project_id=body.project_id,
        strict_project_lock=settings.STRICT_PROJECT_LOCK,
        max_docs=limits.max_docs,
    )
    prompt = assemble(body.message, fetched.resolve(refs), fetched.texts, limits, fetched.rejected)

    used = UsedContext(project_id=body.project_id, file_ids=prompt.used_ids, missing=prompt.missing)

    log_with_context(
        logger,
        logging.INFO,
        "Chat request accepted",
        request_id=request_id,
        project_id=body.project_id,
        grounded=prompt.grounded,
        documents=len(prompt.sections),
        missing=len(prompt.missing),
        stream=body.stream,
    )

    async def persist(answer: str) -> None:
        if conversations is None or not body.project_id:
            return
        await conversations.append_messages(
            body.project_id,
            [
                ChatMessage(role=ChatRole.USER, content=body.message),
                ChatMessage(role=ChatRole.ASSISTANT, content=answer),
            ],
        )

    if body.stream:
        return StreamingResponse(
            relay_stream(
                gateway.complete_streaming(prompt, body.model),
                ping_interval=settings.SSE_PING_INTERVAL_SECONDS,
                is_disconnected=request.is_disconnected,
                on_complete=persist,
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    answer = await gateway.complete(prompt, body.model)

    try:
        await persist(answer)
    except Exception as e:
        logger.error(f"Failed to persist chat answer: {e}", exc_info=True)

    response = ChatResponse(response=answer, used=used)
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))
