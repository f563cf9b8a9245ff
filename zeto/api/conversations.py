"""API endpoints for a project's chat history."""

from fastapi import APIRouter, Depends, HTTPException

from zeto.api.deps import get_conversation_repository
from zeto.core.schemas_chat import AppendMessagesRequest, Conversation
from zeto.db.conversations import ConversationRepository

router = APIRouter()


@router.get("/projects/{project_id}/conversation")
async def get_conversation(
    project_id: str,
    conversations: ConversationRepository = Depends(get_conversation_repository),
) -> Conversation:
    """Get the project's conversation, creating it on first access."""
    return await conversations.get_or_create(project_id)


@router.post("/projects/{project_id}/conversation/messages")
async def append_messages(
    project_id: str,
    body: AppendMessagesRequest,
    conversations: ConversationRepository = Depends(get_conversation_repository),
) -> Conversation:
    """Persist finished messages (e.g. after a client-side stream completes)."""
    try:
        return await conversations.append_messages(project_id, body.messages)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
