"""Database operations for project conversations (the ``chats`` table).

Each project has exactly one conversation, created on first access. The
message list is rewritten as a whole on append, so two writers appending to
the same conversation at once resolve as last-write-wins.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

from zeto.core.logging import get_logger
from zeto.core.schemas_chat import ChatMessage, Conversation
from zeto.db.supabase_client import SupabaseDatabase

logger = get_logger(__name__)

TABLE = "chats"


def conversation_id_for(project_id: str) -> str:
    return f"chat-{project_id}"


class ConversationRepository:
    """Lazily creates and appends to per-project conversations."""

    def __init__(self, database: SupabaseDatabase):
        self._db = database

    def _find_sync(self, project_id: str) -> dict[str, Any] | None:
        response = (
            self._db.client.table(TABLE)
            .select("*")
            .eq("project_id", project_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def _create_sync(self, project_id: str) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        conversation = Conversation(
            id=conversation_id_for(project_id),
            project_id=project_id,
            title=f"Chat - {now.date().isoformat()}",
            created_at=now,
            updated_at=now,
        )
        row = conversation.model_dump(mode="json")
        response = (
            self._db.client.table(TABLE)
            .upsert(row, on_conflict="id", ignore_duplicates=True)
            .execute()
        )
        if response.data:
            logger.info(f"Created conversation for project {project_id}")
            return response.data[0]

        # A concurrent request created it first
        return self._find_sync(project_id) or row

    def _get_or_create_sync(self, project_id: str) -> Conversation:
        row = self._find_sync(project_id) or self._create_sync(project_id)
        return Conversation.model_validate(row)

    async def get_or_create(self, project_id: str) -> Conversation:
        """Return the project's conversation, creating it if needed."""
        return await asyncio.to_thread(self._get_or_create_sync, project_id)

    def _append_sync(self, project_id: str, messages: list[ChatMessage]) -> Conversation:
        conversation = self._get_or_create_sync(project_id)
        conversation.messages.extend(messages)
        conversation.updated_at = datetime.now(timezone.utc)

        payload = conversation.model_dump(mode="json", include={"messages", "updated_at"})
        self._db.client.table(TABLE).update(payload).eq("id", conversation.id).execute()
        return conversation

    async def append_messages(
        self, project_id: str, messages: list[ChatMessage]
    ) -> Conversation:
        """
        Append finished messages to the project's conversation.

        Args:
            project_id: Project id
            messages: Messages in display order

        Returns:
            Updated conversation

        Raises:
            ValueError: If any message is still provisional
        """
        if any(m.is_provisional for m in messages):
            raise ValueError("Provisional messages cannot be persisted")

        conversation = await asyncio.to_thread(self._append_sync, project_id, messages)
        logger.debug(
            f"Appended {len(messages)} messages to {conversation.id} "
            f"(now {len(conversation.messages)})"
        )
        return conversation
