"""Database operations for project documents (the ``files`` table)."""

import asyncio
from datetime import datetime, timezone
from typing import Any

from zeto.core.logging import get_logger
from zeto.db.supabase_client import SupabaseDatabase

logger = get_logger(__name__)

TABLE = "files"


class DocumentRepository:
    """Reads and writes document rows, including their extracted text."""

    def __init__(self, database: SupabaseDatabase):
        self._db = database

    def _get_document_sync(self, document_id: str) -> dict[str, Any] | None:
        response = (
            self._db.client.table(TABLE).select("*").eq("id", document_id).limit(1).execute()
        )
        return response.data[0] if response.data else None

    async def get_document(self, document_id: str) -> dict[str, Any] | None:
        """Get a document row by id, or None."""
        return await asyncio.to_thread(self._get_document_sync, document_id)

    async def create_document(self, record: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new document row.

        Raises:
            ValueError: If the insert returned nothing
        """

        def _insert() -> Any:
            return self._db.client.table(TABLE).insert(record).execute()

        response = await asyncio.to_thread(_insert)
        if not response.data:
            raise ValueError("Failed to create document record")

        doc = response.data[0]
        logger.info(f"Created document {doc['id']}: {doc.get('file_name')}")
        return doc

    async def set_extracted_text(
        self,
        file_id: str,
        file_name: str,
        text: str,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Upsert the extracted text onto a document row.

        Creates the row when it does not exist yet. The project binding is
        only written when given.

        Returns:
            The stored row (or the payload if the store echoed nothing)
        """
        now = datetime.now(timezone.utc).isoformat()
        row: dict[str, Any] = {
            "id": file_id,
            "file_name": file_name,
            "extracted_text": text,
            "extracted_at": now,
            "updated_at": now,
        }
        if project_id:
            row["project_id"] = project_id

        def _upsert() -> Any:
            return self._db.client.table(TABLE).upsert(row, on_conflict="id").execute()

        response = await asyncio.to_thread(_upsert)
        logger.info(f"Stored {len(text)} extracted chars on document {file_id}")
        return response.data[0] if response.data else row

    async def list_project_documents(
        self, project_id: str, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """List one page of a project's documents, newest first."""

        def _list() -> Any:
            return (
                self._db.client.table(TABLE)
                .select("id, file_name, mime_type, url, project_id, storage_path, created_at")
                .eq("project_id", project_id)
                .order("created_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )

        response = await asyncio.to_thread(_list)
        return response.data or []

    async def delete_document(self, document_id: str) -> None:
        def _delete() -> Any:
            return self._db.client.table(TABLE).delete().eq("id", document_id).execute()

        await asyncio.to_thread(_delete)
        logger.info(f"Deleted document {document_id}")
