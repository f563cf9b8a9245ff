"""API router for v1 endpoints."""

from fastapi import APIRouter, Depends

from zeto.api import chat, conversations, documents
from zeto.api.deps import require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])

# Chat relay (single-shot and streaming)
router.include_router(chat.router, tags=["chat"])

# Uploads, PDF ingestion and document listing
router.include_router(documents.router, tags=["documents"])

# Per-project chat history
router.include_router(conversations.router, tags=["conversations"])
