"""API endpoints for project documents: upload, PDF text ingestion, listing."""

from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile

from zeto.api.deps import get_document_repository, get_object_store
from zeto.core.config import Settings, get_settings
from zeto.core.errors import ExtractionError
from zeto.core.logging import get_logger
from zeto.core.pdf_text import extract_pdf_text
from zeto.core.schemas_documents import DocumentPage, DocumentReference, ExtractPdfResponse
from zeto.db.documents import DocumentRepository
from zeto.db.storage import ObjectStore

logger = get_logger(__name__)

router = APIRouter()

PREVIEW_CHARS = 200


@router.post("/extract-pdf")
@router.post("/extractPdf", include_in_schema=False)
async def extract_pdf(
    request: Request,
    file_id: str = Query(default="", alias="fileId"),
    file_name: str = Query(default="", alias="fileName"),
    project_id: str = Query(default="", alias="projectId"),
    documents: DocumentRepository = Depends(get_document_repository),
    settings: Settings = Depends(get_settings),
):
    """
    Extract text from a raw PDF body and store it on the document record.

    The record is upserted, so ingestion may run before or after the
    document row is created.

    Raises:
        HTTPException 400: If fileId is missing
        ExtractionError: 400 for an empty body, 422 if no text was found
    """
    file_id = file_id.strip()
    file_name = file_name.strip() or "upload.pdf"
    project_id = project_id.strip()

    if not file_id:
        raise HTTPException(status_code=400, detail="fileId query parameter is required")

    raw = await request.body()
    result = extract_pdf_text(raw, filename=file_name, max_bytes=settings.MAX_PDF_BYTES)

    await documents.set_extracted_text(
        file_id=file_id,
        file_name=file_name,
        text=result.text,
        project_id=project_id or None,
    )

    response = ExtractPdfResponse(
        file_id=file_id,
        text_preview=result.text[:PREVIEW_CHARS],
        meta={
            "fileName": file_name,
            "projectId": project_id or None,
            "pageCount": result.page_count,
            "truncated": result.truncated,
        },
    )
    return response.model_dump(by_alias=True)


@router.post("/files/upload")
async def upload_file(
    file: UploadFile = File(...),
    project_id: str = Form(..., alias="projectId"),
    documents: DocumentRepository = Depends(get_document_repository),
    storage: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_settings),
) -> DocumentReference:
    """
    Upload a file to the project's storage area and register it.

    PDFs get their text extracted right away; an extraction failure leaves
    the document without text (it can be re-ingested via /extract-pdf).
    """
    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="No file received")

    file_id = str(uuid4())
    file_name = file.filename or "unnamed"
    mime_type = file.content_type or "application/octet-stream"
    storage_path = f"uploads/{project_id}/{file_id}_{file_name}"

    try:
        await storage.upload(storage_path, file_bytes, content_type=mime_type)
    except Exception as e:
        logger.error(f"Failed to upload to storage: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload file to storage")

    record = {
        "id": file_id,
        "project_id": project_id,
        "file_name": file_name,
        "mime_type": mime_type,
        "size": len(file_bytes),
        "storage_path": storage_path,
    }

    if mime_type == "application/pdf" or file_name.lower().endswith(".pdf"):
        try:
            extracted = extract_pdf_text(file_bytes, filename=file_name, max_bytes=settings.MAX_PDF_BYTES)
            record["extracted_text"] = extracted.text
        except ExtractionError as e:
            logger.warning(f"PDF text extraction skipped for {file_name}: {e.message}")

    doc = await documents.create_document(record)
    url = await storage.signed_url(storage_path, settings.SIGNED_URL_TTL_SECONDS)

    return DocumentReference.from_record({**doc, "url": url})


@router.get("/projects/{project_id}/documents")
async def list_documents(
    project_id: str,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    documents: DocumentRepository = Depends(get_document_repository),
) -> DocumentPage:
    """List one page of a project's documents."""
    rows = await documents.list_project_documents(project_id, limit=limit, offset=offset)
    return DocumentPage(
        documents=[DocumentReference.from_record(row) for row in rows],
        limit=limit,
        offset=offset,
        next_offset=offset + limit if len(rows) == limit else None,
    )


@router.delete("/files/{file_id}")
async def delete_file(
    file_id: str,
    documents: DocumentRepository = Depends(get_document_repository),
    storage: ObjectStore = Depends(get_object_store),
) -> dict:
    """Delete a document's blob and its record."""
    doc = await documents.get_document(file_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")

    if doc.get("storage_path"):
        await storage.delete(doc["storage_path"])
    await documents.delete_document(file_id)

    return {"deleted": True, "id": file_id}
