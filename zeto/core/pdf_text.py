"""PDF text extraction for document grounding.

Uses PyMuPDF (fitz) for native text extraction. Scanned PDFs without a text
layer yield no text and are reported as an extraction error.
"""

from dataclasses import dataclass

import fitz

from zeto.core.errors import ExtractionError
from zeto.core.logging import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"

# Page limit for a single extraction
MAX_PAGES = 200


@dataclass
class PdfTextResult:
    """Result of text extraction from a PDF."""

    text: str
    page_count: int
    truncated: bool = False


def extract_pdf_text(
    file_bytes: bytes,
    filename: str = "upload.pdf",
    max_bytes: int | None = None,
    max_pages: int = MAX_PAGES,
) -> PdfTextResult:
    """
    Extract plain text from a PDF.

    Args:
        file_bytes: Raw PDF content
        filename: Original filename (for logging)
        max_bytes: Optional size limit
        max_pages: Pages beyond this are ignored

    Returns:
        PdfTextResult with page texts joined by blank lines

    Raises:
        ExtractionError: If the payload is not a readable PDF or has no text
    """
    if not file_bytes:
        raise ExtractionError("Missing PDF file.", status_code=400)

    if max_bytes is not None and len(file_bytes) > max_bytes:
        raise ExtractionError(
            f"PDF is too large ({len(file_bytes)} bytes, limit {max_bytes}).",
            status_code=413,
        )

    if not file_bytes.startswith(PDF_MAGIC):
        raise ExtractionError("Payload is not a PDF document.", status_code=400)

    try:
        doc = fitz.open(stream=file_bytes, filetype="pdf")
    except Exception as e:
        raise ExtractionError(f"Unable to open PDF: {e}") from e

    try:
        page_count = len(doc)
        truncated = page_count > max_pages
        pages = []
        for page_num in range(min(page_count, max_pages)):
            page_text = doc[page_num].get_text("text").strip()
            if page_text:
                pages.append(page_text)
    finally:
        doc.close()

    text = "\n\n".join(pages).strip()
    if not text:
        raise ExtractionError("No text could be extracted from the PDF.")

    logger.info(
        f"Extracted {len(text)} chars from {filename} "
        f"({page_count} pages{', truncated' if truncated else ''})"
    )
    return PdfTextResult(text=text, page_count=page_count, truncated=truncated)
