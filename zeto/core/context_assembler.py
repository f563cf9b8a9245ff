"""Prompt context assembly for document-grounded chat.

``assemble`` is a pure transformation over text that has already been
fetched; ``fetch_document_texts`` does the (concurrent) store lookups that
feed it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from zeto.core.errors import EmptyQuery, NoUsableContext
from zeto.core.logging import get_logger
from zeto.core.schemas_documents import (
    DocumentReference,
    ExtractedText,
    MissingDocument,
    MissingReason,
)

logger = get_logger(__name__)

GROUNDED_SYSTEM_PROMPT = (
    "You are the ZÉTO Workspace document assistant. "
    "Answer only from the documents provided below and cite the document name "
    "(and page or section when possible). "
    "If the information is not present in the documents, say so clearly."
)

UNGROUNDED_SYSTEM_PROMPT = (
    "You are the AI assistant for ZÉTO Workspace. "
    "Answer clearly and in a useful, structured way."
)


@dataclass(frozen=True)
class ContextLimits:
    """Bounds on the grounding payload."""

    max_docs: int = 5
    max_chars_per_doc: int = 6000


@dataclass(frozen=True)
class DocumentSection:
    """One document included in the prompt, text already truncated."""

    reference: DocumentReference
    text: str


@dataclass
class PromptContext:
    """Everything needed to call the completion API for one request."""

    query: str
    system_instruction: str
    sections: list[DocumentSection] = field(default_factory=list)
    missing: list[MissingDocument] = field(default_factory=list)

    @property
    def grounded(self) -> bool:
        return bool(self.sections)

    @property
    def used_ids(self) -> list[str]:
        return [section.reference.id for section in self.sections]

    def render_user_content(self) -> str:
        """Labelled document sections followed by the query."""
        if not self.sections:
            return self.query

        blocks = []
        for i, section in enumerate(self.sections, start=1):
            ref = section.reference
            blocks.append(
                f"--- Document {i}: {ref.display_name} ({ref.mime_type}) ---\n{section.text}"
            )
        documents = "\n\n".join(blocks)
        return f"Documents:\n{documents}\n\nQuestion:\n{self.query}"

    def to_messages(self) -> list[dict[str, str]]:
        """Chat Completions message list."""
        return [
            {"role": "system", "content": self.system_instruction},
            {"role": "user", "content": self.render_user_content()},
        ]


@dataclass
class FetchedTexts:
    """Result of the per-reference text lookups."""

    texts: dict[str, str] = field(default_factory=dict)
    rejected: dict[str, MissingReason] = field(default_factory=dict)
    # References rebuilt from stored rows, for refs sent as bare ids
    references: dict[str, DocumentReference] = field(default_factory=dict)

    def resolve(self, refs: list[DocumentReference]) -> list[DocumentReference]:
        """Replace bare references with their stored metadata, keeping order."""
        return [self.references.get(ref.id, ref) for ref in refs]


class DocumentTextSource(Protocol):
    """Anything that can return a stored document row by id."""

    async def get_document(self, document_id: str) -> dict[str, Any] | None: ...


def assemble(
    query: str,
    refs: list[DocumentReference],
    texts: Mapping[str, str],
    limits: ContextLimits,
    rejected: Mapping[str, MissingReason] | None = None,
) -> PromptContext:
    """
    Build the prompt context for a chat request.

    Args:
        query: Raw user message
        refs: Referenced documents, in the order the client selected them
        texts: Extracted text keyed by document id
        limits: Document count and per-document character bounds
        rejected: Documents refused by the lookup (e.g. project scope)

    Returns:
        PromptContext, grounded when refs is non-empty

    Raises:
        EmptyQuery: If the query is blank
        NoUsableContext: If refs were given but none has usable text
    """
    if not query or not query.strip():
        raise EmptyQuery()

    if not refs:
        return PromptContext(query=query, system_instruction=UNGROUNDED_SYSTEM_PROMPT)

    rejected = rejected or {}
    considered = refs[: limits.max_docs]
    sections: list[DocumentSection] = []
    missing: list[MissingDocument] = []

    for ref in considered:
        if ref.id in rejected:
            missing.append(MissingDocument(id=ref.id, reason=rejected[ref.id]))
            continue

        text = texts.get(ref.id)
        if text is None:
            missing.append(MissingDocument(id=ref.id, reason=MissingReason.NOT_FOUND))
            continue
        if not text.strip():
            missing.append(MissingDocument(id=ref.id, reason=MissingReason.EMPTY_TEXT))
            continue

        sections.append(DocumentSection(reference=ref, text=text[: limits.max_chars_per_doc]))

    for ref in refs[limits.max_docs :]:
        missing.append(MissingDocument(id=ref.id, reason=MissingReason.OVER_LIMIT))

    if not sections:
        raise NoUsableContext(missing=[m.model_dump(mode="json") for m in missing])

    if missing:
        logger.info(f"Excluded {len(missing)} of {len(refs)} documents from prompt")

    return PromptContext(
        query=query,
        system_instruction=GROUNDED_SYSTEM_PROMPT,
        sections=sections,
        missing=missing,
    )


def _scope_rejection(
    record: dict[str, Any],
    project_id: str | None,
    strict_project_lock: bool,
) -> MissingReason | None:
    """Apply the project lock policy to a stored document row."""
    if not project_id:
        return None

    owner = record.get("project_id")
    if strict_project_lock:
        if owner != project_id:
            return MissingReason.PROJECT_MISMATCH
    elif owner and owner != project_id:
        return MissingReason.PROJECT_MISMATCH
    return None


async def fetch_document_texts(
    store: DocumentTextSource | None,
    refs: list[DocumentReference],
    project_id: str | None = None,
    strict_project_lock: bool = False,
    max_docs: int | None = None,
) -> FetchedTexts:
    """
    Look up extracted text for each reference.

    Inline ``content`` is used as-is; other references are fetched from the
    store concurrently. Only the first ``max_docs`` references are looked up.

    Args:
        store: Document store (may be None when every ref carries content)
        refs: Document references
        project_id: Project the request is scoped to
        strict_project_lock: Project lock policy
        max_docs: Lookup bound, matching the assembler limit

    Returns:
        FetchedTexts with texts and scope rejections
    """
    result = FetchedTexts()
    considered = refs if max_docs is None else refs[:max_docs]

    to_fetch: list[DocumentReference] = []
    for ref in considered:
        if ref.content is not None:
            result.texts[ref.id] = ref.content
        else:
            to_fetch.append(ref)

    if not to_fetch or store is None:
        return result

    records = await asyncio.gather(*(store.get_document(ref.id) for ref in to_fetch))

    for ref, record in zip(to_fetch, records):
        if record is None:
            continue
        if ref.display_name == "document" and ref.locator_url is None:
            result.references[ref.id] = DocumentReference.from_record({"id": ref.id, **record})
        reason = _scope_rejection(record, project_id, strict_project_lock)
        if reason is not None:
            result.rejected[ref.id] = reason
            continue
        extracted = ExtractedText.from_record(ref.id, record)
        if extracted is not None:
            result.texts[ref.id] = extracted.text

    return result
