"""Source document search with a single-candidate auto-select policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.exceptions import ResolutionFailure
from schemas.documents import (
    DocumentSearchFilter,
    DocumentType,
    SearchSuggestions,
    SourceDocument,
)
from schemas.review import SelectionState
from services.review.interfaces import DocumentRepository


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentResolution:
    documents: list[SourceDocument] = field(default_factory=list)
    suggestions: SearchSuggestions | None = None
    selection: SelectionState = "no_match"
    selected: SourceDocument | None = None


class DocumentResolver:
    """Find candidate source documents for a spoken client name.

    Zero results carry the repository's "did you mean" alternatives; one
    result is auto-selected; several require an explicit pick.
    """

    def __init__(self, documents: DocumentRepository) -> None:
        self._documents = documents

    async def search(
        self,
        client_name: str,
        document_type: DocumentType | None = None,
        limit: int = 10,
    ) -> DocumentResolution:
        result = await self._documents.search(
            DocumentSearchFilter(
                client_name=client_name, document_type=document_type, limit=limit
            )
        )
        documents = list(result.documents)
        logger.debug(
            "Document search for client returned %d result(s)", len(documents)
        )
        if not documents:
            return DocumentResolution(
                documents=[], suggestions=result.suggestions, selection="no_match"
            )
        if len(documents) == 1:
            return DocumentResolution(
                documents=documents,
                suggestions=result.suggestions,
                selection="auto",
                selected=documents[0],
            )
        return DocumentResolution(
            documents=documents,
            suggestions=result.suggestions,
            selection="needs_selection",
        )

    async def fetch(self, document_id: str) -> SourceDocument | None:
        return await self._documents.fetch(document_id)

    async def pick(
        self, candidates: list[SourceDocument], document_id: str
    ) -> SourceDocument:
        """Resolve an explicit user selection to a full document."""
        chosen = next((d for d in candidates if d.id == document_id), None)
        if chosen is None or not chosen.line_items:
            fetched = await self._documents.fetch(document_id)
            if fetched is None:
                raise ResolutionFailure(f"Document {document_id} was not found")
            return fetched
        return chosen

    async def ensure_items(self, document: SourceDocument) -> SourceDocument:
        """Search results may omit line items; load the full record if so."""
        if document.line_items:
            return document
        fetched = await self._documents.fetch(document.id)
        return fetched or document
