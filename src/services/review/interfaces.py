"""Collaborator protocols for the review workflow.

The orchestrator only talks to storage, delivery and parsing through these
protocols, so each host supplies adapters (SQL CRUD classes, HTTP dispatch,
an LLM parser) and tests supply ``AsyncMock`` objects.
"""

from __future__ import annotations

from typing import Any, Protocol

from core.exceptions import ParseFailure
from schemas.clients import ClientSuggestResult
from schemas.documents import (
    ClientMergeDecision,
    DeliveryMethod,
    DispatchResult,
    DocumentSearchFilter,
    DocumentSearchResult,
    SaveDocumentResult,
    SourceDocument,
)
from schemas.intents import InformationQuery, ParseResult
from schemas.queries import QueryResult
from schemas.review import DraftDocument, SessionSnapshot


class TranscriptParser(Protocol):
    """Turns a transcript into a tagged parse result."""

    async def parse(self, transcript: str) -> ParseResult | ParseFailure: ...


class DocumentRepository(Protocol):
    async def search(self, filters: DocumentSearchFilter) -> DocumentSearchResult:
        """Rank documents by client-name similarity, newest first."""
        ...

    async def fetch(self, document_id: str) -> SourceDocument | None: ...

    async def create(
        self,
        draft: DraftDocument,
        *,
        client_decision: ClientMergeDecision | None = None,
    ) -> SaveDocumentResult:
        """Persist a draft, or report a client conflict instead of saving."""
        ...

    async def update(self, document_id: str, patch: dict[str, Any]) -> None: ...

    async def delete(self, document_id: str) -> None: ...


class ClientRepository(Protocol):
    async def suggest(self, query: str, limit: int) -> ClientSuggestResult: ...

    async def update(self, client_id: str, patch: dict[str, Any]) -> None: ...


class EmailDispatchService(Protocol):
    async def send(
        self,
        document_id: str,
        document_type: str,
        method: DeliveryMethod,
        recipient: str,
    ) -> DispatchResult: ...


class SessionStore(Protocol):
    async def save(self, snapshot: SessionSnapshot) -> str:
        """Create the session when ``snapshot.id`` is empty, else update it."""
        ...

    async def load(self, session_id: str) -> SessionSnapshot | None: ...

    async def complete(
        self, session_id: str, document_id: str | None, document_type: str | None
    ) -> None: ...


class QueryExecutor(Protocol):
    async def execute(self, query: InformationQuery) -> QueryResult: ...
