"""Review orchestrator dependency wired to the SQL, HTTP and agent adapters."""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from crud.clients import SqlClientRepository
from crud.documents import SqlDocumentRepository
from crud.queries import SqlQueryExecutor
from crud.review_sessions import SqlSessionStore
from dependencies.db import DbSession
from services.dispatch import HttpDispatchService, get_dispatch_service
from services.review.interfaces import TranscriptParser
from services.review.orchestrator import ReviewOrchestrator
from services.review.parser import AgentTranscriptParser
from services.review.router import SearchLimits


@lru_cache
def get_transcript_parser() -> TranscriptParser:
    return AgentTranscriptParser()


def get_dispatcher() -> HttpDispatchService:
    return get_dispatch_service()


async def get_review_orchestrator(
    db: DbSession,
    parser: Annotated[TranscriptParser, Depends(get_transcript_parser)],
    dispatcher: Annotated[HttpDispatchService, Depends(get_dispatcher)],
) -> AsyncIterator[ReviewOrchestrator]:
    """One orchestrator per request; timers are stopped when the request ends."""
    settings = get_settings()
    orchestrator = ReviewOrchestrator(
        documents=SqlDocumentRepository(db),
        clients=SqlClientRepository(db),
        dispatcher=dispatcher,
        sessions=SqlSessionStore(db),
        queries=SqlQueryExecutor(db),
        parser=parser,
        limits=SearchLimits(
            clone=settings.CLONE_SEARCH_LIMIT, send=settings.SEND_SEARCH_LIMIT
        ),
        autosave_debounce_seconds=settings.AUTOSAVE_DEBOUNCE_SECONDS,
        suggest_debounce_seconds=settings.CLIENT_SUGGEST_DEBOUNCE_SECONDS,
        suggest_limit=settings.CLIENT_SUGGEST_LIMIT,
    )
    try:
        yield orchestrator
    finally:
        await orchestrator.aclose()


Orchestrator = Annotated[ReviewOrchestrator, Depends(get_review_orchestrator)]
