"""Fuzzy client lookup and debounced autocomplete."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import httpx
from sqlalchemy.exc import SQLAlchemyError

from core.debounce import Debouncer
from schemas.clients import ClientLookup, ClientSuggestion, ClientSuggestResult
from services.review.interfaces import ClientRepository
from services.review.similarity import (
    CONFIDENT_THRESHOLD,
    MATCH_THRESHOLD,
    calculate_similarity,
)


logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

# Failures the resolver treats as "no suggestions": suggestions are advisory.
ADVISORY_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    SQLAlchemyError,
    TimeoutError,
    ConnectionError,
)


class ClientResolver:
    """Suggest and look up clients by spoken name."""

    def __init__(self, clients: ClientRepository, *, default_limit: int = 5) -> None:
        self._clients = clients
        self._default_limit = default_limit

    async def suggest(
        self, query: str, limit: int | None = None
    ) -> ClientSuggestResult:
        """Ranked suggestions for ``query``; short queries return nothing."""
        text = (query or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            return ClientSuggestResult()
        try:
            return await self._clients.suggest(text, limit or self._default_limit)
        except ADVISORY_ERRORS as exc:
            logger.warning(
                "Client suggestion lookup failed: %s", type(exc).__name__
            )
            return ClientSuggestResult()

    async def lookup(self, name: str) -> ClientLookup | None:
        """Best single match, or None when nothing scores at least 0.5."""
        result = await self.suggest(name)
        candidates = list(result.suggestions)
        if result.exact_match is not None and all(
            c.id != result.exact_match.id for c in candidates
        ):
            candidates.insert(0, result.exact_match)
        if not candidates:
            return None

        scored = sorted(
            (
                (max(c.similarity, calculate_similarity(name, c.name)), c)
                for c in candidates
            ),
            key=lambda pair: pair[0],
            reverse=True,
        )
        best_score, best = scored[0]
        if best_score < MATCH_THRESHOLD:
            return None
        return ClientLookup(
            client=best,
            similarity=best_score,
            needs_confirmation=best_score < CONFIDENT_THRESHOLD,
            alternatives=[c for _, c in scored[1:]],
        )


class ClientAutocomplete:
    """Debounced, last-write-wins suggestion list for a client name field."""

    def __init__(
        self,
        resolver: ClientResolver,
        *,
        delay: float,
        limit: int = 5,
        on_exact_match: Callable[[ClientSuggestion], Awaitable[None]] | None = None,
    ) -> None:
        self._resolver = resolver
        self._limit = limit
        self._on_exact_match = on_exact_match
        self._query = ""
        self._generation = 0
        self.suggestions: list[ClientSuggestion] = []
        self.exact_match: ClientSuggestion | None = None
        self._debouncer = Debouncer(delay, self._run, name="client-suggest")

    @property
    def query(self) -> str:
        return self._query

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def request(self, query: str) -> None:
        """Record the latest keystroke and restart the debounce timer."""
        self._query = query
        self._generation += 1
        if len(query.strip()) < MIN_QUERY_LENGTH:
            self._debouncer.cancel()
            self.clear()
            return
        self._debouncer.trigger()

    def clear(self) -> None:
        self.suggestions = []
        self.exact_match = None

    async def flush(self) -> None:
        await self._debouncer.flush()

    async def aclose(self) -> None:
        self._generation += 1
        await self._debouncer.aclose()

    async def _run(self) -> None:
        generation = self._generation
        result = await self._resolver.suggest(self._query, self._limit)
        if generation != self._generation:
            # A newer keystroke superseded this request.
            return
        if result.exact_match is not None:
            self.clear()
            self.exact_match = result.exact_match
            if self._on_exact_match is not None:
                await self._on_exact_match(result.exact_match)
            return
        self.suggestions = list(result.suggestions)
        self.exact_match = None
