"""CRUD operations for clients, including fuzzy name suggestions."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidOperation, ResolutionFailure
from models.clients import Client
from schemas.clients import ClientInfo, ClientSuggestion, ClientSuggestResult
from services.review.similarity import (
    SUGGESTION_THRESHOLD,
    normalize_name,
    rank_by_similarity,
)


logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "email", "phone", "address"})


def _parse_id(value: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def to_suggestion(client: Client, similarity: float) -> ClientSuggestion:
    return ClientSuggestion(
        id=str(client.id),
        name=client.name,
        email=client.email,
        phone=client.phone,
        address=client.address,
        similarity=round(min(max(similarity, 0.0), 1.0), 4),
    )


class SqlClientRepository:
    """``ClientRepository`` over the ``clients`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_all(self) -> list[Client]:
        result = await self.db.execute(select(Client).order_by(Client.name))
        return list(result.scalars().all())

    async def get(self, client_id: str | uuid.UUID) -> Client | None:
        parsed = _parse_id(client_id)
        if parsed is None:
            return None
        return await self.db.get(Client, parsed)

    async def find_by_name(self, name: str) -> Client | None:
        """Stored client whose canonical name equals ``name``'s."""
        wanted = normalize_name(name)
        if not wanted:
            return None
        for client in await self.list_all():
            if normalize_name(client.name) == wanted:
                return client
        return None

    async def suggest(self, query: str, limit: int) -> ClientSuggestResult:
        """Rank stored clients by name similarity.

        A canonical-name hit is returned as ``exact_match`` and left out of the
        suggestion list.
        """
        clients = await self.list_all()
        wanted = normalize_name(query)
        exact = next((c for c in clients if normalize_name(c.name) == wanted), None)
        ranked = rank_by_similarity(
            (c for c in clients if c is not exact),
            query,
            lambda c: c.name,
            min_similarity=SUGGESTION_THRESHOLD,
            limit=limit,
        )
        return ClientSuggestResult(
            suggestions=[to_suggestion(m.item, m.similarity) for m in ranked],
            exact_match=to_suggestion(exact, 1.0) if exact is not None else None,
        )

    async def create(self, info: ClientInfo) -> Client:
        client = Client(
            name=info.full_name,
            email=info.email,
            phone=info.phone,
            address=info.address,
        )
        self.db.add(client)
        await self.db.flush()
        logger.info("Created client %s", client.id)
        return client

    async def update(self, client_id: str, patch: dict[str, Any]) -> None:
        client = await self.get(client_id)
        if client is None:
            raise ResolutionFailure(f"Client {client_id} was not found")
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidOperation(f"Unsupported client fields: {sorted(unknown)}")
        for field, value in patch.items():
            setattr(client, field, value)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("Updated client %s (%s)", client_id, ", ".join(sorted(patch)))
