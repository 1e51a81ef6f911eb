"""CRUD operations for documents: fuzzy search, numbering and client merging."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidOperation, ResolutionFailure
from crud.clients import SqlClientRepository
from models.clients import Client
from models.documents import Document
from schemas.clients import ClientInfo
from schemas.documents import (
    ClientConflict,
    ClientDifference,
    ClientMergeDecision,
    DocumentSearchFilter,
    DocumentSearchResult,
    NameAlternative,
    SaveDocumentResult,
    SearchSuggestions,
    SourceDocument,
)
from schemas.review import DraftDocument
from services.review.similarity import (
    MATCH_THRESHOLD,
    SUGGESTION_THRESHOLD,
    calculate_similarity,
    normalize_name,
    rank_by_similarity,
)


logger = logging.getLogger(__name__)

NUMBER_PREFIXES: dict[str, str] = {
    "invoice": "INV",
    "estimate": "EST",
    "contract": "CON",
}
MAX_ALTERNATIVES = 5
CONTACT_FIELDS: tuple[str, ...] = ("email", "phone", "address")
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "line_items",
        "subtotal",
        "tax_rate",
        "tax_amount",
        "total",
        "status",
        "due_date",
    }
)


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def to_source_document(doc: Document) -> SourceDocument:
    return SourceDocument(
        id=str(doc.id),
        type=doc.document_type,
        title=doc.title,
        number=doc.document_number,
        client=doc.client_name,
        client_id=str(doc.client_id) if doc.client_id else None,
        client_email=doc.client_email,
        client_phone=doc.client_phone,
        amount=doc.total,
        tax_rate=doc.tax_rate,
        date=doc.created_at,
        status=doc.status,
        line_items=list(doc.line_items or []),
    )


def format_document_number(document_type: str, year: int, sequence: int) -> str:
    return f"{NUMBER_PREFIXES[document_type]}-{year}-{sequence:04d}"


def client_differences(existing: Client, new: ClientInfo) -> list[ClientDifference]:
    """Contact fields where the draft supplies a value the stored client lacks or
    contradicts. Blank draft values never count as a difference."""
    differences: list[ClientDifference] = []
    for field in CONTACT_FIELDS:
        new_value = (getattr(new, field) or "").strip()
        old_value = (getattr(existing, field) or "").strip()
        if not new_value:
            continue
        if field == "email":
            same = new_value.lower() == old_value.lower()
        else:
            same = new_value == old_value
        if not same:
            differences.append(
                ClientDifference(field=field, old=old_value or None, new=new_value)
            )
    return differences


class SqlDocumentRepository:
    """``DocumentRepository`` over the ``documents`` and ``clients`` tables."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.clients = SqlClientRepository(db)

    async def search(self, filters: DocumentSearchFilter) -> DocumentSearchResult:
        statement = select(Document).order_by(Document.created_at.desc())
        if filters.document_type:
            statement = statement.where(Document.document_type == filters.document_type)
        result = await self.db.execute(statement)
        documents = list(result.scalars().all())

        name = (filters.client_name or "").strip()
        if name:
            documents = [
                d
                for d in documents
                if calculate_similarity(name, d.client_name) >= MATCH_THRESHOLD
            ]
        found = [to_source_document(d) for d in documents[: filters.limit]]
        suggestions = await self.client_alternatives(name) if name else None
        logger.debug("Document search matched %d document(s)", len(found))
        return DocumentSearchResult(documents=found, suggestions=suggestions)

    async def client_alternatives(self, name: str) -> SearchSuggestions:
        """Other stored clients resembling ``name`` ("did you mean")."""
        wanted = normalize_name(name)
        clients = [
            c for c in await self.clients.list_all() if normalize_name(c.name) != wanted
        ]
        ranked = rank_by_similarity(
            clients,
            name,
            lambda c: c.name,
            min_similarity=SUGGESTION_THRESHOLD,
            limit=MAX_ALTERNATIVES,
        )
        return SearchSuggestions(
            searched_for=name,
            alternatives=[
                NameAlternative(
                    id=str(m.item.id),
                    name=m.item.name,
                    similarity=round(m.similarity, 4),
                )
                for m in ranked
            ],
        )

    async def get(self, document_id: str) -> Document | None:
        parsed = _parse_id(document_id)
        if parsed is None:
            return None
        return await self.db.get(Document, parsed)

    async def fetch(self, document_id: str) -> SourceDocument | None:
        doc = await self.get(document_id)
        return to_source_document(doc) if doc is not None else None

    async def next_document_number(
        self, document_type: str, year: int | None = None
    ) -> str:
        """One above the highest existing number for this prefix and year."""
        year = year or datetime.now(UTC).year
        prefix = f"{NUMBER_PREFIXES[document_type]}-{year}-"
        result = await self.db.execute(
            select(Document.document_number).where(
                Document.document_number.like(f"{prefix}%")
            )
        )
        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        highest = 0
        for number in result.scalars().all():
            match = pattern.match(number or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return format_document_number(document_type, year, highest + 1)

    async def create(
        self,
        draft: DraftDocument,
        *,
        client_decision: ClientMergeDecision | None = None,
    ) -> SaveDocumentResult:
        """Save ``draft``; report a conflict when the stored client differs.

        ``keep`` prints the stored contact details, ``use_new`` prints the
        draft's details without touching the stored client, and ``update``
        writes the draft's details to the stored client.
        """
        info = draft.client
        name = info.full_name
        if not name:
            raise InvalidOperation("A client name is required to save a document")

        client = await self.clients.find_by_name(name)
        snapshot = {field: getattr(info, field) for field in CONTACT_FIELDS}
        if client is None:
            client = await self.clients.create(info)
        else:
            differences = client_differences(client, info)
            if differences and client_decision is None:
                logger.info("Client conflict on save (%d field(s))", len(differences))
                return SaveDocumentResult(
                    client_conflict=ClientConflict(
                        existing_client={
                            "id": str(client.id),
                            "name": client.name,
                            "email": client.email,
                            "phone": client.phone,
                            "address": client.address,
                        },
                        new_data=info,
                        differences=differences,
                    )
                )
            for field in CONTACT_FIELDS:
                new_value = snapshot[field]
                if client_decision == "use_new" and new_value:
                    continue
                if client_decision == "update" and new_value:
                    setattr(client, field, new_value)
                    continue
                snapshot[field] = getattr(client, field)

        number = await self.next_document_number(draft.document_type)
        source_id = (
            _parse_id(draft.source_document_id) if draft.source_document_id else None
        )
        doc = Document(
            client_id=client.id,
            client_name=name,
            client_email=snapshot["email"],
            client_phone=snapshot["phone"],
            client_address=snapshot["address"],
            document_type=draft.document_type,
            document_number=number,
            title=f"{draft.document_type.capitalize()} for {name}",
            line_items=[item.model_dump(mode="json") for item in draft.items],
            subtotal=draft.subtotal,
            tax_rate=draft.tax_rate,
            tax_amount=draft.tax_amount,
            total=draft.total,
            due_date=draft.due_date,
            source_document_id=source_id,
        )
        self.db.add(doc)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(doc)
        logger.info("Saved %s %s", doc.document_type, doc.document_number)
        return SaveDocumentResult(
            document_id=str(doc.id),
            document_type=draft.document_type,
            document_number=doc.document_number,
            client_id=str(client.id),
        )

    async def update(self, document_id: str, patch: dict[str, Any]) -> None:
        doc = await self.get(document_id)
        if doc is None:
            raise ResolutionFailure(f"Document {document_id} was not found")
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidOperation(f"Unsupported document fields: {sorted(unknown)}")
        for field, value in patch.items():
            setattr(doc, field, value)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def delete(self, document_id: str) -> None:
        doc = await self.get(document_id)
        if doc is None:
            raise ResolutionFailure(f"Document {document_id} was not found")
        await self.db.delete(doc)
        await self.db.commit()
        logger.info("Deleted document %s", document_id)
