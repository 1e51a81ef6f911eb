"""Send: deliver an existing document, optionally after small edits."""

from __future__ import annotations

import logging
from typing import Any

from core.exceptions import PreviewNotReady
from schemas.clients import ClientInfo
from schemas.documents import SourceDocument
from schemas.intents import DocumentSendIntent
from schemas.review import (
    ActionDetails,
    ActionStep,
    DraftDocument,
    ResolvedRecipient,
    SendFlow,
)
from services.review.client_resolver import ClientResolver
from services.review.document_resolver import DocumentResolver
from services.review.interfaces import ClientRepository, DocumentRepository
from services.review.line_items import make_item, seed_item
from services.review.models import ExecutionContext


logger = logging.getLogger(__name__)


def pick_by_selector(
    candidates: list[SourceDocument], selector: str | None
) -> SourceDocument | None:
    """Candidates arrive newest first: ``first`` is the oldest, others the newest."""
    if not candidates or selector is None:
        return None
    return candidates[-1] if selector == "first" else candidates[0]


async def start_send(
    intent: DocumentSendIntent,
    documents: DocumentResolver,
    clients: ClientResolver,
    *,
    limit: int = 5,
) -> SendFlow:
    flow = SendFlow(intent=intent)
    resolution = await documents.search(
        intent.client_name, intent.document_type, limit=limit
    )
    flow.candidates = resolution.documents
    flow.suggestions = resolution.suggestions
    flow.selection = resolution.selection

    chosen = pick_by_selector(resolution.documents, intent.selector)
    if chosen is not None:
        flow.selection = "auto"
    else:
        chosen = resolution.selected
    if chosen is None:
        logger.info("Send source search: %s", flow.selection)
        return flow
    return await _with_document(flow, chosen, documents, clients)


async def select_send_document(
    flow: SendFlow,
    document_id: str,
    documents: DocumentResolver,
    clients: ClientResolver,
) -> SendFlow:
    chosen = await documents.pick(flow.candidates, document_id)
    updated = flow.model_copy(update={"selection": "selected", "error": None})
    return await _with_document(updated, chosen, documents, clients)


async def _with_document(
    flow: SendFlow,
    document: SourceDocument,
    documents: DocumentResolver,
    clients: ClientResolver,
) -> SendFlow:
    flow.selected = await documents.ensure_items(document)
    flow.recipient = await resolve_recipient(flow.intent, flow.selected, clients)
    return flow


async def resolve_recipient(
    intent: DocumentSendIntent,
    document: SourceDocument,
    clients: ClientResolver,
) -> ResolvedRecipient:
    """Explicit contact, then a named recipient client, then the document's client."""
    explicit = intent.recipient
    if explicit.email or explicit.phone:
        return ResolvedRecipient(
            email=explicit.email,
            phone=explicit.phone,
            client_name=explicit.client_name,
            source="explicit",
        )
    if explicit.client_name:
        match = await clients.lookup(explicit.client_name)
        if match is not None:
            return ResolvedRecipient(
                email=match.client.email,
                phone=match.client.phone,
                client_id=match.client.id,
                client_name=match.client.name,
                source="recipient_client",
            )
        logger.info("Named recipient not found; using the document's client")
    return ResolvedRecipient(
        email=document.client_email,
        phone=document.client_phone,
        client_id=document.client_id,
        client_name=document.client,
        source="document",
    )


def send_draft(flow: SendFlow) -> tuple[DraftDocument, list[ActionStep]]:
    """Editable copy of the chosen document plus a single send step."""
    document = flow.selected
    if document is None:
        raise PreviewNotReady("Select the document to send first")

    items = [seed_item(raw) for raw in document.line_items]
    if not items and document.amount > 0:
        items = [
            make_item(document.title, quantity=1, unit="job", rate=document.amount)
        ]

    draft = DraftDocument(
        document_type=document.type,
        client=ClientInfo(
            name=document.client,
            email=document.client_email,
            phone=document.client_phone,
        ),
        items=items,
        tax_rate=document.tax_rate,
        summary=flow.intent.summary,
        confidence=dict(flow.intent.confidence),
        source_document_id=document.id,
    )
    method = flow.intent.delivery_method
    # The document's own contact stays on the draft, where the user can edit it.
    recipient = None
    if flow.recipient.source in ("explicit", "recipient_client"):
        recipient = (
            flow.recipient.email if method == "email" else flow.recipient.phone
        )
    step = ActionStep(
        type="send_email",
        order=1,
        details=ActionDetails(delivery_method=method, recipient=recipient),
    )
    return draft, [step]


def send_context(flow: SendFlow) -> ExecutionContext:
    """Seed execution with the existing document so nothing is saved twice."""
    if flow.selected is None:
        return ExecutionContext()
    return ExecutionContext(
        document_id=flow.selected.id,
        document_type=flow.selected.type,
        document_number=flow.selected.number,
    )


async def persist_send_edits(
    flow: SendFlow,
    draft: DraftDocument,
    documents: DocumentRepository,
    clients: ClientRepository,
) -> None:
    """Write contact and item edits back before the document is sent."""
    document = flow.selected
    if document is None:
        return

    contact: dict[str, Any] = {}
    if draft.client.email and draft.client.email != document.client_email:
        contact["email"] = draft.client.email
    if draft.client.phone and draft.client.phone != document.client_phone:
        contact["phone"] = draft.client.phone
    if contact and document.client_id:
        await clients.update(document.client_id, contact)
        logger.info("Updated client contact before send")

    if flow.items_edited:
        await documents.update(
            document.id,
            {
                "line_items": [item.model_dump(mode="json") for item in draft.items],
                "subtotal": draft.subtotal,
                "tax_amount": draft.tax_amount,
                "total": draft.total,
            },
        )
        logger.info("Saved edited line items for document %s", document.id)
