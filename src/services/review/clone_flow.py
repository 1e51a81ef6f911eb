"""Clone: copy one client's document for another client, with edits."""

from __future__ import annotations

import logging

from core.exceptions import PreviewNotReady
from schemas.documents import SourceDocument
from schemas.intents import DocumentCloneIntent
from schemas.review import ActionStep, CloneFlow, DraftDocument
from services.review.client_resolver import ClientResolver
from services.review.document_resolver import DocumentResolver
from services.review.modifications import apply_clone


logger = logging.getLogger(__name__)


async def start_clone(
    intent: DocumentCloneIntent,
    documents: DocumentResolver,
    clients: ClientResolver,
    *,
    limit: int = 10,
) -> CloneFlow:
    flow = CloneFlow(intent=intent)
    return await search_clone_source(
        flow, intent.source_client, documents, clients, limit=limit
    )


async def search_clone_source(
    flow: CloneFlow,
    client_name: str,
    documents: DocumentResolver,
    clients: ClientResolver,
    *,
    limit: int = 10,
) -> CloneFlow:
    """(Re)search source documents, e.g. after the user picks a suggestion."""
    flow = flow.model_copy(
        update={
            "selection": "searching",
            "selected": None,
            "preview": None,
            "client_suggestions": [],
            "error": None,
        }
    )
    resolution = await documents.search(
        client_name, flow.intent.document_type, limit=limit
    )
    flow.candidates = resolution.documents
    flow.suggestions = resolution.suggestions
    flow.selection = resolution.selection

    if resolution.selected is not None:
        source = await documents.ensure_items(resolution.selected)
        return _with_preview(flow, source)

    if resolution.selection == "no_match" and not (
        resolution.suggestions and resolution.suggestions.alternatives
    ):
        suggested = await clients.suggest(client_name)
        flow.client_suggestions = list(suggested.suggestions)
    logger.info(
        "Clone source search: %s (%d candidates)",
        flow.selection,
        len(flow.candidates),
    )
    return flow


async def select_clone_source(
    flow: CloneFlow, document_id: str, documents: DocumentResolver
) -> CloneFlow:
    source = await documents.pick(flow.candidates, document_id)
    updated = flow.model_copy(update={"selection": "selected"})
    return _with_preview(updated, source)


def _with_preview(flow: CloneFlow, source: SourceDocument) -> CloneFlow:
    flow.selected = source
    flow.preview = apply_clone(source, flow.intent.modifications)
    return flow


def clone_draft(flow: CloneFlow) -> tuple[DraftDocument, list[ActionStep]]:
    """Turn the computed preview into an editable draft for the target client."""
    if flow.preview is None or flow.selected is None:
        raise PreviewNotReady("Clone preview is not ready")

    source_type = flow.selected.type
    document_type = flow.intent.document_type or (
        source_type if source_type in ("invoice", "estimate") else "invoice"
    )
    preview = flow.preview
    draft = DraftDocument(
        document_type=document_type,
        client=flow.intent.target_client,
        items=[item.model_copy() for item in preview.items],
        summary=flow.intent.summary,
        confidence=dict(flow.intent.confidence) or {"overall": 0.9},
        total_override=preview.total if preview.total != preview.subtotal else None,
        source_document_id=flow.selected.id,
    )
    return draft, [ActionStep(type="create_document", order=1)]
