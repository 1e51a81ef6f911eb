"""Transform: derive a new document from an existing one (e.g. estimate to invoice).

Split and schedule settings are validated on the intent and carried on the
flow unchanged; only conversion produces a draft here.
"""

from __future__ import annotations

import logging

from core.exceptions import PreviewNotReady
from schemas.clients import ClientInfo
from schemas.documents import SourceDocument
from schemas.intents import DocumentTransformIntent
from schemas.review import ActionStep, DraftDocument, TransformFlow
from services.review.client_resolver import ClientResolver
from services.review.document_resolver import DocumentResolver
from services.review.line_items import make_item, seed_item


logger = logging.getLogger(__name__)


async def start_transform(
    intent: DocumentTransformIntent,
    documents: DocumentResolver,
    clients: ClientResolver,
    *,
    limit: int = 10,
) -> TransformFlow:
    flow = TransformFlow(intent=intent)
    return await search_transform_client(
        flow, intent.source.client_name, documents, clients, limit=limit
    )


async def search_transform_client(
    flow: TransformFlow,
    client_name: str,
    documents: DocumentResolver,
    clients: ClientResolver,
    *,
    limit: int = 10,
) -> TransformFlow:
    """Find the source document; on a miss offer a client picker instead of failing."""
    flow = flow.model_copy(
        update={
            "search_query": client_name,
            "selection": "searching",
            "source": None,
            "client_suggestions": [],
            "error": None,
        }
    )
    resolution = await documents.search(
        client_name, flow.intent.source.document_type, limit=limit
    )
    flow.candidates = resolution.documents
    if not resolution.documents:
        flow.selection = "no_match"
        suggested = await clients.suggest(client_name)
        flow.client_suggestions = list(suggested.suggestions)
        logger.info(
            "Transform source not found; %d client suggestion(s)",
            len(flow.client_suggestions),
        )
        return flow

    wanted = flow.intent.source.document_number
    chosen = None
    if wanted:
        chosen = next(
            (d for d in resolution.documents if d.number and d.number == wanted), None
        )
    # Newest first, so the head of the list covers "last", "latest" and "recent".
    chosen = chosen or resolution.documents[0]
    flow.selection = "auto"
    return _with_source(flow, await documents.ensure_items(chosen))


async def select_transform_source(
    flow: TransformFlow, document_id: str, documents: DocumentResolver
) -> TransformFlow:
    source = await documents.pick(flow.candidates, document_id)
    updated = flow.model_copy(update={"selection": "selected", "error": None})
    return _with_source(updated, source)


def _with_source(flow: TransformFlow, source: SourceDocument) -> TransformFlow:
    flow.source = source
    conversion = flow.intent.conversion
    if conversion.enabled and source.type == conversion.target_type:
        flow.error = "Source document is already the target type"
    else:
        flow.error = None
    return flow


def transform_draft(flow: TransformFlow) -> tuple[DraftDocument, list[ActionStep]]:
    source = flow.source
    if source is None:
        raise PreviewNotReady("Select the source document first")
    if flow.error:
        raise PreviewNotReady(flow.error)

    conversion = flow.intent.conversion
    document_type = conversion.target_type if conversion.enabled else source.type

    items = [seed_item(raw) for raw in source.line_items]
    if not items and source.amount > 0:
        items = [make_item(source.title, quantity=1, unit="job", rate=source.amount)]

    target = flow.intent.target_client
    client = (
        target
        if target.full_name
        else ClientInfo(
            name=source.client, email=source.client_email, phone=source.client_phone
        )
    )
    draft = DraftDocument(
        document_type=document_type,
        client=client,
        items=items,
        tax_rate=source.tax_rate,
        summary=flow.intent.summary,
        confidence=dict(flow.intent.confidence) or {"overall": 0.9},
        source_document_id=source.id,
    )
    return draft, [ActionStep(type="create_document", order=1)]
