"""Merge: combine documents from several clients into one new document."""

from __future__ import annotations

import asyncio
import logging

import httpx
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import PreviewNotReady, ResolutionFailure
from schemas.intents import DocumentMergeIntent
from schemas.review import ActionStep, DraftDocument, MergeFlow, MergeSlot
from services.review.document_resolver import DocumentResolution, DocumentResolver
from services.review.models import SlotResult
from services.review.modifications import combine_for_merge


logger = logging.getLogger(__name__)

SLOT_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    SQLAlchemyError,
    TimeoutError,
    ConnectionError,
)


async def _search_slot(
    documents: DocumentResolver,
    client_name: str,
    intent: DocumentMergeIntent,
    limit: int,
) -> SlotResult[DocumentResolution]:
    try:
        resolution = await documents.search(
            client_name, intent.document_type, limit=limit
        )
    except SLOT_ERRORS as exc:
        logger.warning("Merge search failed for one slot: %s", type(exc).__name__)
        return SlotResult(error=f"Search failed for {client_name}")
    return SlotResult(value=resolution)


def _apply_result(
    slot: MergeSlot, result: SlotResult[DocumentResolution]
) -> MergeSlot:
    if not result.ok or result.value is None:
        return slot.model_copy(
            update={"is_searching": False, "documents": [], "error": result.error}
        )
    resolution = result.value
    return slot.model_copy(
        update={
            "is_searching": False,
            "documents": resolution.documents,
            "suggestions": resolution.suggestions,
            "selected": resolution.selected,
            "error": None,
        }
    )


async def start_merge(
    intent: DocumentMergeIntent,
    documents: DocumentResolver,
    *,
    limit: int = 10,
) -> MergeFlow:
    """Search every source client concurrently; one slot per client."""
    flow = MergeFlow(
        intent=intent,
        slots=[
            MergeSlot(client_name=name, is_searching=True)
            for name in intent.source_clients
        ],
    )
    results = await asyncio.gather(
        *(
            _search_slot(documents, slot.client_name, intent, limit)
            for slot in flow.slots
        )
    )
    flow.slots = [
        _apply_result(slot, result) for slot, result in zip(flow.slots, results)
    ]
    return await _refresh_preview(flow, documents)


async def select_merge_source(
    flow: MergeFlow,
    slot_index: int,
    document_id: str,
    documents: DocumentResolver,
) -> MergeFlow:
    if not 0 <= slot_index < len(flow.slots):
        raise ResolutionFailure(f"Merge slot {slot_index} does not exist")
    slot = flow.slots[slot_index]
    chosen = await documents.pick(slot.documents, document_id)
    slots = list(flow.slots)
    slots[slot_index] = slot.model_copy(update={"selected": chosen, "error": None})
    updated = flow.model_copy(update={"slots": slots, "preview": None})
    return await _refresh_preview(updated, documents)


async def _refresh_preview(flow: MergeFlow, documents: DocumentResolver) -> MergeFlow:
    if not flow.all_selected:
        flow.preview = None
        return flow
    selections = []
    for idx, slot in enumerate(flow.slots):
        assert slot.selected is not None
        full = await documents.ensure_items(slot.selected)
        if full is not slot.selected:
            flow.slots[idx] = slot.model_copy(update={"selected": full})
        selections.append(full)
    flow.preview = combine_for_merge(selections)
    logger.info(
        "Merge preview ready: %d items from %d documents",
        len(flow.preview.items),
        len(selections),
    )
    return flow


def merge_draft(flow: MergeFlow) -> tuple[DraftDocument, list[ActionStep]]:
    if flow.preview is None:
        raise PreviewNotReady("Select a document for every client before merging")
    draft = DraftDocument(
        document_type=flow.intent.document_type or "invoice",
        client=flow.intent.target_client,
        items=[item.model_copy() for item in flow.preview.items],
        summary=flow.intent.summary,
        confidence=dict(flow.intent.confidence) or {"overall": 0.9},
    )
    return draft, [ActionStep(type="create_document", order=1)]
