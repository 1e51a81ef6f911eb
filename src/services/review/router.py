"""Classify a parse result into a review flow and run its initial resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, assert_never

import httpx
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import ParseFailure
from schemas.intents import (
    DocumentActionIntent,
    DocumentCloneIntent,
    DocumentMergeIntent,
    DocumentSendIntent,
    DocumentTransformIntent,
    InformationQueryIntent,
    ParsedAction,
    ParseResult,
    coerce_parse_result,
)
from schemas.review import (
    ActionDetails,
    ActionStep,
    DocumentActionFlow,
    DraftDocument,
    FlowState,
    QueryFlow,
)
from services.review.client_resolver import ClientResolver
from services.review.clone_flow import start_clone
from services.review.document_resolver import DocumentResolver
from services.review.interfaces import QueryExecutor
from services.review.line_items import from_parsed
from services.review.merge_flow import start_merge
from services.review.send_flow import start_send
from services.review.transform_flow import start_transform


logger = logging.getLogger(__name__)

FALLBACK_ACTION_ID = "fallback-create"
CONFIDENCE_KEYS: tuple[str, ...] = ("overall", "client", "items", "actions")
_DETAIL_FIELDS = set(ActionDetails.model_fields)
_DELIVERY_METHODS = {"email", "sms", "whatsapp"}

QUERY_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    SQLAlchemyError,
    TimeoutError,
    ConnectionError,
)


@dataclass(slots=True)
class SearchLimits:
    clone: int = 10
    send: int = 5


def normalize_tax_rate(tax_rate: float | None) -> float | None:
    """Percent value; fractions such as 0.08 are scaled to 8."""
    if tax_rate is None:
        return None
    if 0 < tax_rate <= 1:
        return round(tax_rate * 100, 4)
    return tax_rate


def _action_step(action: ParsedAction, order: int) -> ActionStep:
    details = {k: v for k, v in action.details.items() if k in _DETAIL_FIELDS}
    if details.get("delivery_method") not in _DELIVERY_METHODS:
        details.pop("delivery_method", None)
    return ActionStep(
        type=action.type, order=order, details=ActionDetails.model_validate(details)
    )


def build_action_draft(
    flow: DocumentActionFlow,
) -> tuple[DraftDocument, list[ActionStep]]:
    """Editable draft and action list for a direct document request.

    A degraded flow (no intent) yields an empty draft whose summary is the
    parse error and a single default ``create_document`` step.
    """
    intent = flow.intent
    if intent is None:
        message = flow.parse_error or "Failed to parse"
        draft = DraftDocument(
            summary=message, confidence={key: 0.0 for key in CONFIDENCE_KEYS}
        )
        fallback = ActionStep(id=FALLBACK_ACTION_ID, type="create_document", order=1)
        return draft, [fallback]

    confidence = {key: 0.0 for key in CONFIDENCE_KEYS}
    confidence.update(intent.confidence)
    draft = DraftDocument(
        document_type=intent.document_type or "invoice",
        client=intent.client,
        items=[from_parsed(item) for item in intent.items],
        tax_rate=normalize_tax_rate(intent.tax_rate),
        due_date=intent.due_date,
        summary=intent.summary,
        confidence=confidence,
    )
    actions = [
        _action_step(action, order) for order, action in enumerate(intent.actions, 1)
    ]
    if not actions:
        actions = [ActionStep(type="create_document", order=1)]
    return draft, actions


class IntentRouter:
    """Dispatch a parse result to the matching flow's initial resolution."""

    def __init__(
        self,
        documents: DocumentResolver,
        clients: ClientResolver,
        queries: QueryExecutor,
        limits: SearchLimits | None = None,
    ) -> None:
        self._documents = documents
        self._clients = clients
        self._queries = queries
        self._limits = limits or SearchLimits()

    async def route(
        self, parse_result: ParseResult | ParseFailure | dict[str, Any]
    ) -> FlowState:
        if isinstance(parse_result, dict):
            parse_result = coerce_parse_result(parse_result)
        if isinstance(parse_result, ParseFailure):
            logger.info("Routing degraded document flow: %s", parse_result.message)
            return DocumentActionFlow(parse_error=parse_result.message)
        if not isinstance(parse_result, BaseModel):
            return DocumentActionFlow(parse_error="Failed to parse")

        logger.info("Routing %s", parse_result.intent_type)
        match parse_result:
            case DocumentActionIntent():
                return DocumentActionFlow(intent=parse_result)
            case InformationQueryIntent():
                return await self._run_query(parse_result)
            case DocumentCloneIntent():
                return await start_clone(
                    parse_result,
                    self._documents,
                    self._clients,
                    limit=self._limits.clone,
                )
            case DocumentMergeIntent():
                return await start_merge(
                    parse_result, self._documents, limit=self._limits.clone
                )
            case DocumentSendIntent():
                return await start_send(
                    parse_result,
                    self._documents,
                    self._clients,
                    limit=self._limits.send,
                )
            case DocumentTransformIntent():
                return await start_transform(
                    parse_result,
                    self._documents,
                    self._clients,
                    limit=self._limits.clone,
                )
            case _:
                assert_never(parse_result)

    async def _run_query(self, intent: InformationQueryIntent) -> QueryFlow:
        try:
            result = await self._queries.execute(intent.query)
        except QUERY_ERRORS as exc:
            logger.warning("Information query failed: %s", type(exc).__name__)
            return QueryFlow(intent=intent, error="Could not run this query")
        return QueryFlow(intent=intent, result=result)
