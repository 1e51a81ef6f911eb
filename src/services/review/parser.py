"""pydantic-ai transcript parser producing tagged intent models."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from core.config import get_settings
from core.exceptions import ParseFailure
from schemas.intents import (
    DocumentActionIntent,
    DocumentCloneIntent,
    DocumentMergeIntent,
    DocumentSendIntent,
    DocumentTransformIntent,
    InformationQueryIntent,
    ParseResult,
    coerce_parse_result,
)


logger = logging.getLogger(__name__)


REVIEW_PARSER_PROMPT = """
You turn a contractor's spoken or typed request into exactly one structured
intent. Choose the output that matches the request:

- document_action: create an invoice, estimate or contract from scratch, with
  client details, line items (description, quantity, unit, rate, total), an
  optional tax rate and the actions to take (create_document, send_email).
- information_query: a question about existing documents ("how much did Mike
  pay this year", "list unpaid invoices"). Use type list, sum, count or details.
- document_clone: "same as John's but for Mike": source_client, target_client
  and any item updates, removals, additions or a new total.
- document_merge: combine documents from several source clients into one.
- document_send: send an existing document; note the selector (last, latest,
  recent, first), the delivery method (email, sms, whatsapp) and any recipient.
- document_transform: convert an estimate to an invoice (or back), split it
  into parts or schedule it.

Never invent prices. Leave unknown fields empty. If the request is not about
documents at all, return the unparseable output with a short reason.
"""


class UnparseableTranscript(BaseModel):
    """Explicit failure output when no intent fits the transcript."""

    reason: str = Field(..., description="Short explanation for the user")


OUTPUT_TYPES: list[type[BaseModel]] = [
    DocumentActionIntent,
    InformationQueryIntent,
    DocumentCloneIntent,
    DocumentMergeIntent,
    DocumentSendIntent,
    DocumentTransformIntent,
    UnparseableTranscript,
]


def get_parser_model() -> Model | str:
    """Configured Gemini model, or the raw model string for pydantic-ai to infer."""
    settings = get_settings()
    name = settings.PARSER_MODEL
    if settings.GEMINI_API_KEY and name.startswith("google-gla:"):
        provider = GoogleProvider(api_key=settings.GEMINI_API_KEY)
        return GoogleModel(name.removeprefix("google-gla:"), provider=provider)
    return name


def create_review_agent(model: Model | str | None = None) -> Agent[None, Any]:
    return Agent(
        model or get_parser_model(),
        system_prompt=REVIEW_PARSER_PROMPT,
        output_type=OUTPUT_TYPES,
    )


class AgentTranscriptParser:
    """``TranscriptParser`` backed by a pydantic-ai agent.

    The agent is created on first use so importing this module does not need
    model credentials; tests pass a ``TestModel`` instead.
    """

    def __init__(self, model: Model | str | None = None) -> None:
        self._model = model
        self._agent: Agent[None, Any] | None = None

    async def parse(self, transcript: str) -> ParseResult | ParseFailure:
        text = (transcript or "").strip()
        if not text:
            return ParseFailure("Transcript is empty")
        if self._agent is None:
            self._agent = create_review_agent(self._model)
        try:
            result = await self._agent.run(text)
        except (AgentRunError, httpx.HTTPError) as exc:
            logger.warning("Transcript parsing failed: %s", type(exc).__name__)
            return ParseFailure("Failed to parse")

        output = result.output
        if isinstance(output, UnparseableTranscript):
            return ParseFailure(output.reason or "Failed to parse")
        return coerce_parse_result(output)
