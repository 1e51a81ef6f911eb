"""Parse result schemas: one model per intent, discriminated on ``intent_type``."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from core.exceptions import ParseFailure
from schemas.clients import ClientInfo
from schemas.documents import DeliveryMethod, Dimensions, DocumentType


IntentType = Literal[
    "document_action",
    "information_query",
    "document_clone",
    "document_merge",
    "document_send",
    "document_transform",
]


class ParsedLineItem(BaseModel):
    """Line item as emitted by the parser; every numeric field may be absent."""

    description: str = ""
    quantity: float | None = None
    unit: str | None = None
    rate: float | None = None
    total: float | None = None
    measurement_type: str | None = None
    dimensions: Dimensions | None = None


class ParsedAction(BaseModel):
    type: Literal["create_document", "send_email"]
    details: dict[str, Any] = Field(default_factory=dict)


class DocumentActionIntent(BaseModel):
    intent_type: Literal["document_action"] = "document_action"
    document_type: DocumentType | None = None
    client: ClientInfo = Field(default_factory=ClientInfo)
    items: list[ParsedLineItem] = Field(default_factory=list)
    tax_rate: float | None = None
    due_date: str | None = None
    actions: list[ParsedAction] = Field(default_factory=list)
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


class DateRange(BaseModel):
    start: str | None = None
    end: str | None = None
    period: str | None = None


class InformationQuery(BaseModel):
    type: Literal["list", "sum", "count", "details"] = "list"
    document_types: list[DocumentType] = Field(default_factory=list)
    client_name: str | None = None
    status: str | None = None
    date_range: DateRange = Field(default_factory=DateRange)
    sort_by: str | None = None
    limit: int | None = Field(None, ge=1)


class InformationQueryIntent(BaseModel):
    intent_type: Literal["information_query"] = "information_query"
    query: InformationQuery = Field(default_factory=InformationQuery)
    summary: str = ""
    natural_language_query: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


class ItemUpdate(BaseModel):
    match: str
    new_rate: float | None = Field(None, ge=0)
    new_quantity: float | None = Field(None, ge=0)
    new_description: str | None = None


class ItemAddition(BaseModel):
    description: str
    quantity: float | None = Field(None, ge=0)
    unit: str | None = None
    rate: float | None = Field(None, ge=0)


class CloneModifications(BaseModel):
    update_items: list[ItemUpdate] = Field(default_factory=list)
    remove_items: list[str] = Field(default_factory=list)
    add_items: list[ItemAddition] = Field(default_factory=list)
    new_total: float | None = None
    # Single-item shortcut ("same as John's but $800"): replaces the first rate.
    new_amount: float | None = Field(None, ge=0)


class DocumentCloneIntent(BaseModel):
    intent_type: Literal["document_clone"] = "document_clone"
    source_client: str
    target_client: ClientInfo = Field(default_factory=ClientInfo)
    document_type: DocumentType | None = None
    modifications: CloneModifications = Field(default_factory=CloneModifications)
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


class DocumentMergeIntent(BaseModel):
    intent_type: Literal["document_merge"] = "document_merge"
    source_clients: list[str] = Field(..., min_length=1)
    target_client: ClientInfo = Field(default_factory=ClientInfo)
    document_type: DocumentType | None = None
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


class SendRecipient(BaseModel):
    email: str | None = None
    phone: str | None = None
    client_name: str | None = None


class DocumentSendIntent(BaseModel):
    intent_type: Literal["document_send"] = "document_send"
    client_name: str
    document_type: DocumentType | None = None
    selector: Literal["last", "latest", "recent", "first"] | None = None
    delivery_method: DeliveryMethod = "email"
    recipient: SendRecipient = Field(default_factory=SendRecipient)
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


class TransformSource(BaseModel):
    client_name: str
    document_type: Literal["invoice", "estimate"] | None = None
    selector: Literal["last", "latest", "recent"] | None = None
    document_number: str | None = None


class ConversionConfig(BaseModel):
    enabled: bool = False
    target_type: Literal["invoice", "estimate"] = "invoice"


class SplitConfig(BaseModel):
    enabled: bool = False
    number_of_parts: int = Field(1, ge=1)
    split_method: Literal["equal", "custom", "percentage"] = "equal"
    custom_amounts: list[float] | None = None
    percentages: list[float] | None = None
    rounding_method: Literal["floor", "ceil", "round"] = "round"


class ScheduleFrequency(BaseModel):
    type: Literal["days", "weeks", "months"]
    interval: int = Field(1, ge=1)


class ScheduleConfig(BaseModel):
    enabled: bool = False
    frequency: ScheduleFrequency | None = None
    start_date: str | None = None
    send_first: bool = False


class DocumentTransformIntent(BaseModel):
    intent_type: Literal["document_transform"] = "document_transform"
    source: TransformSource
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    split: SplitConfig = Field(default_factory=SplitConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    target_client: ClientInfo = Field(default_factory=ClientInfo)
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)


ParseResult = Annotated[
    DocumentActionIntent
    | InformationQueryIntent
    | DocumentCloneIntent
    | DocumentMergeIntent
    | DocumentSendIntent
    | DocumentTransformIntent,
    Field(discriminator="intent_type"),
]

_parse_result_adapter: TypeAdapter[ParseResult] = TypeAdapter(ParseResult)


def coerce_parse_result(payload: Any) -> ParseResult | ParseFailure:
    """Validate a raw parser payload without raising.

    A missing or unknown ``intent_type`` or an invalid body comes back as a
    ``ParseFailure`` carrying the parser's own ``error`` text when present.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    if not isinstance(payload, dict):
        return ParseFailure("Failed to parse")

    upstream_error = payload.get("error")
    if payload.get("success") is False or "intent_type" not in payload:
        return ParseFailure(str(upstream_error or "Failed to parse"))
    try:
        return _parse_result_adapter.validate_python(payload)
    except ValidationError as exc:
        if upstream_error:
            return ParseFailure(str(upstream_error))
        first = exc.errors()[0] if exc.errors() else {}
        if first.get("type") == "union_tag_invalid":
            return ParseFailure(f"Unrecognized intent: {payload.get('intent_type')}")
        return ParseFailure("Failed to parse")
