"""Review workflow state: drafts, action steps, validation and flow variants."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, computed_field

from schemas.clients import ClientInfo, ClientSuggestion
from schemas.documents import (
    ClientConflict,
    DeliveryMethod,
    DocumentType,
    LineItem,
    SearchSuggestions,
    SourceDocument,
)
from schemas.intents import (
    DocumentActionIntent,
    DocumentCloneIntent,
    DocumentMergeIntent,
    DocumentSendIntent,
    DocumentTransformIntent,
    InformationQueryIntent,
    IntentType,
)
from schemas.queries import QueryResult


ActionType = Literal["create_document", "send_email"]
ActionStatus = Literal["pending", "in_progress", "completed", "failed"]
SessionStatus = Literal["in_progress", "completed"]
SelectionState = Literal["searching", "auto", "needs_selection", "no_match", "selected"]


class ActionDetails(BaseModel):
    recipient: str | None = None
    frequency: str | None = None
    message: str | None = None
    delivery_method: DeliveryMethod = "email"


class ActionStep(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ActionType
    order: int = Field(..., ge=1)
    status: ActionStatus = "pending"
    details: ActionDetails = Field(default_factory=ActionDetails)
    error: str | None = None


class DraftDocument(BaseModel):
    """Editable document state before execution."""

    document_type: DocumentType = "invoice"
    client: ClientInfo = Field(default_factory=ClientInfo)
    items: list[LineItem] = Field(default_factory=list)
    tax_rate: float | None = Field(None, ge=0)
    due_date: str | None = None
    summary: str = ""
    confidence: dict[str, float] = Field(default_factory=dict)
    # Set when a clone/merge fixed the grand total explicitly.
    total_override: float | None = None
    source_document_id: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def subtotal(self) -> float:
        return round(sum(item.total for item in self.items), 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tax_amount(self) -> float:
        return round(self.subtotal * (self.tax_rate or 0) / 100, 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        if self.total_override is not None:
            return self.total_override
        return round(self.subtotal + self.tax_amount, 2)

    def template_data(self) -> dict[str, Any]:
        """Totals block handed to document renderers (tax rate as a fraction)."""
        return {
            "subtotal": self.subtotal,
            "tax_rate": (self.tax_rate or 0) / 100,
            "tax": self.tax_amount,
            "total": self.total,
        }


class FieldCheck(BaseModel):
    valid: bool = True
    severity: Literal["ok", "warning", "error"] = "ok"
    message: str | None = None


class ValidationReport(BaseModel):
    client_name: FieldCheck
    client_email: FieldCheck
    total: FieldCheck
    items: FieldCheck
    can_execute: bool
    blocking: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ModificationPreview(BaseModel):
    items: list[LineItem] = Field(default_factory=list)
    subtotal: float = 0.0
    total: float = 0.0


class DocumentActionFlow(BaseModel):
    kind: Literal["document_action"] = "document_action"
    intent: DocumentActionIntent | None = None
    parse_error: str | None = None


class QueryFlow(BaseModel):
    kind: Literal["information_query"] = "information_query"
    intent: InformationQueryIntent
    result: QueryResult | None = None
    error: str | None = None


class CloneFlow(BaseModel):
    kind: Literal["document_clone"] = "document_clone"
    intent: DocumentCloneIntent
    candidates: list[SourceDocument] = Field(default_factory=list)
    selected: SourceDocument | None = None
    selection: SelectionState = "searching"
    suggestions: SearchSuggestions | None = None
    client_suggestions: list[ClientSuggestion] = Field(default_factory=list)
    preview: ModificationPreview | None = None
    error: str | None = None


class MergeSlot(BaseModel):
    """One source client of a merge; searched independently of the others."""

    client_name: str
    documents: list[SourceDocument] = Field(default_factory=list)
    selected: SourceDocument | None = None
    is_searching: bool = False
    suggestions: SearchSuggestions | None = None
    error: str | None = None


class MergeFlow(BaseModel):
    kind: Literal["document_merge"] = "document_merge"
    intent: DocumentMergeIntent
    slots: list[MergeSlot] = Field(default_factory=list)
    preview: ModificationPreview | None = None

    @property
    def all_selected(self) -> bool:
        return bool(self.slots) and all(s.selected is not None for s in self.slots)


class ResolvedRecipient(BaseModel):
    email: str | None = None
    phone: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    source: Literal["explicit", "recipient_client", "document"] | None = None


class SendFlow(BaseModel):
    kind: Literal["document_send"] = "document_send"
    intent: DocumentSendIntent
    candidates: list[SourceDocument] = Field(default_factory=list)
    selected: SourceDocument | None = None
    selection: SelectionState = "searching"
    suggestions: SearchSuggestions | None = None
    recipient: ResolvedRecipient = Field(default_factory=ResolvedRecipient)
    items_edited: bool = False
    error: str | None = None


class TransformFlow(BaseModel):
    kind: Literal["document_transform"] = "document_transform"
    intent: DocumentTransformIntent
    candidates: list[SourceDocument] = Field(default_factory=list)
    source: SourceDocument | None = None
    selection: SelectionState = "searching"
    client_suggestions: list[ClientSuggestion] = Field(default_factory=list)
    search_query: str | None = None
    error: str | None = None


FlowState = Annotated[
    DocumentActionFlow | QueryFlow | CloneFlow | MergeFlow | SendFlow | TransformFlow,
    Field(discriminator="kind"),
]


class SessionSnapshot(BaseModel):
    """Serializable record of an in-progress review."""

    id: str | None = None
    intent_type: IntentType
    original_transcript: str | None = None
    parsed_data: dict[str, Any] = Field(default_factory=dict)
    flow: FlowState
    draft: DraftDocument | None = None
    actions: list[ActionStep] = Field(default_factory=list)
    query_result: QueryResult | None = None
    status: SessionStatus = "in_progress"
    summary: str | None = None
    created_document_id: str | None = None
    created_document_type: str | None = None
    created_document_number: str | None = None
    pending_conflict: ClientConflict | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class SessionSummary(BaseModel):
    id: str
    intent_type: str
    status: str
    summary: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    created_document_id: str | None = None
    created_document_type: str | None = None


class ReviewSnapshot(BaseModel):
    """What the presentation layer renders for a review."""

    session_id: str | None = None
    intent_type: IntentType
    flow: FlowState
    draft: DraftDocument | None = None
    actions: list[ActionStep] = Field(default_factory=list)
    validation: ValidationReport | None = None
    status: SessionStatus = "in_progress"
    pending_conflict: ClientConflict | None = None
    document_id: str | None = None
    document_number: str | None = None
    client_suggestions: list[ClientSuggestion] = Field(default_factory=list)


class ParseRequest(BaseModel):
    transcript: str = Field(..., min_length=1, max_length=5000)


class RouteRequest(BaseModel):
    """Pre-parsed payload; validated leniently so bad input degrades."""

    parse_result: dict[str, Any]
    transcript: str | None = None


class LineItemEdit(BaseModel):
    id: str
    description: str | None = None
    quantity: float | None = Field(None, ge=0)
    unit: str | None = None
    rate: float | None = Field(None, ge=0)
    total: float | None = Field(None, ge=0)


class DraftUpdateRequest(BaseModel):
    """Top-level draft fields to replace, and/or a single line item edit."""

    document_type: DocumentType | None = None
    client: ClientInfo | None = None
    items: list[LineItem] | None = None
    tax_rate: float | None = Field(None, ge=0)
    due_date: str | None = None
    summary: str | None = None
    item: LineItemEdit | None = None


class SelectSourceRequest(BaseModel):
    document_id: str
    slot: int = Field(0, ge=0)


class ClientSearchRequest(BaseModel):
    client_name: str = Field(..., min_length=1)


class ConflictDecisionRequest(BaseModel):
    decision: str
