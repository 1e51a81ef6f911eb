"""Document, line item and repository result schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from schemas.clients import ClientInfo


DocumentType = Literal["invoice", "estimate", "contract"]
MeasurementType = Literal["service", "sqft", "linear_ft", "unit", "hour", "job"]
DeliveryMethod = Literal["email", "sms", "whatsapp"]
ClientMergeDecision = Literal["keep", "use_new", "update"]

CLIENT_MERGE_DECISIONS: frozenset[str] = frozenset({"keep", "use_new", "update"})


def new_item_id() -> str:
    """Opaque line-item token, unique within a process."""
    return f"item-{uuid.uuid4().hex[:12]}"


class Dimensions(BaseModel):
    width: float | None = None
    length: float | None = None
    unit: Literal["ft", "m"] | None = None


class LineItem(BaseModel):
    """A priced line on a document.

    ``total`` is derived as ``quantity * rate`` unless ``total_overridden`` is
    set; use ``services.review.line_items.edit_item`` to change values so the
    flag is kept consistent.
    """

    id: str = Field(default_factory=new_item_id)
    description: str = ""
    quantity: float = Field(1.0, ge=0)
    unit: str = "unit"
    rate: float = Field(0.0, ge=0)
    total: float = 0.0
    measurement_type: MeasurementType | None = None
    dimensions: Dimensions | None = None
    total_overridden: bool = False


class SourceDocument(BaseModel):
    """An existing document used as the source of a clone/merge/send/transform."""

    id: str
    type: DocumentType
    title: str = "Untitled"
    number: str | None = None
    client: str = "Unknown"
    client_id: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    amount: float = 0.0
    tax_rate: float | None = None
    date: datetime | None = None
    status: str = "draft"
    line_items: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DocumentSearchFilter(BaseModel):
    client_name: str | None = None
    document_type: DocumentType | None = None
    limit: int = Field(10, ge=1, le=100)


class NameAlternative(BaseModel):
    id: str | None = None
    name: str
    similarity: float


class SearchSuggestions(BaseModel):
    """"Did you mean" payload attached to empty or fuzzy searches."""

    type: Literal["client"] = "client"
    searched_for: str
    alternatives: list[NameAlternative] = Field(default_factory=list)


class DocumentSearchResult(BaseModel):
    documents: list[SourceDocument] = Field(default_factory=list)
    suggestions: SearchSuggestions | None = None


class ClientDifference(BaseModel):
    field: str
    old: str | None = None
    new: str | None = None


class ClientConflict(BaseModel):
    """Stored client record disagrees with the client on the draft."""

    existing_client: dict[str, Any]
    new_data: ClientInfo
    differences: list[ClientDifference] = Field(default_factory=list)


class SaveDocumentResult(BaseModel):
    document_id: str | None = None
    document_type: DocumentType | None = None
    document_number: str | None = None
    client_id: str | None = None
    client_conflict: ClientConflict | None = None

    @property
    def saved(self) -> bool:
        return self.document_id is not None and self.client_conflict is None


class DispatchResult(BaseModel):
    success: bool
    error: str | None = None
