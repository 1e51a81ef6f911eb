"""Information-query result schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from schemas.documents import SearchSuggestions


class QueryDocument(BaseModel):
    id: str
    type: str
    title: str
    number: str | None = None
    client: str
    client_id: str | None = None
    date: datetime | None = None
    amount: float = 0.0
    status: str = "draft"
    due_date: str | None = None


class QuerySummary(BaseModel):
    count: int = 0
    total_amount: float = 0.0
    by_status: dict[str, float] = Field(default_factory=dict)
    by_type: dict[str, float] = Field(default_factory=dict)


class QueryResult(BaseModel):
    success: bool = True
    query_type: Literal["list", "sum", "count", "details"] = "list"
    documents: list[QueryDocument] = Field(default_factory=list)
    summary: QuerySummary | None = None
    answer: str | None = None
    suggestions: SearchSuggestions | None = None
    error: str | None = None
