"""Persisted review sessions so interrupted reviews can be resumed."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ReviewSession(Base):
    __tablename__ = "review_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4
    )
    intent_type: Mapped[str] = mapped_column(String(40), nullable=False)
    original_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_data: Mapped[Any] = mapped_column(JSON, nullable=False, default=dict)
    state: Mapped[Any] = mapped_column(
        JSON, nullable=False, comment="Serialized flow state"
    )
    draft: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    actions: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)
    query_result: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    pending_conflict: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="in_progress", index=True
    )
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_document_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_document_type: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )
    created_document_number: Mapped[str | None] = mapped_column(
        String(30), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return f"<ReviewSession(id={self.id}, status={self.status!r})>"
