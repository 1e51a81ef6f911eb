"""Saved invoices, estimates and contracts."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from .clients import Client


class Document(Base):
    """A persisted document.

    The ``client_*`` columns snapshot the contact details printed on the
    document, which may differ from the stored client when the user chose to
    use new details for this document only.
    """

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_name: Mapped[str] = mapped_column(String(200), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    client_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True, comment="invoice, estimate or contract"
    )
    document_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    line_items: Mapped[Any] = mapped_column(JSON, nullable=False, default=list)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_rate: Mapped[float | None] = mapped_column(
        Float, nullable=True, comment="Percent"
    )
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    due_date: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    client: Mapped[Client | None] = relationship("Client", back_populates="documents")

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, number={self.document_number!r})>"
