"""Readiness checks for a draft before its actions run."""

from __future__ import annotations

from collections.abc import Sequence

from schemas.review import ActionStep, DraftDocument, FieldCheck, ValidationReport


def _queued(actions: Sequence[ActionStep]) -> list[ActionStep]:
    return [a for a in actions if a.status in ("pending", "failed")]


def validate_draft(
    draft: DraftDocument | None, actions: Sequence[ActionStep]
) -> ValidationReport:
    """Compute executability and the reasons behind it.

    A missing client email is only a warning here, even when an email action
    is queued; the executor fails that single action if it is still missing
    at send time.
    """
    draft = draft or DraftDocument()
    blocking: list[str] = []
    warnings: list[str] = []

    if draft.client.full_name:
        client_name = FieldCheck()
    else:
        client_name = FieldCheck(
            valid=False, severity="error", message="Client name is required"
        )
        blocking.append("Client name is required")

    if draft.total > 0:
        total = FieldCheck()
    else:
        total = FieldCheck(
            valid=False, severity="error", message="Total must be greater than 0"
        )
        blocking.append("Total must be greater than 0")

    if draft.items:
        items = FieldCheck()
    else:
        items = FieldCheck(
            valid=False, severity="error", message="At least one line item is required"
        )
        blocking.append("At least one line item is required")

    queued = _queued(actions)
    needs_email = any(
        a.type == "send_email"
        and a.details.delivery_method == "email"
        and not a.details.recipient
        for a in queued
    )
    if needs_email and not (draft.client.email or "").strip():
        client_email = FieldCheck(
            valid=True,
            severity="warning",
            message="Client email is needed to send this document",
        )
        warnings.append("Client email is needed to send this document")
    else:
        client_email = FieldCheck()

    return ValidationReport(
        client_name=client_name,
        client_email=client_email,
        total=total,
        items=items,
        can_execute=not blocking and bool(queued),
        blocking=blocking,
        warnings=warnings,
    )
