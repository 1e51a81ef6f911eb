"""Sequential execution of a draft's action steps."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

import httpx
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import ActionFailure, ValidationBlocked
from schemas.documents import ClientConflict
from schemas.review import ActionStep, DraftDocument
from services.review.interfaces import DocumentRepository, EmailDispatchService
from services.review.models import ExecutionContext, ExecutionReport
from services.review.validation import validate_draft


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Errors isolated to the step that raised them.
STEP_ERRORS: tuple[type[Exception], ...] = (
    ActionFailure,
    httpx.HTTPError,
    SQLAlchemyError,
    TimeoutError,
    ConnectionError,
)


class _ConflictRaised(Exception):
    """Internal signal: the save reported a client conflict."""

    def __init__(self, conflict: ClientConflict) -> None:
        super().__init__("client conflict")
        self.conflict = conflict


def _error_text(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


class ActionExecutor:
    """Runs action steps one at a time, in ``order``.

    ``create_document`` records the new document on the ``ExecutionContext``
    so a later ``send_email`` reuses it. The first failure or client conflict
    halts the pass; steps after it stay ``pending``.
    """

    def __init__(
        self, documents: DocumentRepository, dispatcher: EmailDispatchService
    ) -> None:
        self._documents = documents
        self._dispatcher = dispatcher

    async def execute_all(
        self,
        draft: DraftDocument,
        actions: Sequence[ActionStep],
        context: ExecutionContext | None = None,
    ) -> ExecutionReport:
        report = validate_draft(draft, actions)
        if report.blocking:
            raise ValidationBlocked(report)
        if not report.can_execute:
            raise ValidationBlocked(report, "No actions are queued")

        ctx = context or ExecutionContext()
        steps = sorted(
            (a.model_copy(deep=True) for a in actions), key=lambda a: a.order
        )
        result = ExecutionReport(actions=steps, context=ctx)

        for step in steps:
            if step.status not in ("pending", "failed"):
                continue
            step.status = "in_progress"
            step.error = None
            try:
                await self._run_step(step, draft, ctx)
            except _ConflictRaised as conflict:
                step.status = "pending"
                result.halted = True
                result.conflict = conflict.conflict
                logger.info("Action %s paused on client conflict", step.id)
                break
            except STEP_ERRORS as exc:
                step.status = "failed"
                step.error = _error_text(exc)
                result.halted = True
                result.failed_action_id = step.id
                logger.warning(
                    "Action %s (%s) failed: %s", step.id, step.type, type(exc).__name__
                )
                break
            step.status = "completed"
        return result

    async def retry_action(
        self,
        draft: DraftDocument,
        actions: Sequence[ActionStep],
        action_id: str,
        context: ExecutionContext | None = None,
    ) -> ExecutionReport:
        """Reset one failed step to ``pending`` and run a new pass."""
        reset: list[ActionStep] = []
        found = False
        for action in actions:
            copy = action.model_copy(deep=True)
            if copy.id == action_id:
                found = True
                if copy.status == "completed":
                    raise ActionFailure(f"Action {action_id} already completed")
                copy.status = "pending"
                copy.error = None
            reset.append(copy)
        if not found:
            raise ActionFailure(f"Action {action_id} not found")
        return await self.execute_all(draft, reset, context)

    async def _run_step(
        self, step: ActionStep, draft: DraftDocument, ctx: ExecutionContext
    ) -> None:
        match step.type:
            case "create_document":
                await self._save(draft, ctx)
            case "send_email":
                await self._send(step, draft, ctx)

    async def _save(self, draft: DraftDocument, ctx: ExecutionContext) -> None:
        saved = await self._documents.create(draft, client_decision=ctx.client_decision)
        if saved.client_conflict is not None:
            raise _ConflictRaised(saved.client_conflict)
        if saved.document_id is None:
            raise ActionFailure("Document could not be saved")
        ctx.document_id = saved.document_id
        ctx.document_type = saved.document_type or draft.document_type
        ctx.document_number = saved.document_number
        logger.info(
            "Saved %s %s", ctx.document_type, ctx.document_number or ctx.document_id
        )

    async def _send(
        self, step: ActionStep, draft: DraftDocument, ctx: ExecutionContext
    ) -> None:
        method = step.details.delivery_method
        if method == "email":
            recipient = step.details.recipient or draft.client.email
        else:
            recipient = step.details.recipient or draft.client.phone
        if not recipient or not recipient.strip():
            what = "email address" if method == "email" else "phone number"
            raise ActionFailure(f"No recipient {what} for this document")
        if method == "email" and not EMAIL_PATTERN.match(recipient.strip()):
            raise ActionFailure(f"Invalid email address: {recipient.strip()}")

        if ctx.document_id is None:
            await self._save(draft, ctx)
        assert ctx.document_id is not None

        outcome = await self._dispatcher.send(
            ctx.document_id,
            ctx.document_type or draft.document_type,
            method,
            recipient.strip(),
        )
        if not outcome.success:
            raise ActionFailure(outcome.error or "Failed to send document")
