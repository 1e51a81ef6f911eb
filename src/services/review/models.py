"""Typed result objects passed between review components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from schemas.documents import ClientConflict, ClientMergeDecision
from schemas.review import ActionStep


T = TypeVar("T")


@dataclass(slots=True)
class ExecutionContext:
    """State threaded through one or more executor passes.

    ``document_id`` is set by ``create_document`` (or seeded by the send flow
    with an existing document) so later steps can reference it without saving
    again.
    """

    document_id: str | None = None
    document_type: str | None = None
    document_number: str | None = None
    client_decision: ClientMergeDecision | None = None


@dataclass(slots=True)
class ExecutionReport:
    actions: list[ActionStep]
    context: ExecutionContext
    halted: bool = False
    conflict: ClientConflict | None = None
    failed_action_id: str | None = None

    @property
    def completed(self) -> bool:
        return all(a.status == "completed" for a in self.actions)


@dataclass(slots=True)
class SlotResult(Generic[T]):  # noqa: UP046
    """Outcome of one fan-out call; exactly one of ``value``/``error`` is set."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

