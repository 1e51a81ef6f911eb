"""Domain exceptions for the review workflow.

Each exception carries a stable ``error_code`` so the API layer can map it to
an HTTP status and logs can be grouped without parsing messages. Resolution
misses inside a flow (no documents for a client, no suggestions) are empty
states, not exceptions; the classes below cover direct lookups, refused
execution and per-step failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from schemas.documents import ClientConflict
    from schemas.review import ValidationReport


@dataclass(slots=True)
class ReviewFlowError(Exception):
    """Base class for review workflow domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ParseFailure(ReviewFlowError):
    """The parsing collaborator produced no usable intent."""

    def __init__(self, message: str = "Failed to parse") -> None:
        super().__init__(message=message, error_code="parse_failed")


class ResolutionFailure(ReviewFlowError):
    def __init__(self, message: str = "Requested record was not found") -> None:
        super().__init__(message=message, error_code="not_found")


class ValidationBlocked(ReviewFlowError):
    """Execution refused locally because the draft has blocking errors."""

    def __init__(
        self,
        report: ValidationReport,
        message: str = "Draft is not ready to execute",
    ) -> None:
        super().__init__(message=message, error_code="validation_blocked")
        self.report = report

    @property
    def reasons(self) -> list[str]:
        return list(self.report.blocking)


class ActionFailure(ReviewFlowError):
    def __init__(self, message: str = "Action failed") -> None:
        super().__init__(message=message, error_code="action_failed")


class ClientConflictError(ReviewFlowError):
    """Stored client differs from the draft client and needs a decision."""

    def __init__(
        self,
        conflict: ClientConflict,
        message: str = "Client details differ from the stored record",
    ) -> None:
        super().__init__(message=message, error_code="client_conflict")
        self.conflict = conflict


class SessionNotFound(ReviewFlowError):
    def __init__(self, message: str = "Review session not found") -> None:
        super().__init__(message=message, error_code="session_not_found")


class PreviewNotReady(ReviewFlowError):
    def __init__(self, message: str = "Select a source document first") -> None:
        super().__init__(message=message, error_code="preview_not_ready")


class InvalidOperation(ReviewFlowError):
    """The requested step does not apply to the current review flow."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, error_code="invalid_operation")


class InvalidDecision(ReviewFlowError):
    def __init__(self, decision: Any) -> None:
        super().__init__(
            message=f"Unsupported conflict decision: {decision!r}",
            error_code="invalid_decision",
        )


# HTTP status per error code; unknown codes fall back to 400.
ERROR_STATUS_CODES: dict[str, int] = {
    "parse_failed": 422,
    "not_found": 404,
    "validation_blocked": 422,
    "action_failed": 502,
    "client_conflict": 409,
    "session_not_found": 404,
    "invalid_decision": 400,
    "preview_not_ready": 409,
    "invalid_operation": 400,
}
