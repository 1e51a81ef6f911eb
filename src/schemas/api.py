"""Envelopes every review API route responds with."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """``data`` on success; ``error`` carries the error body otherwise."""

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Failure envelope.

    ``error`` always holds ``correlation_id`` and ``type``; review workflow
    errors add ``error_code``, and refused executions add ``blocking`` and
    ``warnings``.
    """

    success: bool = False
    message: str = "An error occurred"
