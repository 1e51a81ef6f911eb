"""Error envelopes, correlation ids and redacted logging for the review API.

Every failure leaves the API as an ``ErrorResponse``. Review workflow errors
keep their ``error_code`` and map to a status through ``ERROR_STATUS_CODES``;
anything unexpected becomes a 500 whose debugging fields are only present
outside production.
"""

from __future__ import annotations

import logging
import logging.config
import traceback
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from functools import partialmethod
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import ERROR_STATUS_CODES, ReviewFlowError, ValidationBlocked
from core.security_config import REDACTION, error_fields_for, should_redact
from schemas.api import ErrorResponse


CORRELATION_HEADER = "X-Correlation-ID"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def current_correlation_id() -> str:
    """Correlation id of the running request, minted on first use."""
    value = _correlation_id.get()
    if value is None:
        value = uuid.uuid4().hex
        _correlation_id.set(value)
    return value


def bind_correlation_id(value: str | None) -> None:
    _correlation_id.set(value)


def redact(value: Any) -> Any:
    """Copy of ``value`` with sensitive mapping keys masked at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTION if should_redact(str(key)) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    return value


class ReviewLogger:
    """Logger facade that tags records with the correlation id.

    Keyword fields travel as ``structured_data`` (a JSON object in production)
    after contact details and credentials are masked.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    def log(
        self, level: int, message: str, /, *, exc_info: bool = False, **fields: Any
    ) -> None:
        correlation_id = current_correlation_id()
        self._logger.log(
            level,
            "[%s] %s",
            correlation_id,
            message,
            extra={
                "structured_data": {"correlation_id": correlation_id, **redact(fields)}
            },
            exc_info=exc_info,
        )

    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)
    exception = partialmethod(log, logging.ERROR, exc_info=True)


review_logger = ReviewLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Adopt the caller's correlation id (or mint one) and echo it back."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        bind_correlation_id(request.headers.get(CORRELATION_HEADER) or None)
        correlation_id = current_correlation_id()
        try:
            response = await call_next(request)
        except Exception as exc:  # noqa: BLE001
            response = await global_exception_handler(request, exc)
        finally:
            bind_correlation_id(None)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def error_response(
    status_code: int,
    error_type: str,
    message: str,
    *,
    error_code: str | None = None,
    debug: dict[str, Any] | None = None,
    public: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build the error envelope.

    ``debug`` entries are dropped unless the environment allows the field;
    ``public`` entries are always included.
    """
    allowed = error_fields_for(get_settings().ENVIRONMENT)
    body: dict[str, Any] = {
        "correlation_id": current_correlation_id(),
        "type": error_type,
    }
    if error_code:
        body["error_code"] = error_code
    for field, value in (debug or {}).items():
        if field in allowed and value is not None:
            body[field] = value
    body.update(public or {})
    envelope = ErrorResponse(message=message, error=body)
    return JSONResponse(
        status_code=status_code, content=envelope.model_dump(mode="json")
    )


def _http_error(exc: StarletteHTTPException) -> JSONResponse:
    return error_response(
        exc.status_code,
        "http_error",
        "An HTTP error occurred",
        debug={
            "details": {"detail": exc.detail},
            "exception_type": type(exc).__name__,
        },
    )


def _invalid_request(exc: ValidationError | RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    review_logger.warning("Request failed validation", validation_errors=errors)
    return error_response(
        422,
        "validation_error",
        "Invalid request data provided",
        debug={"validation_errors": errors},
    )


def _review_error(exc: ReviewFlowError) -> JSONResponse:
    review_logger.warning(
        "Review step refused",
        error_code=exc.error_code,
        error_type=type(exc).__name__,
        reason=exc.message,
    )
    public = None
    if isinstance(exc, ValidationBlocked):
        # Blocking reasons are what the user has to fix, in every environment.
        public = {"blocking": exc.reasons, "warnings": list(exc.report.warnings)}
    return error_response(
        ERROR_STATUS_CODES.get(exc.error_code, 400),
        "domain_error",
        exc.message,
        error_code=exc.error_code,
        public=public,
    )


def _integrity_error(exc: IntegrityError) -> JSONResponse:
    review_logger.error("Integrity constraint violated", error=str(exc.orig))
    return error_response(
        409, "integrity_error", "A data integrity constraint was violated"
    )


def _database_error(exc: SQLAlchemyError) -> JSONResponse:
    review_logger.exception("Database error", exception_type=type(exc).__name__)
    return error_response(503, "database_error", "A database error occurred")


def _unexpected_error(exc: Exception) -> JSONResponse:
    review_logger.exception("Unhandled exception", exception_type=type(exc).__name__)
    return error_response(
        500,
        "internal_server_error",
        "An internal error occurred",
        debug={
            "exception_type": type(exc).__name__,
            "traceback": "".join(traceback.format_exception(exc)).strip(),
        },
    )


# First matching entry wins; IntegrityError must precede SQLAlchemyError.
_RESPONDERS: list[tuple[Any, Callable[[Any], JSONResponse]]] = [
    (StarletteHTTPException, _http_error),
    ((ValidationError, RequestValidationError), _invalid_request),
    (ReviewFlowError, _review_error),
    (IntegrityError, _integrity_error),
    (SQLAlchemyError, _database_error),
]


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    for exc_types, respond in _RESPONDERS:
        if isinstance(exc, exc_types):
            return respond(exc)
    return _unexpected_error(exc)


def setup_logging() -> None:
    """Install one stdout handler on the root logger; JSON lines in production.

    Leaves an already configured root logger (pytest, uvicorn ``--log-config``)
    untouched.
    """
    if logging.getLogger().handlers:
        return
    environment = get_settings().ENVIRONMENT
    production = environment == "production"
    level = "DEBUG" if environment == "development" else "INFO"
    quiet = {"level": "WARNING"}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.json.JsonFormatter",
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                },
                "plain": {
                    "format": "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "json" if production else "plain",
                }
            },
            "root": {"level": level, "handlers": ["stdout"]},
            "loggers": (
                {
                    "uvicorn.access": quiet,
                    "sqlalchemy.engine": quiet,
                    "apscheduler": quiet,
                }
                if production
                else {}
            ),
        }
    )
