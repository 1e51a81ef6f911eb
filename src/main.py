"""ASGI entry point for the review workflow API."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1.api import api_router
from core.config import get_settings
from core.error_handler import (
    CorrelationIdMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.exceptions import ReviewFlowError
from core.scheduler import scheduler_lifespan
from dependencies.db import init_models


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    await init_models()
    if not get_settings().SCHEDULER_ENABLED:
        logger.info("Background scheduler disabled")
        yield
        return
    async with scheduler_lifespan():
        yield


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Intent-driven review of invoices, estimates and contracts",
        version="0.1.0",
        openapi_url=f"{API_PREFIX}/openapi.json",
        docs_url=f"{API_PREFIX}/docs",
        redoc_url=f"{API_PREFIX}/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.CORS_ORIGINS),
        allow_credentials=settings.ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )
    # Added last, so it wraps CORS and every route.
    application.add_middleware(CorrelationIdMiddleware)

    for exc_class in (
        ReviewFlowError,
        RequestValidationError,
        StarletteHTTPException,
        Exception,
    ):
        application.add_exception_handler(exc_class, global_exception_handler)

    application.include_router(api_router, prefix=API_PREFIX)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
