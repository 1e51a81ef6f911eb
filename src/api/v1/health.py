"""Liveness and database readiness."""

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from dependencies.db import DbSession
from schemas.api import ApiResponse


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, str]])
async def health_check(db: DbSession) -> ApiResponse[dict[str, str]]:
    """Report the service as healthy; ``database`` is ``unavailable`` when the
    session store cannot be reached."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Health check database probe failed: %s", type(exc).__name__)
        database = "unavailable"
    settings = get_settings()
    return ApiResponse(
        data={
            "status": "healthy",
            "database": database,
            "environment": settings.ENVIRONMENT,
            "message": f"{settings.APP_NAME} API is running",
        },
        message="Health check successful",
    )
