"""APScheduler jobs: retention cleanup of completed review sessions."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import (  # type: ignore[import-untyped]
    AsyncIOScheduler,
)
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from crud.review_sessions import SqlSessionStore
from dependencies.db import AsyncSessionLocal


logger = logging.getLogger(__name__)

SESSION_CLEANUP_JOB_ID = "purge_completed_review_sessions"


async def run_session_cleanup(retention_days: int | None = None) -> int:
    """Delete completed sessions older than the retention window.

    Returns the number of removed sessions; a database failure is logged and
    counts as zero so the next run can try again.
    """
    days = retention_days or get_settings().SESSION_RETENTION_DAYS
    cutoff = datetime.now(UTC) - timedelta(days=days)
    try:
        async with AsyncSessionLocal() as db:
            removed = await SqlSessionStore(db).purge_completed(cutoff)
    except SQLAlchemyError:
        logger.exception("Review session cleanup failed")
        return 0
    logger.info(
        "Session cleanup removed %d session(s) older than %d days", removed, days
    )
    return removed


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_session_cleanup,
        trigger=CronTrigger(hour=3, minute=0),
        id=SESSION_CLEANUP_JOB_ID,
        name="Purge completed review sessions",
        replace_existing=True,
        coalesce=True,
    )
    return scheduler


@asynccontextmanager
async def scheduler_lifespan() -> AsyncIterator[AsyncIOScheduler]:
    """Run the scheduler for the lifetime of the app (entered from ``lifespan``)."""
    scheduler = build_scheduler()
    scheduler.start()
    logger.info("Background scheduler started (session cleanup daily 03:00 UTC)")
    try:
        yield scheduler
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
