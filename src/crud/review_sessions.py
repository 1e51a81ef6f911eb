"""CRUD operations for review sessions (the ``SessionStore`` adapter)."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SessionNotFound
from models.review_sessions import ReviewSession
from schemas.review import SessionSnapshot, SessionSummary


logger = logging.getLogger(__name__)


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _apply_snapshot(row: ReviewSession, snapshot: SessionSnapshot) -> None:
    row.intent_type = snapshot.intent_type
    row.original_transcript = snapshot.original_transcript
    row.parsed_data = snapshot.parsed_data
    row.state = snapshot.flow.model_dump(mode="json")
    row.draft = snapshot.draft.model_dump(mode="json") if snapshot.draft else None
    row.actions = [a.model_dump(mode="json") for a in snapshot.actions]
    row.query_result = (
        snapshot.query_result.model_dump(mode="json") if snapshot.query_result else None
    )
    row.pending_conflict = (
        snapshot.pending_conflict.model_dump(mode="json")
        if snapshot.pending_conflict
        else None
    )
    row.status = snapshot.status
    row.summary = snapshot.summary
    row.created_document_id = snapshot.created_document_id
    row.created_document_type = snapshot.created_document_type
    row.created_document_number = snapshot.created_document_number


def to_snapshot(row: ReviewSession) -> SessionSnapshot:
    return SessionSnapshot.model_validate(
        {
            "id": str(row.id),
            "intent_type": row.intent_type,
            "original_transcript": row.original_transcript,
            "parsed_data": row.parsed_data or {},
            "flow": row.state,
            "draft": row.draft,
            "actions": row.actions or [],
            "query_result": row.query_result,
            "pending_conflict": row.pending_conflict,
            "status": row.status,
            "summary": row.summary,
            "created_document_id": row.created_document_id,
            "created_document_type": row.created_document_type,
            "created_document_number": row.created_document_number,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
            "completed_at": row.completed_at,
        }
    )


class SqlSessionStore:
    """``SessionStore`` over the ``review_sessions`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get(self, session_id: str) -> ReviewSession | None:
        parsed = _parse_id(session_id)
        if parsed is None:
            return None
        return await self.db.get(ReviewSession, parsed)

    async def save(self, snapshot: SessionSnapshot) -> str:
        if snapshot.id is None:
            row = ReviewSession()
            self.db.add(row)
        else:
            existing = await self._get(snapshot.id)
            if existing is None:
                raise SessionNotFound(f"Review session {snapshot.id} not found")
            row = existing
        _apply_snapshot(row, snapshot)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return str(row.id)

    async def load(self, session_id: str) -> SessionSnapshot | None:
        row = await self._get(session_id)
        return to_snapshot(row) if row is not None else None

    async def complete(
        self, session_id: str, document_id: str | None, document_type: str | None
    ) -> None:
        row = await self._get(session_id)
        if row is None:
            raise SessionNotFound(f"Review session {session_id} not found")
        row.status = "completed"
        row.completed_at = datetime.now(UTC)
        if document_id is not None:
            row.created_document_id = document_id
            row.created_document_type = document_type
        await self.db.commit()

    async def list_recent(
        self, *, status: str | None = None, limit: int = 50
    ) -> list[SessionSummary]:
        statement = select(ReviewSession).order_by(ReviewSession.created_at.desc())
        if status:
            statement = statement.where(ReviewSession.status == status)
        result = await self.db.execute(statement.limit(limit))
        return [
            SessionSummary(
                id=str(row.id),
                intent_type=row.intent_type,
                status=row.status,
                summary=row.summary,
                created_at=row.created_at,
                completed_at=row.completed_at,
                created_document_id=row.created_document_id,
                created_document_type=row.created_document_type,
            )
            for row in result.scalars().all()
        ]

    async def purge_completed(self, older_than: datetime) -> int:
        """Delete completed sessions finished before ``older_than``."""
        result = await self.db.execute(
            delete(ReviewSession).where(
                ReviewSession.status == "completed",
                ReviewSession.completed_at < older_than,
            )
        )
        await self.db.commit()
        removed = int(result.rowcount or 0)
        logger.info("Purged %d completed review session(s)", removed)
        return removed
