"""Session persistence: first save, debounced autosave, completion, conflicts."""

from __future__ import annotations

import logging
from collections.abc import Callable

from core.debounce import Debouncer
from core.exceptions import InvalidDecision, SessionNotFound
from schemas.documents import (
    CLIENT_MERGE_DECISIONS,
    ClientConflict,
    ClientMergeDecision,
)
from schemas.review import SessionSnapshot
from services.review.interfaces import SessionStore


logger = logging.getLogger(__name__)

SnapshotFactory = Callable[[], SessionSnapshot]


class SessionManager:
    """Owns the session id and every write to the session store.

    Autosave only runs once the session exists (after the first explicit
    save or a resume). Rapid mutations are coalesced: the snapshot factory is
    called when the debounce timer fires, so only the latest state is saved.
    """

    def __init__(
        self, store: SessionStore, *, debounce_seconds: float = 2.0
    ) -> None:
        self._store = store
        self._session_id: str | None = None
        self._factory: SnapshotFactory | None = None
        self._pending_conflict: ClientConflict | None = None
        self._autosave = Debouncer(
            debounce_seconds, self._autosave_now, name="autosave"
        )

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def autosave_pending(self) -> bool:
        return self._autosave.pending

    @property
    def pending_conflict(self) -> ClientConflict | None:
        return self._pending_conflict

    async def save_now(self, snapshot: SessionSnapshot) -> str:
        """Create the session on first save, update it afterwards."""
        if self._session_id is not None and snapshot.id is None:
            snapshot = snapshot.model_copy(update={"id": self._session_id})
        session_id = await self._store.save(snapshot)
        if self._session_id is None:
            logger.info("Created review session %s", session_id)
        self._session_id = session_id
        return session_id

    def schedule_autosave(self, factory: SnapshotFactory) -> bool:
        """Debounce a save of ``factory()``; no-op until the session exists."""
        self._factory = factory
        if self._session_id is None:
            return False
        self._autosave.trigger()
        return True

    async def flush(self) -> None:
        await self._autosave.flush()

    async def resume(self, session_id: str) -> SessionSnapshot:
        snapshot = await self._store.load(session_id)
        if snapshot is None:
            raise SessionNotFound(f"Review session {session_id} not found")
        self._session_id = session_id
        return snapshot

    async def complete(
        self, document_id: str | None, document_type: str | None
    ) -> None:
        """Cancel any pending autosave and mark the session completed."""
        self._autosave.cancel()
        if self._session_id is None:
            return
        await self._store.complete(self._session_id, document_id, document_type)
        logger.info("Completed review session %s", self._session_id)

    def record_conflict(self, conflict: ClientConflict) -> None:
        self._pending_conflict = conflict

    def resolve_conflict(self, decision: str) -> ClientMergeDecision:
        """Validate the user's decision and clear the pending conflict."""
        if decision not in CLIENT_MERGE_DECISIONS:
            raise InvalidDecision(decision)
        self._pending_conflict = None
        return decision  # type: ignore[return-value]

    async def aclose(self) -> None:
        await self._autosave.aclose()

    async def _autosave_now(self) -> None:
        if self._factory is None or self._session_id is None:
            return
        snapshot = self._factory()
        await self.save_now(snapshot.model_copy(update={"id": self._session_id}))
        logger.debug("Autosaved review session %s", self._session_id)
