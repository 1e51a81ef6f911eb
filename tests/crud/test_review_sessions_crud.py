from datetime import UTC, datetime, timedelta

import pytest

from core.exceptions import SessionNotFound
from crud.review_sessions import SqlSessionStore
from schemas.clients import ClientInfo
from schemas.documents import ClientConflict, ClientDifference, LineItem
from schemas.intents import DocumentCloneIntent
from schemas.review import (
    ActionStep,
    CloneFlow,
    DocumentActionFlow,
    DraftDocument,
    SessionSnapshot,
)


def _snapshot(**overrides) -> SessionSnapshot:
    data = {
        "intent_type": "document_clone",
        "original_transcript": "copy the Smith invoice for Jones",
        "flow": CloneFlow(intent=DocumentCloneIntent(source_client="Smith")),
        "draft": DraftDocument(
            client=ClientInfo(name="Jones"),
            items=[LineItem(description="Labor", quantity=1, rate=500, total=500)],
        ),
        "actions": [ActionStep(id="create", type="create_document", order=1)],
        "summary": "Clone Smith invoice for Jones",
    }
    data.update(overrides)
    return SessionSnapshot(**data)


@pytest.mark.asyncio
async def test_save_then_load_round_trips_flow_state(db_session):
    store = SqlSessionStore(db_session)
    session_id = await store.save(_snapshot())

    loaded = await store.load(session_id)

    assert loaded is not None
    assert loaded.id == session_id
    assert isinstance(loaded.flow, CloneFlow)
    assert loaded.flow.intent.source_client == "Smith"
    assert loaded.draft.total == 500
    assert loaded.actions[0].id == "create"
    assert loaded.status == "in_progress"


@pytest.mark.asyncio
async def test_save_with_id_updates_in_place(db_session):
    store = SqlSessionStore(db_session)
    session_id = await store.save(_snapshot())
    conflict = ClientConflict(
        existing_client={"id": "client-1", "name": "Jones"},
        new_data=ClientInfo(name="Jones", email="new@example.com"),
        differences=[ClientDifference(field="email", new="new@example.com")],
    )

    again = await store.save(
        _snapshot(
            id=session_id,
            pending_conflict=conflict,
            created_document_number="INV-2026-0003",
        )
    )

    assert again == session_id
    loaded = await store.load(session_id)
    assert loaded.pending_conflict == conflict
    assert loaded.created_document_number == "INV-2026-0003"
    assert len(await store.list_recent()) == 1


@pytest.mark.asyncio
async def test_save_unknown_id_raises(db_session):
    store = SqlSessionStore(db_session)
    with pytest.raises(SessionNotFound):
        await store.save(_snapshot(id="00000000-0000-0000-0000-000000000000"))


@pytest.mark.asyncio
async def test_load_missing_or_malformed_id_is_none(db_session):
    store = SqlSessionStore(db_session)
    assert await store.load("not-a-uuid") is None
    assert await store.load("00000000-0000-0000-0000-000000000000") is None


@pytest.mark.asyncio
async def test_complete_records_created_document(db_session):
    store = SqlSessionStore(db_session)
    session_id = await store.save(_snapshot())

    await store.complete(session_id, "doc-9", "invoice")

    loaded = await store.load(session_id)
    assert loaded.status == "completed"
    assert loaded.completed_at is not None
    assert loaded.created_document_id == "doc-9"
    assert loaded.created_document_type == "invoice"


@pytest.mark.asyncio
async def test_complete_unknown_session_raises(db_session):
    store = SqlSessionStore(db_session)
    with pytest.raises(SessionNotFound):
        await store.complete("00000000-0000-0000-0000-000000000000", None, None)


@pytest.mark.asyncio
async def test_list_recent_filters_by_status(db_session):
    store = SqlSessionStore(db_session)
    open_id = await store.save(_snapshot())
    done_id = await store.save(
        _snapshot(intent_type="document_action", flow=DocumentActionFlow())
    )
    await store.complete(done_id, None, None)

    in_progress = await store.list_recent(status="in_progress")
    completed = await store.list_recent(status="completed")

    assert [s.id for s in in_progress] == [open_id]
    assert [s.id for s in completed] == [done_id]
    assert completed[0].intent_type == "document_action"
    assert len(await store.list_recent(limit=1)) == 1


@pytest.mark.asyncio
async def test_purge_removes_only_old_completed_sessions(db_session):
    store = SqlSessionStore(db_session)
    open_id = await store.save(_snapshot())
    done_id = await store.save(_snapshot())
    await store.complete(done_id, None, None)

    kept = await store.purge_completed(datetime.now(UTC) - timedelta(days=1))
    assert kept == 0

    removed = await store.purge_completed(datetime.now(UTC) + timedelta(minutes=1))
    assert removed == 1
    assert await store.load(done_id) is None
    assert await store.load(open_id) is not None
