from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from core.exceptions import (
    InvalidOperation,
    PreviewNotReady,
    ResolutionFailure,
    SessionNotFound,
    ValidationBlocked,
)
from schemas.clients import ClientInfo, ClientSuggestion, ClientSuggestResult
from schemas.documents import (
    ClientConflict,
    ClientDifference,
    DocumentSearchResult,
    SaveDocumentResult,
)
from schemas.intents import DocumentActionIntent, DocumentCloneIntent
from schemas.review import (
    ActionStep,
    CloneFlow,
    DocumentActionFlow,
    DraftDocument,
    SessionSnapshot,
)
from services.review.orchestrator import ReviewOrchestrator


ACTION_PAYLOAD: dict[str, Any] = {
    "intent_type": "document_action",
    "document_type": "invoice",
    "client": {"name": "John Smith", "email": "john@example.com"},
    "items": [{"description": "Labor", "quantity": 1, "rate": 500}],
    "actions": [{"type": "create_document"}, {"type": "send_email"}],
    "summary": "Invoice John $500",
}


def _conflict() -> ClientConflict:
    return ClientConflict(
        existing_client={"id": "client-1", "name": "John Smith"},
        new_data=ClientInfo(name="John Smith", email="john@example.com"),
        differences=[
            ClientDifference(field="email", old="j@old.com", new="john@x.com")
        ],
    )


@pytest_asyncio.fixture
async def orchestrator(
    documents_repo, clients_repo, dispatcher, session_store, query_executor
) -> AsyncGenerator[ReviewOrchestrator, None]:
    review = ReviewOrchestrator(
        documents=documents_repo,
        clients=clients_repo,
        dispatcher=dispatcher,
        sessions=session_store,
        queries=query_executor,
        parser=AsyncMock(),
        autosave_debounce_seconds=10,
        suggest_debounce_seconds=10,
    )
    yield review
    await review.aclose()


@pytest.mark.asyncio
async def test_flow_before_start_is_invalid(orchestrator):
    with pytest.raises(InvalidOperation):
        orchestrator.snapshot()


@pytest.mark.asyncio
async def test_start_parses_and_persists(orchestrator, session_store):
    orchestrator._parser.parse.return_value = DocumentActionIntent(
        client=ClientInfo(name="John Smith"), summary="Invoice John"
    )

    snapshot = await orchestrator.start("invoice John")

    assert snapshot.session_id == "session-1"
    assert snapshot.intent_type == "document_action"
    stored = session_store.save.await_args.args[0]
    assert stored.original_transcript == "invoice John"
    assert stored.parsed_data["intent_type"] == "document_action"


@pytest.mark.asyncio
async def test_start_without_parser_is_invalid(
    documents_repo, clients_repo, dispatcher, session_store, query_executor
):
    review = ReviewOrchestrator(
        documents=documents_repo,
        clients=clients_repo,
        dispatcher=dispatcher,
        sessions=session_store,
        queries=query_executor,
    )
    with pytest.raises(InvalidOperation):
        await review.start("invoice John")
    await review.aclose()


@pytest.mark.asyncio
async def test_document_action_executes_create_then_send(
    orchestrator, documents_repo, dispatcher, session_store
):
    snapshot = await orchestrator.start_from_parse(ACTION_PAYLOAD)
    assert snapshot.validation is not None
    assert snapshot.validation.can_execute

    snapshot = await orchestrator.execute()

    assert snapshot.status == "completed"
    assert [a.status for a in snapshot.actions] == ["completed", "completed"]
    assert snapshot.document_id == "new-doc"
    documents_repo.create.assert_awaited_once()
    dispatcher.send.assert_awaited_once()
    session_store.complete.assert_awaited_once_with("session-1", "new-doc", "invoice")


@pytest.mark.asyncio
async def test_degraded_parse_is_editable_and_saved(orchestrator, session_store):
    snapshot = await orchestrator.start_from_parse({"summary": "garbled"})

    assert isinstance(snapshot.flow, DocumentActionFlow)
    assert snapshot.draft is not None
    assert snapshot.draft.summary == "Failed to parse"
    assert [a.id for a in snapshot.actions] == ["fallback-create"]
    assert snapshot.validation is not None
    assert snapshot.validation.can_execute is False
    session_store.save.assert_awaited_once()

    with pytest.raises(ValidationBlocked):
        await orchestrator.execute()


@pytest.mark.asyncio
async def test_query_session_completes_immediately(orchestrator, session_store):
    snapshot = await orchestrator.start_from_parse(
        {"intent_type": "information_query", "query": {"type": "list"}}
    )

    assert snapshot.status == "completed"
    assert snapshot.draft is None
    session_store.complete.assert_awaited_once_with("session-1", None, None)


@pytest.mark.asyncio
async def test_failed_create_leaves_send_pending_then_retry(
    orchestrator, documents_repo, dispatcher
):
    await orchestrator.start_from_parse(ACTION_PAYLOAD)
    success = documents_repo.create.return_value
    documents_repo.create.return_value = SaveDocumentResult()

    snapshot = await orchestrator.execute()

    assert [a.status for a in snapshot.actions] == ["failed", "pending"]
    assert snapshot.status == "in_progress"
    dispatcher.send.assert_not_awaited()

    documents_repo.create.return_value = success
    snapshot = await orchestrator.retry(snapshot.actions[0].id)

    assert snapshot.status == "completed"
    dispatcher.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_conflict_waits_for_decision(orchestrator, documents_repo):
    await orchestrator.start_from_parse(ACTION_PAYLOAD)
    success = documents_repo.create.return_value
    documents_repo.create.side_effect = [
        SaveDocumentResult(client_conflict=_conflict()),
        success,
    ]

    snapshot = await orchestrator.execute()
    assert snapshot.pending_conflict is not None
    assert [a.status for a in snapshot.actions] == ["pending", "pending"]

    snapshot = await orchestrator.resolve_conflict("update")

    assert snapshot.pending_conflict is None
    assert snapshot.status == "completed"
    last_call = documents_repo.create.await_args_list[-1]
    assert last_call.kwargs["client_decision"] == "update"


@pytest.mark.asyncio
async def test_resolve_without_conflict_is_invalid(orchestrator):
    await orchestrator.start_from_parse(ACTION_PAYLOAD)
    with pytest.raises(InvalidOperation):
        await orchestrator.resolve_conflict("keep")


@pytest.mark.asyncio
async def test_clone_preview_confirm_and_execute(
    orchestrator, documents_repo, make_document
):
    source = make_document()
    documents_repo.search.return_value = DocumentSearchResult(documents=[source])

    snapshot = await orchestrator.start_from_parse(
        {
            "intent_type": "document_clone",
            "source_client": "John",
            "target_client": {"name": "Mike Jones"},
        }
    )
    assert isinstance(snapshot.flow, CloneFlow)
    assert snapshot.draft is None
    with pytest.raises(PreviewNotReady):
        await orchestrator.execute()

    snapshot = orchestrator.confirm_preview()
    assert snapshot.draft is not None
    assert snapshot.draft.client.full_name == "Mike Jones"

    snapshot = await orchestrator.execute()
    assert snapshot.status == "completed"


@pytest.mark.asyncio
async def test_merge_selection_by_slot(orchestrator, documents_repo, make_document):
    docs = [make_document(), make_document()]
    documents_repo.search.return_value = DocumentSearchResult(documents=docs)
    await orchestrator.start_from_parse(
        {"intent_type": "document_merge", "source_clients": ["Alice", "Bob"]}
    )

    await orchestrator.select_source(docs[0].id, slot=0)
    snapshot = await orchestrator.select_source(docs[1].id, slot=1)

    assert snapshot.flow.preview is not None
    assert snapshot.flow.preview.total == 1000


@pytest.mark.asyncio
async def test_send_flow_saves_item_edits_before_sending(
    orchestrator, documents_repo, dispatcher, make_document
):
    document = make_document()
    documents_repo.search.return_value = DocumentSearchResult(documents=[document])
    snapshot = await orchestrator.start_from_parse(
        {"intent_type": "document_send", "client_name": "John", "selector": "last"}
    )
    assert snapshot.draft is not None

    orchestrator.edit_item(snapshot.draft.items[0].id, rate=600)
    snapshot = await orchestrator.execute()

    assert snapshot.status == "completed"
    documents_repo.create.assert_not_awaited()
    document_id, patch = documents_repo.update.await_args.args
    assert (document_id, patch["total"]) == (document.id, 600)
    dispatcher.send.assert_awaited_once_with(
        document.id, "invoice", "email", "john@example.com"
    )


@pytest.mark.asyncio
async def test_send_flow_uses_edited_client_email(
    orchestrator, documents_repo, clients_repo, dispatcher, make_document
):
    document = make_document()
    documents_repo.search.return_value = DocumentSearchResult(documents=[document])
    await orchestrator.start_from_parse(
        {"intent_type": "document_send", "client_name": "John", "selector": "last"}
    )

    orchestrator.update_draft(
        {"client": {"name": "John Smith", "email": "new@example.com"}}
    )
    snapshot = await orchestrator.execute()

    assert snapshot.status == "completed"
    clients_repo.update.assert_awaited_once_with(
        "client-1", {"email": "new@example.com"}
    )
    dispatcher.send.assert_awaited_once_with(
        document.id, "invoice", "email", "new@example.com"
    )


@pytest.mark.asyncio
async def test_completed_send_review_cannot_run_again(
    orchestrator, documents_repo, session_store, dispatcher, make_document
):
    documents_repo.search.return_value = DocumentSearchResult(
        documents=[make_document()]
    )
    await orchestrator.start_from_parse(
        {"intent_type": "document_send", "client_name": "John", "selector": "last"}
    )
    snapshot = await orchestrator.execute()
    assert snapshot.status == "completed"
    assert snapshot.validation is not None
    assert snapshot.validation.can_execute is False

    with pytest.raises(ValidationBlocked):
        await orchestrator.execute()

    dispatcher.send.assert_awaited_once()
    session_store.complete.assert_awaited_once()


@pytest.mark.asyncio
async def test_draft_editing(orchestrator):
    await orchestrator.start_from_parse(ACTION_PAYLOAD)
    draft = orchestrator.draft
    assert draft is not None

    orchestrator.add_item("Cleanup", quantity=2, rate=25)
    assert orchestrator.draft.subtotal == 550

    orchestrator.remove_item(draft.items[0].id)
    assert [i.description for i in orchestrator.draft.items] == ["Cleanup"]

    orchestrator.update_draft({"tax_rate": 10, "document_type": "estimate"})
    assert orchestrator.draft.document_type == "estimate"
    assert orchestrator.draft.total == 55

    with pytest.raises(InvalidOperation):
        orchestrator.update_draft({"status": "paid"})
    with pytest.raises(ResolutionFailure):
        orchestrator.edit_item("missing", rate=1)


@pytest.mark.asyncio
async def test_edits_autosave_latest_state(orchestrator, session_store):
    await orchestrator.start_from_parse(ACTION_PAYLOAD)
    item_id = orchestrator.draft.items[0].id

    for rate in (510, 520, 530):
        orchestrator.edit_item(item_id, rate=rate)
    await orchestrator.flush()

    assert session_store.save.await_count == 2
    saved = session_store.save.await_args.args[0]
    assert saved.id == "session-1"
    assert saved.draft.items[0].total == 530


@pytest.mark.asyncio
async def test_exact_client_match_fills_contact(orchestrator, clients_repo):
    clients_repo.suggest.return_value = ClientSuggestResult(
        exact_match=ClientSuggestion(
            id="c2",
            name="Mike Jones",
            email="mike@example.com",
            phone="555-0142",
            similarity=1.0,
        )
    )
    await orchestrator.start_from_parse(ACTION_PAYLOAD)

    orchestrator.type_client_name("mike jones")
    await orchestrator.flush()

    client = orchestrator.draft.client
    assert (client.name, client.email, client.phone) == (
        "Mike Jones",
        "mike@example.com",
        "555-0142",
    )
    assert orchestrator.autocomplete.exact_match is not None
    assert orchestrator.autocomplete.exact_match.id == "c2"
    assert orchestrator.autocomplete.suggestions == []


@pytest.mark.asyncio
async def test_resume_reruns_outstanding_clone_search(
    orchestrator, session_store, documents_repo, make_document
):
    source = make_document()
    documents_repo.search.return_value = DocumentSearchResult(documents=[source])
    session_store.load.return_value = SessionSnapshot(
        id="s-1",
        intent_type="document_clone",
        flow=CloneFlow(intent=DocumentCloneIntent(source_client="John")),
    )

    snapshot = await orchestrator.resume("s-1")

    assert snapshot.session_id == "s-1"
    assert snapshot.flow.selected == source
    documents_repo.search.assert_awaited_once()


@pytest.mark.asyncio
async def test_resume_restores_pending_conflict(
    orchestrator, session_store, documents_repo
):
    draft = DraftDocument.model_validate(
        {
            "client": {"name": "John Smith", "email": "john@example.com"},
            "items": [{"description": "Labor", "quantity": 1, "rate": 5, "total": 5}],
        }
    )
    session_store.load.return_value = SessionSnapshot(
        id="s-2",
        intent_type="document_action",
        flow=DocumentActionFlow(intent=DocumentActionIntent()),
        draft=draft,
        actions=[ActionStep(type="create_document", order=1)],
        pending_conflict=_conflict(),
    )

    snapshot = await orchestrator.resume("s-2")
    assert snapshot.pending_conflict is not None

    snapshot = await orchestrator.resolve_conflict("keep")

    assert snapshot.status == "completed"
    assert documents_repo.create.await_args.kwargs["client_decision"] == "keep"


@pytest.mark.asyncio
async def test_resume_unknown_session(orchestrator):
    with pytest.raises(SessionNotFound):
        await orchestrator.resume("missing")


@pytest.mark.asyncio
async def test_results_after_close_are_discarded(orchestrator, session_store):
    await orchestrator.aclose()

    snapshot = await orchestrator.start_from_parse(ACTION_PAYLOAD)

    assert orchestrator.closed
    assert snapshot.session_id is None
    assert snapshot.draft is None
    session_store.save.assert_not_awaited()
