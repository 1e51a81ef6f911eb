"""Review orchestrator: one surface over routing, drafts, execution and sessions.

Hosts construct a ``ReviewOrchestrator`` with their collaborator adapters and
drive it from a view or an HTTP handler. Every mutation marks the session for
a debounced autosave; HTTP handlers that live for a single request call
``save()`` explicitly instead.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from core.exceptions import (
    InvalidOperation,
    ParseFailure,
    PreviewNotReady,
    ResolutionFailure,
    ValidationBlocked,
)
from schemas.clients import ClientInfo, ClientSuggestion
from schemas.documents import LineItem
from schemas.intents import ParseResult
from schemas.review import (
    ActionStep,
    CloneFlow,
    DocumentActionFlow,
    DraftDocument,
    FlowState,
    MergeFlow,
    QueryFlow,
    ReviewSnapshot,
    SendFlow,
    SessionSnapshot,
    SessionStatus,
    TransformFlow,
    ValidationReport,
)
from services.review.client_resolver import ClientAutocomplete, ClientResolver
from services.review.clone_flow import (
    clone_draft,
    search_clone_source,
    select_clone_source,
)
from services.review.document_resolver import DocumentResolver
from services.review.executor import ActionExecutor
from services.review.interfaces import (
    ClientRepository,
    DocumentRepository,
    EmailDispatchService,
    QueryExecutor,
    SessionStore,
    TranscriptParser,
)
from services.review.line_items import edit_item as apply_item_edit
from services.review.line_items import make_item
from services.review.merge_flow import merge_draft, select_merge_source, start_merge
from services.review.models import ExecutionContext, ExecutionReport
from services.review.router import IntentRouter, SearchLimits, build_action_draft
from services.review.send_flow import (
    persist_send_edits,
    select_send_document,
    send_context,
    send_draft,
)
from services.review.session_manager import SessionManager
from services.review.transform_flow import (
    search_transform_client,
    select_transform_source,
    transform_draft,
)
from services.review.validation import validate_draft


logger = logging.getLogger(__name__)

_DRAFT_FIELDS = {"document_type", "client", "tax_rate", "due_date", "summary", "items"}


class ReviewOrchestrator:
    """Drives one review from parse result to executed actions."""

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        clients: ClientRepository,
        dispatcher: EmailDispatchService,
        sessions: SessionStore,
        queries: QueryExecutor,
        parser: TranscriptParser | None = None,
        limits: SearchLimits | None = None,
        autosave_debounce_seconds: float = 2.0,
        suggest_debounce_seconds: float = 0.3,
        suggest_limit: int = 5,
    ) -> None:
        self._documents = documents
        self._clients = clients
        self._parser = parser
        self._limits = limits or SearchLimits()
        self._document_resolver = DocumentResolver(documents)
        self._client_resolver = ClientResolver(clients, default_limit=suggest_limit)
        self._router = IntentRouter(
            self._document_resolver, self._client_resolver, queries, self._limits
        )
        self._executor = ActionExecutor(documents, dispatcher)
        self._session = SessionManager(
            sessions, debounce_seconds=autosave_debounce_seconds
        )
        self._autocomplete = ClientAutocomplete(
            self._client_resolver,
            delay=suggest_debounce_seconds,
            limit=suggest_limit,
            on_exact_match=self._apply_client_match,
        )

        self._transcript: str | None = None
        self._parsed_data: dict[str, Any] = {}
        self._flow: FlowState | None = None
        self._draft: DraftDocument | None = None
        self._actions: list[ActionStep] = []
        self._context = ExecutionContext()
        self._status: SessionStatus = "in_progress"
        self._closed = False

    # -- state ---------------------------------------------------------------

    @property
    def session_id(self) -> str | None:
        return self._session.session_id

    @property
    def flow(self) -> FlowState:
        if self._flow is None:
            raise InvalidOperation("No review has been started")
        return self._flow

    @property
    def draft(self) -> DraftDocument | None:
        return self._draft

    @property
    def actions(self) -> list[ActionStep]:
        return list(self._actions)

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def autocomplete(self) -> ClientAutocomplete:
        return self._autocomplete

    @property
    def closed(self) -> bool:
        return self._closed

    def validation(self) -> ValidationReport | None:
        if self._draft is None:
            return None
        return validate_draft(self._draft, self._actions)

    def snapshot(self) -> ReviewSnapshot:
        """Presentation view of the current review."""
        flow = self.flow
        return ReviewSnapshot(
            session_id=self.session_id,
            intent_type=flow.kind,
            flow=flow,
            draft=self._draft,
            actions=self.actions,
            validation=self.validation(),
            status=self._status,
            pending_conflict=self._session.pending_conflict,
            document_id=self._context.document_id,
            document_number=self._context.document_number,
            client_suggestions=list(self._autocomplete.suggestions),
        )

    def session_snapshot(self) -> SessionSnapshot:
        flow = self.flow
        return SessionSnapshot(
            id=self.session_id,
            intent_type=flow.kind,
            original_transcript=self._transcript,
            parsed_data=self._parsed_data,
            flow=flow,
            draft=self._draft,
            actions=self.actions,
            query_result=flow.result if isinstance(flow, QueryFlow) else None,
            status=self._status,
            summary=self._summary(),
            created_document_id=self._context.document_id,
            created_document_type=self._context.document_type,
            created_document_number=self._context.document_number,
            pending_conflict=self._session.pending_conflict,
        )

    def _summary(self) -> str | None:
        if self._draft is not None and self._draft.summary:
            return self._draft.summary
        intent = getattr(self._flow, "intent", None)
        return getattr(intent, "summary", None) or None

    # -- starting and resuming -----------------------------------------------

    async def start(self, transcript: str) -> ReviewSnapshot:
        """Parse ``transcript`` and route the result."""
        if self._parser is None:
            raise InvalidOperation("No transcript parser is configured")
        result = await self._parser.parse(transcript)
        return await self.start_from_parse(result, transcript=transcript)

    async def start_from_parse(
        self,
        parse_result: ParseResult | ParseFailure | dict[str, Any],
        *,
        transcript: str | None = None,
    ) -> ReviewSnapshot:
        flow = await self._router.route(parse_result)
        if self._closed:
            logger.debug("Review closed during routing; result discarded")
            return self.snapshot() if self._flow is not None else _bare_snapshot(flow)

        self._transcript = transcript
        self._parsed_data = _dump_parse(parse_result)
        self._set_flow(flow)
        self._prepare_draft()

        await self._session.save_now(self.session_snapshot())
        if isinstance(flow, QueryFlow):
            self._status = "completed"
            await self._session.complete(None, None)
        return self.snapshot()

    async def resume(self, session_id: str) -> ReviewSnapshot:
        stored = await self._session.resume(session_id)
        self._transcript = stored.original_transcript
        self._parsed_data = dict(stored.parsed_data)
        self._draft = stored.draft
        self._actions = list(stored.actions)
        self._status = stored.status
        self._context = ExecutionContext(
            document_id=stored.created_document_id,
            document_type=stored.created_document_type,
            document_number=stored.created_document_number,
        )
        if stored.pending_conflict is not None:
            self._session.record_conflict(stored.pending_conflict)
        self._flow = await self._rehydrate(stored.flow)
        if isinstance(self._flow, SendFlow) and self._context.document_id is None:
            self._context = send_context(self._flow)
        return self.snapshot()

    async def _rehydrate(self, flow: FlowState) -> FlowState:
        """Re-run resolution that was still outstanding when the session was saved."""
        if self._draft is not None or self._status == "completed":
            return flow
        match flow:
            case CloneFlow() if flow.selected is None:
                return await search_clone_source(
                    flow,
                    flow.intent.source_client,
                    self._document_resolver,
                    self._client_resolver,
                    limit=self._limits.clone,
                )
            case MergeFlow() if any(slot.is_searching for slot in flow.slots):
                return await start_merge(
                    flow.intent, self._document_resolver, limit=self._limits.clone
                )
            case TransformFlow() if (
                flow.source is None and flow.selection == "searching"
            ):
                return await search_transform_client(
                    flow,
                    flow.search_query or flow.intent.source.client_name,
                    self._document_resolver,
                    self._client_resolver,
                    limit=self._limits.clone,
                )
        return flow

    def _set_flow(self, flow: FlowState) -> None:
        self._flow = flow
        self._draft = None
        self._actions = []
        self._context = ExecutionContext()
        self._status = "in_progress"

    def _prepare_draft(self) -> None:
        flow = self._flow
        if isinstance(flow, DocumentActionFlow):
            self._draft, self._actions = build_action_draft(flow)
        elif isinstance(flow, SendFlow) and flow.selected is not None:
            self._draft, self._actions = send_draft(flow)
            self._context = send_context(flow)

    # -- source selection ----------------------------------------------------

    async def search_client(self, client_name: str) -> ReviewSnapshot:
        """Re-search sources under a different client name."""
        flow = self.flow
        match flow:
            case CloneFlow():
                updated: FlowState = await search_clone_source(
                    flow,
                    client_name,
                    self._document_resolver,
                    self._client_resolver,
                    limit=self._limits.clone,
                )
            case TransformFlow():
                updated = await search_transform_client(
                    flow,
                    client_name,
                    self._document_resolver,
                    self._client_resolver,
                    limit=self._limits.clone,
                )
            case _:
                raise InvalidOperation(f"Client search does not apply to {flow.kind}")
        if not self._closed:
            self._flow = updated
            self._touch()
        return self.snapshot()

    async def select_source(self, document_id: str, slot: int = 0) -> ReviewSnapshot:
        flow = self.flow
        match flow:
            case CloneFlow():
                updated: FlowState = await select_clone_source(
                    flow, document_id, self._document_resolver
                )
            case MergeFlow():
                updated = await select_merge_source(
                    flow, slot, document_id, self._document_resolver
                )
            case SendFlow():
                updated = await select_send_document(
                    flow, document_id, self._document_resolver, self._client_resolver
                )
            case TransformFlow():
                updated = await select_transform_source(
                    flow, document_id, self._document_resolver
                )
            case _:
                raise InvalidOperation(
                    f"Source selection does not apply to {flow.kind}"
                )
        if self._closed:
            return self.snapshot()
        self._flow = updated
        if isinstance(updated, SendFlow):
            self._draft, self._actions = send_draft(updated)
            self._context = send_context(updated)
        self._touch()
        return self.snapshot()

    def confirm_preview(self) -> ReviewSnapshot:
        """Turn the resolved preview into the editable draft."""
        flow = self.flow
        match flow:
            case CloneFlow():
                draft, actions = clone_draft(flow)
            case MergeFlow():
                draft, actions = merge_draft(flow)
            case TransformFlow():
                draft, actions = transform_draft(flow)
            case SendFlow():
                draft, actions = send_draft(flow)
            case _:
                raise InvalidOperation(
                    f"There is no preview to confirm for {flow.kind}"
                )
        self._draft = draft
        self._actions = actions
        self._touch()
        return self.snapshot()

    # -- draft editing -------------------------------------------------------

    def _require_draft(self) -> DraftDocument:
        if self._draft is None:
            raise PreviewNotReady("There is no draft to edit yet")
        return self._draft

    def update_draft(self, patch: dict[str, Any]) -> ReviewSnapshot:
        """Replace top-level draft fields (client, items, tax rate and so on)."""
        draft = self._require_draft()
        unknown = set(patch) - _DRAFT_FIELDS
        if unknown:
            raise InvalidOperation(f"Unknown draft fields: {sorted(unknown)}")
        data = draft.model_dump(exclude={"subtotal", "tax_amount", "total"})
        data.update(patch)
        if "items" in patch:
            data["total_override"] = None
            self._mark_items_edited()
        self._draft = DraftDocument.model_validate(data)
        self._touch()
        return self.snapshot()

    def edit_item(self, item_id: str, **changes: Any) -> ReviewSnapshot:
        draft = self._require_draft()
        items = list(draft.items)
        for idx, item in enumerate(items):
            if item.id == item_id:
                items[idx] = apply_item_edit(item, **changes)
                break
        else:
            raise ResolutionFailure(f"Line item {item_id} not found")
        self._replace_items(items)
        return self.snapshot()

    def add_item(
        self,
        description: str,
        quantity: float | None = None,
        unit: str | None = None,
        rate: float | None = None,
    ) -> ReviewSnapshot:
        draft = self._require_draft()
        item = make_item(description, quantity, unit, rate)
        self._replace_items([*draft.items, item])
        return self.snapshot()

    def remove_item(self, item_id: str) -> ReviewSnapshot:
        draft = self._require_draft()
        items = [item for item in draft.items if item.id != item_id]
        if len(items) == len(draft.items):
            raise ResolutionFailure(f"Line item {item_id} not found")
        self._replace_items(items)
        return self.snapshot()

    def _replace_items(self, items: list[LineItem]) -> None:
        draft = self._require_draft()
        # A manual item edit supersedes a total fixed by clone/merge.
        self._draft = draft.model_copy(update={"items": items, "total_override": None})
        self._mark_items_edited()
        self._touch()

    def _mark_items_edited(self) -> None:
        if isinstance(self._flow, SendFlow):
            self._flow = self._flow.model_copy(update={"items_edited": True})

    def type_client_name(self, name: str) -> None:
        """Update the client name and request debounced suggestions."""
        draft = self._require_draft()
        client = draft.client.model_copy(update={"name": name})
        self._draft = draft.model_copy(update={"client": client})
        self._autocomplete.request(name)
        self._touch()

    async def apply_client_suggestion(self, suggestion: ClientSuggestion) -> None:
        await self._apply_client_match(suggestion)

    async def _apply_client_match(self, suggestion: ClientSuggestion) -> None:
        if self._closed or self._draft is None:
            return
        client = ClientInfo(
            name=suggestion.name,
            email=suggestion.email,
            phone=suggestion.phone,
            address=suggestion.address,
        )
        self._draft = self._draft.model_copy(update={"client": client})
        self._autocomplete.suggestions = []
        self._touch()

    # -- execution -----------------------------------------------------------

    async def execute(self) -> ReviewSnapshot:
        draft = self._require_draft()
        readiness = validate_draft(draft, self._actions)
        if not readiness.can_execute:
            message = (
                "Draft is not ready to execute"
                if readiness.blocking
                else "No actions are queued"
            )
            raise ValidationBlocked(readiness, message)
        if isinstance(self._flow, SendFlow):
            await persist_send_edits(self._flow, draft, self._documents, self._clients)
        report = await self._executor.execute_all(draft, self._actions, self._context)
        await self._apply_report(report)
        return self.snapshot()

    async def retry(self, action_id: str) -> ReviewSnapshot:
        draft = self._require_draft()
        report = await self._executor.retry_action(
            draft, self._actions, action_id, self._context
        )
        await self._apply_report(report)
        return self.snapshot()

    async def resolve_conflict(self, decision: str) -> ReviewSnapshot:
        """Apply the user's client decision and resume the paused save."""
        if self._session.pending_conflict is None:
            raise InvalidOperation("No client conflict is pending")
        self._context.client_decision = self._session.resolve_conflict(decision)
        logger.info("Client conflict resolved with %r", self._context.client_decision)
        report = await self._executor.execute_all(
            self._require_draft(), self._actions, self._context
        )
        await self._apply_report(report)
        return self.snapshot()

    async def _apply_report(self, report: ExecutionReport) -> None:
        if self._closed:
            logger.debug("Review closed during execution; report discarded")
            return
        self._actions = report.actions
        self._context = report.context
        if report.conflict is not None:
            self._session.record_conflict(report.conflict)
        if report.completed:
            self._status = "completed"
            await self._session.save_now(self.session_snapshot())
            await self._session.complete(
                self._context.document_id, self._context.document_type
            )
            return
        self._touch()

    # -- persistence ---------------------------------------------------------

    async def save(self) -> str:
        """Persist the current state immediately."""
        return await self._session.save_now(self.session_snapshot())

    def _touch(self) -> None:
        if self._flow is not None and not self._closed:
            self._session.schedule_autosave(self.session_snapshot)

    async def flush(self) -> None:
        await self._autocomplete.flush()
        await self._session.flush()

    async def aclose(self) -> None:
        """Stop timers; results of calls still in flight are discarded."""
        self._closed = True
        await self._autocomplete.aclose()
        await self._session.aclose()


def _dump_parse(parse_result: Any) -> dict[str, Any]:
    if isinstance(parse_result, BaseModel):
        return parse_result.model_dump(mode="json")
    if isinstance(parse_result, ParseFailure):
        return {"success": False, "error": parse_result.message}
    if isinstance(parse_result, dict):
        return dict(parse_result)
    return {}


def _bare_snapshot(flow: FlowState) -> ReviewSnapshot:
    return ReviewSnapshot(intent_type=flow.kind, flow=flow)
