"""Review workflow endpoints.

Each request resumes the stored session, applies one step and saves the
result, so a review can be continued from any client after an interruption.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Query

from crud.review_sessions import SqlSessionStore
from dependencies.db import DbSession
from dependencies.review import Orchestrator
from schemas.api import ApiResponse
from schemas.review import (
    ClientSearchRequest,
    ConflictDecisionRequest,
    DraftUpdateRequest,
    ParseRequest,
    ReviewSnapshot,
    RouteRequest,
    SelectSourceRequest,
    SessionSummary,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get(
    "",
    summary="List recent review sessions",
    response_model=ApiResponse[list[SessionSummary]],
)
async def list_reviews(
    db: DbSession,
    status: Annotated[str | None, Query(pattern="^(in_progress|completed)$")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> ApiResponse[list[SessionSummary]]:
    sessions = await SqlSessionStore(db).list_recent(status=status, limit=limit)
    return ApiResponse(data=sessions, message=f"Found {len(sessions)} session(s)")


@router.post(
    "/parse",
    summary="Start a review from a transcript",
    response_model=ApiResponse[ReviewSnapshot],
    description=(
        "Parse the transcript into an intent, run the matching flow's initial "
        "resolution and persist the new session. Unparseable transcripts come "
        "back as an editable document draft carrying the parse error."
    ),
)
async def parse_transcript(
    body: ParseRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    snapshot = await orchestrator.start(body.transcript)
    return ApiResponse(data=snapshot, message="Review started")


@router.post(
    "/route",
    summary="Start a review from a parsed payload",
    response_model=ApiResponse[ReviewSnapshot],
)
async def route_parse_result(
    body: RouteRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    snapshot = await orchestrator.start_from_parse(
        body.parse_result, transcript=body.transcript
    )
    return ApiResponse(data=snapshot, message="Review started")


@router.get(
    "/{session_id}",
    summary="Resume a review session",
    response_model=ApiResponse[ReviewSnapshot],
    responses={404: {"description": "Review session not found"}},
)
async def get_review(
    session_id: str, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    snapshot = await orchestrator.resume(session_id)
    return ApiResponse(data=snapshot, message="Review session loaded")


@router.patch(
    "/{session_id}/draft",
    summary="Edit the review draft",
    response_model=ApiResponse[ReviewSnapshot],
)
async def update_draft(
    session_id: str, body: DraftUpdateRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    fields = body.model_dump(exclude_unset=True, exclude={"item"})
    if body.items is not None:
        fields["items"] = body.items
    if fields:
        orchestrator.update_draft(fields)
    if body.item is not None:
        changes = body.item.model_dump(exclude_unset=True, exclude={"id"})
        orchestrator.edit_item(body.item.id, **changes)
    await orchestrator.save()
    return ApiResponse(data=orchestrator.snapshot(), message="Draft updated")


@router.post(
    "/{session_id}/search-client",
    summary="Search sources under another client name",
    response_model=ApiResponse[ReviewSnapshot],
)
async def search_client(
    session_id: str, body: ClientSearchRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    snapshot = await orchestrator.search_client(body.client_name)
    await orchestrator.save()
    return ApiResponse(data=snapshot, message="Source search updated")


@router.post(
    "/{session_id}/select",
    summary="Select a source document",
    response_model=ApiResponse[ReviewSnapshot],
)
async def select_source(
    session_id: str, body: SelectSourceRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    await orchestrator.select_source(body.document_id, slot=body.slot)
    await orchestrator.save()
    return ApiResponse(data=orchestrator.snapshot(), message="Source selected")


@router.post(
    "/{session_id}/confirm",
    summary="Turn the preview into an editable draft",
    response_model=ApiResponse[ReviewSnapshot],
)
async def confirm_preview(
    session_id: str, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    orchestrator.confirm_preview()
    await orchestrator.save()
    return ApiResponse(data=orchestrator.snapshot(), message="Draft ready")


@router.post(
    "/{session_id}/execute",
    summary="Run the queued actions",
    response_model=ApiResponse[ReviewSnapshot],
    responses={422: {"description": "Draft has blocking validation errors"}},
)
async def execute_review(
    session_id: str, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    await orchestrator.execute()
    await orchestrator.save()
    return _execution_response(orchestrator.snapshot())


@router.post(
    "/{session_id}/actions/{action_id}/retry",
    summary="Retry a failed action",
    response_model=ApiResponse[ReviewSnapshot],
)
async def retry_action(
    session_id: str, action_id: str, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    await orchestrator.retry(action_id)
    await orchestrator.save()
    return _execution_response(orchestrator.snapshot())


@router.post(
    "/{session_id}/conflict",
    summary="Resolve a client conflict",
    response_model=ApiResponse[ReviewSnapshot],
    description="Decision is one of `keep`, `use_new` or `update`.",
)
async def resolve_conflict(
    session_id: str, body: ConflictDecisionRequest, orchestrator: Orchestrator
) -> ApiResponse[ReviewSnapshot]:
    await orchestrator.resume(session_id)
    await orchestrator.resolve_conflict(body.decision)
    await orchestrator.save()
    return _execution_response(orchestrator.snapshot())


def _execution_response(snapshot: ReviewSnapshot) -> ApiResponse[ReviewSnapshot]:
    if snapshot.status == "completed":
        message = "All actions completed"
    elif snapshot.pending_conflict is not None:
        message = "Client details need a decision"
    elif any(a.status == "failed" for a in snapshot.actions):
        message = "An action failed"
    else:
        message = "Actions pending"
    return ApiResponse(data=snapshot, message=message)
