"""Client name suggestions for the review client picker."""

from typing import Annotated

from fastapi import APIRouter, Query

from core.config import get_settings
from crud.clients import SqlClientRepository
from dependencies.db import DbSession
from schemas.api import ApiResponse
from schemas.clients import ClientSuggestResult
from services.review.client_resolver import ClientResolver


router = APIRouter(prefix="/clients", tags=["clients"])


@router.get(
    "/suggest",
    summary="Suggest clients by name",
    response_model=ApiResponse[ClientSuggestResult],
    description=(
        "Rank stored clients by fuzzy and phonetic similarity to `q`. Queries "
        "shorter than two characters return no suggestions. A canonical-name "
        "hit is returned as `exact_match`."
    ),
)
async def suggest_clients(
    db: DbSession,
    q: Annotated[str, Query(max_length=200)] = "",
    limit: Annotated[int | None, Query(ge=1, le=20)] = None,
) -> ApiResponse[ClientSuggestResult]:
    resolver = ClientResolver(
        SqlClientRepository(db), default_limit=get_settings().CLIENT_SUGGEST_LIMIT
    )
    result = await resolver.suggest(q, limit)
    return ApiResponse(data=result, message="Client suggestions retrieved")
