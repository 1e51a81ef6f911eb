"""Document search by spoken client name."""

from fastapi import APIRouter

from crud.documents import SqlDocumentRepository
from dependencies.db import DbSession
from schemas.api import ApiResponse
from schemas.documents import DocumentSearchFilter, DocumentSearchResult


router = APIRouter(prefix="/documents", tags=["documents"])


@router.post(
    "/search",
    summary="Search documents",
    response_model=ApiResponse[DocumentSearchResult],
    description=(
        "Find documents whose client name resembles `client_name`, newest first. "
        "When a name is given, similar client names are returned as suggestions."
    ),
)
async def search_documents(
    filters: DocumentSearchFilter, db: DbSession
) -> ApiResponse[DocumentSearchResult]:
    result = await SqlDocumentRepository(db).search(filters)
    count = len(result.documents)
    return ApiResponse(data=result, message=f"Found {count} document(s)")
