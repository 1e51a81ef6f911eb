import pytest
from fastapi import status

from crud.clients import SqlClientRepository
from crud.documents import SqlDocumentRepository
from schemas.clients import ClientInfo
from schemas.documents import LineItem
from schemas.review import DraftDocument


async def _seed_document(db_session, name: str) -> None:
    draft = DraftDocument(
        client=ClientInfo(name=name),
        items=[LineItem(description="Labor", quantity=1, rate=400, total=400)],
    )
    await SqlDocumentRepository(db_session).create(draft)


@pytest.mark.asyncio
async def test_client_suggestions(async_client, db_session):
    repo = SqlClientRepository(db_session)
    for name in ("John Smith", "Jon Smith", "Zebra Corp"):
        await repo.create(ClientInfo(name=name))
    await db_session.commit()

    resp = await async_client.get(
        "/api/v1/clients/suggest", params={"q": "John Smith"}
    )

    assert resp.status_code == status.HTTP_200_OK
    data = resp.json()["data"]
    assert data["exact_match"]["name"] == "John Smith"
    assert [s["name"] for s in data["suggestions"]] == ["Jon Smith"]


@pytest.mark.asyncio
async def test_short_query_returns_nothing(async_client):
    resp = await async_client.get("/api/v1/clients/suggest", params={"q": "J"})
    assert resp.json()["data"] == {"suggestions": [], "exact_match": None}


@pytest.mark.asyncio
async def test_suggest_limit_is_bounded(async_client):
    resp = await async_client.get(
        "/api/v1/clients/suggest", params={"q": "John", "limit": 50}
    )
    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_document_search_by_spoken_name(async_client, db_session):
    await _seed_document(db_session, "John Smith")
    await _seed_document(db_session, "Zebra Corp")

    resp = await async_client.post(
        "/api/v1/documents/search", json={"client_name": "Jon Smith"}
    )

    body = resp.json()
    assert resp.status_code == status.HTTP_200_OK
    assert body["message"] == "Found 1 document(s)"
    assert body["data"]["documents"][0]["client"] == "John Smith"
    assert body["data"]["suggestions"]["searched_for"] == "Jon Smith"
