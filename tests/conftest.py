"""Shared test fixtures for pytest.

Environment defaults are set before any application module is imported so
``core.config.get_settings`` and the module-level engine in
``dependencies.db`` pick up an in-memory database and no scheduler.
"""

import os
from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("GEMINI_API_KEY", "")

import models  # noqa: E402,F401  registers every table on Base.metadata
from core.exceptions import ParseFailure  # noqa: E402
from models.base import Base  # noqa: E402
from schemas.clients import ClientSuggestResult  # noqa: E402
from schemas.documents import (  # noqa: E402
    DispatchResult,
    DocumentSearchResult,
    SaveDocumentResult,
    SourceDocument,
)
from schemas.queries import QueryResult  # noqa: E402


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", future=True, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    SessionLocal = async_sessionmaker(
        db_engine, expire_on_commit=False, class_=AsyncSession
    )
    async with SessionLocal() as session:
        yield session


@pytest.fixture
def make_document() -> Callable[..., SourceDocument]:
    """Build a ``SourceDocument`` with one priced line item by default."""

    counter = {"n": 0}

    def _make(**overrides: Any) -> SourceDocument:
        counter["n"] += 1
        n = counter["n"]
        data: dict[str, Any] = {
            "id": f"doc-{n}",
            "type": "invoice",
            "title": f"Invoice {n}",
            "number": f"INV-2026-{n:04d}",
            "client": "John Smith",
            "client_id": "client-1",
            "client_email": "john@example.com",
            "client_phone": "555-0100",
            "amount": 500.0,
            "line_items": [
                {
                    "description": "Labor",
                    "quantity": 1,
                    "unit": "job",
                    "rate": 500,
                    "total": 500,
                }
            ],
        }
        data.update(overrides)
        return SourceDocument(**data)

    return _make


@pytest.fixture
def documents_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.search.return_value = DocumentSearchResult()
    repo.fetch.return_value = None
    repo.create.return_value = SaveDocumentResult(
        document_id="new-doc",
        document_type="invoice",
        document_number="INV-2026-0001",
        client_id="client-1",
    )
    return repo


@pytest.fixture
def clients_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.suggest.return_value = ClientSuggestResult()
    return repo


@pytest.fixture
def dispatcher() -> AsyncMock:
    service = AsyncMock()
    service.send.return_value = DispatchResult(success=True)
    return service


@pytest.fixture
def session_store() -> AsyncMock:
    store = AsyncMock()
    store.save.return_value = "session-1"
    store.load.return_value = None
    return store


@pytest.fixture
def query_executor() -> AsyncMock:
    executor = AsyncMock()
    executor.execute.return_value = QueryResult(answer="Found 0 documents.")
    return executor


@pytest.fixture
def parser() -> AsyncMock:
    transcript_parser = AsyncMock()
    transcript_parser.parse.return_value = ParseFailure()
    return transcript_parser


@pytest_asyncio.fixture
async def async_client(
    db_session: AsyncSession, parser: AsyncMock, dispatcher: AsyncMock
) -> AsyncGenerator[AsyncClient, None]:
    """Async client bound to the in-memory database and mocked collaborators."""
    from dependencies.db import get_db
    from dependencies.review import get_dispatcher, get_transcript_parser
    from main import app

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_transcript_parser] = lambda: parser
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
