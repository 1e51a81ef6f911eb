import pytest
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from dependencies.db import init_models, make_engine


def test_in_memory_sqlite_shares_one_connection():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    assert isinstance(engine.pool, StaticPool)


def test_file_sqlite_uses_regular_pool(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'reviews.db'}")
    assert not isinstance(engine.pool, StaticPool)


@pytest.mark.asyncio
async def test_init_models_creates_every_table():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    try:
        await init_models(engine)
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda c: inspect(c).get_table_names())
    finally:
        await engine.dispose()
    assert {"clients", "documents", "review_sessions"} <= set(tables)
