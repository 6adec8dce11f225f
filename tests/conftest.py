"""Shared fixtures: throwaway SQLite files standing in for both stores."""

import pytest
import pytest_asyncio

from usage_monitor.database import (
    SourceBase,
    create_engine,
    create_session_factory,
    init_aggregate_schema,
)


@pytest_asyncio.fixture
async def aggregate_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'data' / 'monitor.db'}")
    await init_aggregate_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def aggregate_sessions(aggregate_engine):
    return create_session_factory(aggregate_engine)


@pytest.fixture
def gateway_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"


@pytest_asyncio.fixture
async def source_engine(gateway_url):
    engine = create_engine(gateway_url)
    async with engine.begin() as conn:
        await conn.run_sync(SourceBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def source_sessions(source_engine):
    return create_session_factory(source_engine)
