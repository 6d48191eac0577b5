"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Redis is always mocked.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from leadqueue.database import Base
from leadqueue.models import Agent, Lead


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def make_agent(db):
    """Factory: insert an agent row."""
    async def _make(full_name: str = "Test Agent", role: str = "agent", is_active: bool = True) -> Agent:
        agent = Agent(full_name=full_name, role=role, is_active=is_active)
        db.add(agent)
        await db.commit()
        return agent
    return _make


@pytest.fixture
def make_lead(db):
    """Factory: insert a lead row (pending, unleased unless overridden)."""
    async def _make(
        assigned_to: uuid.UUID | None = None,
        created_at: datetime | None = None,
        **fields,
    ) -> Lead:
        fields.setdefault("business_name", "Acme Plumbing")
        lead = Lead(
            assigned_to=assigned_to,
            created_at=created_at or datetime.now(timezone.utc),
            **fields,
        )
        db.add(lead)
        await db.commit()
        return lead
    return _make


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    with patch("leadqueue.utils.redis_client.get_redis", new_callable=AsyncMock) as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock
