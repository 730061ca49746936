"""Shared pytest fixtures for RevalOS test suite.

Provides:
- anyio_backend: async tests run on asyncio only
- db_engine: in-memory SQLite async engine with all tables
- db_session: SAVEPOINT-isolated async session (app commits don't leak)
- clock: settable clock injected into every lifecycle operation
- evidence_source: in-memory evidence collaborator
- client: AsyncClient with dependency overrides for DB-backed testing
"""

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from src.api.dependencies import get_clock, get_evidence_source
from src.cycles.evidence import InMemoryEvidenceSource
from src.db.session import Base, get_async_session
import src.db.tables  # noqa: F401  (register ORM models on Base.metadata)


class FrozenClock:
    """Clock returning a fixed instant until moved with ``set``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def set(self, year: int, month: int, day: int) -> None:
        self.now = datetime(year, month, day, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def evidence_source() -> InMemoryEvidenceSource:
    return InMemoryEvidenceSource()


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Provide a SAVEPOINT-isolated session.

    The outer transaction is never committed; it rolls back at teardown.
    Application code calling session.commit() triggers a SAVEPOINT release,
    which is then restarted so subsequent operations stay in the same
    outer transaction. This ensures full test isolation.
    """
    async with db_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        # Start a nested SAVEPOINT
        nested = await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(sync_session, transaction):  # noqa: ARG001
            nonlocal nested
            if transaction.nested and not transaction._parent.nested:
                nested = conn.sync_connection.begin_nested()

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
async def client(db_session, clock, evidence_source):
    """AsyncClient with session, clock and evidence source overridden."""
    from src.api.main import app

    async def _override_session():
        yield db_session

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_evidence_source] = lambda: evidence_source

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"User-Agent": "revalos-tests/1.0"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
