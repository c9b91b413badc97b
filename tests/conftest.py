from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from signal_engine.db.database import Base, get_session
from signal_engine.main import app
from signal_engine.notifications.setup import reset_dispatcher
from signal_engine.signals.models import ContentItem


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database.

    A file database rather than :memory: so that every short-lived session
    sees the same tables and rows.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'signal_engine.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Database session for repository tests."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client with test database"""
    reset_dispatcher()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_item():
    """Build ContentItem instances with sensible defaults."""

    def _make(item_id: str, published_at: datetime | None = None, **fields) -> ContentItem:
        return ContentItem(
            id=item_id,
            published_at=published_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
            **fields,
        )

    return _make
