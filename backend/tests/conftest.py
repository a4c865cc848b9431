"""
Kaban - Test Fixtures
=====================

Shared pytest fixtures for all tests.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from kaban.api.main import create_app
from kaban.core.config import Settings
from kaban.core.context import KabanContext, open_context
from kaban.core.database import Database
from kaban.core.schemas import DEFAULT_BOARD_CONFIG


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL=TEST_DATABASE_URL,
    )


# ==========================================================================
# Database Fixtures
# ==========================================================================

@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """
    Fresh in-memory store per test.

    StaticPool keeps the single connection alive so every session sees
    the same tables.
    """
    db = Database(TEST_DATABASE_URL, poolclass=StaticPool)
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest_asyncio.fixture
async def empty_context(database: Database, settings: Settings) -> AsyncGenerator[KabanContext, None]:
    """Context over a store with no board."""
    async with open_context(database, settings) as context:
        yield context


@pytest_asyncio.fixture
async def context(empty_context: KabanContext) -> KabanContext:
    """
    Context over the default board:
    backlog / todo / in_progress (WIP 3) / review (WIP 2) / done (terminal).
    """
    await empty_context.boards.initialize_board(DEFAULT_BOARD_CONFIG)
    return empty_context


# ==========================================================================
# HTTP Client
# ==========================================================================

@pytest_asyncio.fixture
async def client(context: KabanContext, database: Database, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client bound to the test store."""
    app = create_app(settings, database)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
