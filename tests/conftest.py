"""
Shared fixtures for all tests.

Every test gets its own SQLite database file, migrated with the migrations the bot ships with.
"""

import os
import tempfile

import pytest


# igloo reads its settings and sets up logging on import
os.environ.setdefault("DISCORD_TOKEN", "not-a-real-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIRECTORY", tempfile.mkdtemp(prefix="igloo-logs-"))
os.environ.pop("SENTRY_DSN", None)

import sqlalchemy as sa  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from igloo.database import create_engine  # noqa: E402
from igloo.migrations import migrate  # noqa: E402
from igloo.services.config import ConfigService, GuildConfigCache  # noqa: E402
from igloo.services.config_sync import ConfigSyncService  # noqa: E402
from igloo.services.tickets import TicketService  # noqa: E402


GUILD_ID = "111111111111111111"
OTHER_GUILD_ID = "222222222222222222"


@pytest.fixture
async def engine(tmp_path):
    """An engine on an empty database."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'igloo.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
async def migrated_engine(engine):
    """An engine on a database at the newest schema version."""
    await migrate(engine)
    return engine


@pytest.fixture
def db_session(migrated_engine):
    return async_sessionmaker(migrated_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def config_service(db_session):
    return ConfigService(db_session, GuildConfigCache(100))


@pytest.fixture
def sync_service(config_service):
    return ConfigSyncService(config_service)


@pytest.fixture
def ticket_service(db_session):
    return TicketService(db_session)


@pytest.fixture
def statements(migrated_engine):
    """Every SQL statement sent to the database from this point on."""
    executed: list[str] = []

    def record(conn, cursor, statement, parameters, context, executemany):
        executed.append(statement)

    sa.event.listen(migrated_engine.sync_engine, "before_cursor_execute", record)
    yield executed
    sa.event.remove(migrated_engine.sync_engine, "before_cursor_execute", record)
