from __future__ import annotations

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.ext.asyncio import AsyncEngine

from igloo.database import SchemaVersion
from igloo.database.base import utcnow
from igloo.errors import MigrationFailure
from igloo.log import get_logger
from igloo.migrations.registry import Migration, MigrationRegistry


__all__ = ("current_version", "downgrade", "migrate")

log = get_logger(__name__)

ledger = SchemaVersion.__table__


def _ensure_ledger(connection: sa.Connection) -> None:
    with connection.begin():
        ledger.create(connection, checkfirst=True)


def _applied_versions(connection: sa.Connection) -> set[int]:
    with connection.begin():
        if not sa.inspect(connection).has_table(ledger.name):
            return set()
        return set(connection.scalars(sa.select(ledger.c.version)))


def _operations(connection: sa.Connection) -> Operations:
    return Operations(MigrationContext.configure(connection))


def _apply(connection: sa.Connection, migration: Migration) -> None:
    with connection.begin():
        migration.up(_operations(connection))
        connection.execute(
            sa.insert(ledger).values(version=migration.version, name=migration.name, applied_at=utcnow())
        )


def _revert(connection: sa.Connection, migration: Migration) -> None:
    with connection.begin():
        migration.down(_operations(connection))
        connection.execute(sa.delete(ledger).where(ledger.c.version == migration.version))


def _run_upgrade(connection: sa.Connection, registry: MigrationRegistry) -> list[int]:
    _ensure_ledger(connection)
    applied = _applied_versions(connection)
    newly_applied: list[int] = []
    for migration in registry:
        if migration.version in applied:
            continue
        log.info("Applying migration %s: %s", migration.version, migration.name)
        try:
            _apply(connection, migration)
        except Exception as e:
            log.error("Migration %s (%s) failed, rolled back", migration.version, migration.name, exc_info=True)
            raise MigrationFailure(migration.version, migration.name) from e
        newly_applied.append(migration.version)
        log.info("Migration %s applied", migration.version)
    return newly_applied


def _run_downgrade(connection: sa.Connection, registry: MigrationRegistry, target: int) -> list[int]:
    applied = _applied_versions(connection)
    reverted: list[int] = []
    for migration in reversed(list(registry)):
        if migration.version <= target or migration.version not in applied:
            continue
        log.info("Reverting migration %s: %s", migration.version, migration.name)
        try:
            _revert(connection, migration)
        except Exception as e:
            log.error("Reverting migration %s (%s) failed", migration.version, migration.name, exc_info=True)
            raise MigrationFailure(migration.version, migration.name) from e
        reverted.append(migration.version)
    return reverted


async def migrate(engine: AsyncEngine, registry: MigrationRegistry | None = None) -> list[int]:
    """
    Bring the database up to the newest registered version.

    Every pending migration runs in its own transaction together with its ledger row,
    so a failure leaves the database at the last version that applied cleanly.
    Returns the versions applied by this call, which is empty when the database is already current.

    Raises:
        MigrationFailure: chained to the underlying error of the migration that failed.
    """
    if registry is None:
        from igloo.migrations.versions import default_registry

        registry = default_registry()
    registry.validate()

    async with engine.connect() as conn:
        applied = await conn.run_sync(_run_upgrade, registry)

    if applied:
        log.info("Applied %d migration(s), database is now at version %d", len(applied), applied[-1])
    else:
        log.info("Database schema is up to date")
    return applied


async def current_version(engine: AsyncEngine) -> int:
    """Return the highest applied migration version, 0 when nothing has been applied."""
    async with engine.connect() as conn:
        applied = await conn.run_sync(_applied_versions)
    return max(applied, default=0)


async def downgrade(engine: AsyncEngine, registry: MigrationRegistry | None = None, *, target: int = 0) -> list[int]:
    """Revert every applied migration newer than `target`, newest first. Returns the reverted versions."""
    if registry is None:
        from igloo.migrations.versions import default_registry

        registry = default_registry()

    async with engine.connect() as conn:
        reverted = await conn.run_sync(_run_downgrade, registry, target)

    log.info("Reverted %d migration(s) down to version %d", len(reverted), target)
    return reverted
