from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass

from alembic.operations import Operations


__all__ = ("Migration", "MigrationRegistry")

MigrationStep = Callable[[Operations], None]


@dataclass(frozen=True)
class Migration:
    """
    A single versioned schema change.

    `up` and `down` receive an alembic `Operations` bound to the connection the migration runs on,
    and are called inside the migration's transaction.
    """

    version: int
    name: str
    up: MigrationStep
    down: MigrationStep


class MigrationRegistry:
    """An ordered set of migrations keyed by version. Iteration always goes from the lowest version up."""

    def __init__(self, migrations: list[Migration] | None = None) -> None:
        self._migrations: dict[int, Migration] = {}
        for migration in migrations or ():
            self.register(migration)

    def register(self, migration: Migration) -> Migration:
        if migration.version < 1:
            msg = f"Migration versions start at 1, got {migration.version} ({migration.name})"
            raise ValueError(msg)
        if existing := self._migrations.get(migration.version):
            msg = f"Migration version {migration.version} is already registered as {existing.name!r}"
            raise ValueError(msg)
        self._migrations[migration.version] = migration
        return migration

    def validate(self) -> None:
        """Raise ValueError unless the registered versions are exactly 1..N."""
        versions = sorted(self._migrations)
        expected = list(range(1, len(versions) + 1))
        if versions != expected:
            missing = sorted(set(range(1, max(versions, default=0) + 1)) - set(versions))
            msg = f"Migration versions must be contiguous from 1, missing {missing}"
            raise ValueError(msg)

    def get(self, version: int) -> Migration | None:
        return self._migrations.get(version)

    @property
    def latest(self) -> int:
        return max(self._migrations, default=0)

    def __iter__(self) -> Iterator[Migration]:
        for version in sorted(self._migrations):
            yield self._migrations[version]

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, version: object) -> bool:
        return version in self._migrations
