from igloo.migrations.registry import Migration, MigrationRegistry
from igloo.migrations.runner import current_version, downgrade, migrate


__all__ = (
    "Migration",
    "MigrationRegistry",
    "current_version",
    "downgrade",
    "migrate",
)
