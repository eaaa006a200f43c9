from igloo.migrations.registry import MigrationRegistry
from igloo.migrations.versions import (
    v001_initial_schema,
    v002_shop_tables,
    v003_payment_settings,
    v004_sync_config_tables,
)


__all__ = ("default_registry",)


def default_registry() -> MigrationRegistry:
    """Return a registry holding every migration shipped with the bot."""
    return MigrationRegistry(
        [
            v001_initial_schema.migration,
            v002_shop_tables.migration,
            v003_payment_settings.migration,
            v004_sync_config_tables.migration,
        ]
    )
