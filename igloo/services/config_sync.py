"""
Keeps the `ticket_config` and `shop_config` tables in step with the guild configuration documents.

The JSON document is the source of truth. `sync_all` first copies the document into both tables and only
afterwards reads the tables back, so a value set in the document always replaces a diverging table value.
Run on its own, the reverse step copies every set column into the document, except columns which only hold
the document's own value in the form the table stores it (whole hours, a tax rate rounded to cents).

Every sync is best effort: failures are logged and reported as False, never raised.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from igloo import constants
from igloo.database import ShopConfig, TicketConfig
from igloo.database.base import utcnow
from igloo.log import get_logger
from igloo.services.config import ConfigService


__all__ = ("ConfigSyncService",)

log = get_logger(__name__)


def _snowflake(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _or_default(default: Any) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        return default if value is None else value

    return convert


def _whole_number(default: int) -> Callable[[Any], int]:
    def convert(value: Any) -> int:
        return default if value is None else int(value)

    return convert


def _tax_rate(value: Any) -> float:
    # the column is numeric(5, 2)
    return round(float(value if value is not None else 0), 2)


# (document key, column, document value -> column value)
Fields = tuple[tuple[str, str, Callable[[Any], Any]], ...]

TICKET_FIELDS: Fields = (
    ("category", "ticket_category_id", _snowflake),
    ("support_role", "support_role_id", _snowflake),
    ("log_channel", "log_channel_id", _snowflake),
    ("auto_close_hours", "auto_close_hours", _whole_number(constants.TicketsCls.default_auto_close_hours)),
    ("max_open_tickets", "max_open_tickets", _whole_number(constants.TicketsCls.default_max_open)),
    ("welcome_message", "welcome_message", _or_default(None)),
)
SHOP_FIELDS: Fields = (
    ("channel", "shop_channel_id", _snowflake),
    ("customer_role", "customer_role_id", _snowflake),
    ("currency", "currency", _or_default("USD")),
    ("tax_rate", "tax_rate", _tax_rate),
)

MIRRORS: dict[str, tuple[type[TicketConfig] | type[ShopConfig], Fields]] = {
    "tickets": (TicketConfig, TICKET_FIELDS),
    "shop": (ShopConfig, SHOP_FIELDS),
}


class ConfigSyncService:
    """Copies the `tickets` and `shop` sections between the configuration documents and their mirror tables."""

    def __init__(self, config: ConfigService, db_session: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.config = config
        self.db_session = db_session or config.db_session

    async def sync_ticket_settings(self, guild_id: str | int) -> bool:
        """Write the document's `tickets` section into `ticket_config`. Returns whether the sync succeeded."""
        return await self._sync_to_mirror(str(guild_id), "tickets")

    async def sync_shop_settings(self, guild_id: str | int) -> bool:
        """Write the document's `shop` section into `shop_config`. Returns whether the sync succeeded."""
        return await self._sync_to_mirror(str(guild_id), "shop")

    async def sync_command_settings_to_config(self, guild_id: str | int) -> bool:
        """
        Push the mirror table rows of a guild back into its configuration document.

        Each table is handled on its own, a failure in one does not stop the other.
        Unset columns, missing rows and missing tables contribute nothing.
        """
        guild_id = str(guild_id)
        succeeded = True
        for section, (model, fields) in MIRRORS.items():
            try:
                if not await self._table_exists(model.__tablename__):
                    log.debug("Table %s does not exist, not reading it back", model.__tablename__)
                    continue
                async with self.db_session() as session:
                    row = await session.scalar(sa.select(model).where(model.guild_id == guild_id))
                if row is None:
                    continue
                current = (await self.config.get_guild_config(guild_id, strict=True)).section(section)
                values = {
                    key: getattr(row, column)
                    for key, column, convert in fields
                    if getattr(row, column) is not None and not _mirrors(row, column, convert, current.get(key))
                }
                if values:
                    await self.config.bulk_update_config(guild_id, {section: values})
            except Exception:
                log.exception(
                    "Failed to sync %s back into the configuration of guild %s", model.__tablename__, guild_id
                )
                succeeded = False
        return succeeded

    async def sync_all(self, guild_id: str | int) -> bool:
        """
        Sync both mirror tables from the document, then read them back into it.

        Returns True only if every step succeeded.
        """
        guild_id = str(guild_id)
        results = [
            await self.sync_ticket_settings(guild_id),
            await self.sync_shop_settings(guild_id),
            await self.sync_command_settings_to_config(guild_id),
        ]
        if all(results):
            log.info("Synced the configuration of guild %s", guild_id)
            return True
        log.warning("Syncing the configuration of guild %s did not fully succeed", guild_id)
        return False

    async def sync_all_guilds(self) -> dict[str, bool]:
        """Run `sync_all` for every guild with a stored configuration."""
        results: dict[str, bool] = {}
        for guild_id in await self.config.iter_guild_ids():
            results[guild_id] = await self.sync_all(guild_id)
        log.info("Synced %d of %d guild(s)", sum(results.values()), len(results))
        return results

    async def _table_exists(self, name: str) -> bool:
        async with self.db_session() as session:
            conn = await session.connection()
            return await conn.run_sync(lambda sync_conn: sa.inspect(sync_conn).has_table(name))

    async def _sync_to_mirror(self, guild_id: str, section: str) -> bool:
        model, fields = MIRRORS[section]
        table = model.__tablename__
        try:
            if not await self._table_exists(table):
                log.warning("Table %s does not exist, skipping the %s sync for guild %s", table, section, guild_id)
                return False

            document = await self.config.get_guild_config(guild_id, strict=True)
            stored = document.section(section)
            values = {column: convert(stored.get(key)) for key, column, convert in fields}

            async with self.db_session.begin() as session:
                row = await session.scalar(sa.select(model).where(model.guild_id == guild_id))
                if row is None:
                    row = model(guild_id=guild_id, **values)
                    if isinstance(row, TicketConfig):
                        row.ticket_prefix = constants.TicketsCls.default_prefix
                    session.add(row)
                    log.debug("Created the %s row of guild %s", table, guild_id)
                else:
                    changed = {column: value for column, value in values.items() if _stored(row, column) != value}
                    for column, value in changed.items():
                        setattr(row, column, value)
                    if changed:
                        row.updated_at = utcnow()
                        log.debug("Updated %s of guild %s: %s", table, guild_id, ", ".join(changed))
        except Exception:
            log.exception("Failed to sync the %s section of guild %s into %s", section, guild_id, table)
            return False
        return True


def _stored(row: TicketConfig | ShopConfig, column: str) -> Any:
    value = getattr(row, column)
    if column == "tax_rate" and value is not None:
        return round(float(value), 2)
    return value


def _mirrors(row: TicketConfig | ShopConfig, column: str, convert: Callable[[Any], Any], value: Any) -> bool:
    """Whether a column only holds the column form of a set document value, eg. 1.5 hours stored as 1."""
    return value is not None and _stored(row, column) == convert(value)
