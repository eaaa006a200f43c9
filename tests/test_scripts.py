"""Tests for the igloo-sync-settings command."""

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from igloo.database import ShopConfig, TicketConfig
from igloo.scripts.sync_settings import sync_settings

from .conftest import GUILD_ID, OTHER_GUILD_ID


class TestSyncSettings:
    """Tests for synchronizing every stored guild at once."""

    async def test_no_guilds(self, migrated_engine):
        assert await sync_settings(migrated_engine) == {}

    async def test_every_stored_guild_is_synced(self, migrated_engine, config_service):
        await config_service.update_guild_config(GUILD_ID, "tickets", "max_open_tickets", 2)
        await config_service.get_guild_config(OTHER_GUILD_ID)

        assert await sync_settings(migrated_engine) == {GUILD_ID: True, OTHER_GUILD_ID: True}

        db_session = async_sessionmaker(migrated_engine, class_=AsyncSession)
        async with db_session() as session:
            tickets = await session.scalar(sa.select(TicketConfig).where(TicketConfig.guild_id == GUILD_ID))
            shops = (await session.scalars(sa.select(ShopConfig.guild_id))).all()
        assert tickets.max_open_tickets == 2
        assert sorted(shops) == [GUILD_ID, OTHER_GUILD_ID]

    async def test_only_given_guilds(self, migrated_engine, config_service):
        await config_service.get_guild_config(GUILD_ID)
        await config_service.get_guild_config(OTHER_GUILD_ID)

        assert await sync_settings(migrated_engine, [OTHER_GUILD_ID]) == {OTHER_GUILD_ID: True}
