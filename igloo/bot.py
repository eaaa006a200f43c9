from typing import final

import disnake
from disnake.ext import commands
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from typing_extensions import override

from igloo import constants
from igloo.log import get_logger
from igloo.services.config import ConfigService, GuildConfigCache
from igloo.services.config_sync import ConfigSyncService
from igloo.services.tickets import TicketService
from igloo.utils.extensions import walk_extensions


log = get_logger(__name__)


__all__ = ("Igloo",)


@final
class Igloo(commands.Bot):
    """
    The Igloo bot.

    Owns the database engine and the services built on it, which the extensions reach through `bot.config`,
    `bot.config_sync` and `bot.tickets`. The schema must already be migrated when the bot is created.
    """

    name = constants.ClientCls.name

    def __init__(self, database_engine: AsyncEngine, **kwargs) -> None:
        if constants.Client.test_guilds:
            kwargs["test_guilds"] = constants.Client.test_guilds
            log.warning("Registering application commands in the test guilds %s only", constants.Client.test_guilds)

        super().__init__(**kwargs)

        self.db_engine = database_engine
        self.db_session = async_sessionmaker(database_engine, expire_on_commit=False, class_=AsyncSession)

        self.config = ConfigService(self.db_session, GuildConfigCache.from_settings())
        self.config_sync = ConfigSyncService(self.config)
        self.tickets = TicketService(self.db_session)

        self.command_prefix: str

    async def get_prefix(self, message: disnake.Message) -> list[str]:
        """Return the prefixes for a message: the guild's configured prefix, or the default one, and a mention."""
        prefix = self.command_prefix
        if message.guild:
            config = await self.config.get_guild_config(message.guild.id)
            prefix = str(config.get("general", "prefix") or prefix)
        return [prefix, *commands.when_mentioned(self, message)]

    @override
    async def close(self) -> None:
        """Disconnect from Discord, then release the database connections."""
        if not self.is_closed():
            await super().close()

        log.info("Bot is shutting down, disposing of the database engine.")
        await self.db_engine.dispose()

    @override
    def load_extensions(self, path: str | None = None) -> None:
        """
        Load the extensions found by walk_extensions().

        When BOT_EXTENSIONS lists extension names only those and the core extensions are loaded.
        """
        if path:
            msg = "load_extensions doesn't expect a path"
            raise ValueError(msg)

        requested = constants.Client.extensions
        if requested:
            log.warning("Only loading the core extensions and %s.", requested if isinstance(requested, set) else "none")

        for ext, ext_metadata in walk_extensions():
            if not requested or ext_metadata.core or (isinstance(requested, set) and ext in requested):
                self.load_extension(ext)
            else:
                log.debug("Skipping %s as it was not requested.", ext)
        log.info("Loaded %d extension(s).", len(self.extensions))

    @override
    def add_cog(self, cog: commands.Cog, *, override: bool = False) -> None:
        """Register `cog`, logging that it was loaded so the extensions don't have to."""
        super().add_cog(cog, override=override)
        log.info("Cog loaded: %s", cog.qualified_name)
