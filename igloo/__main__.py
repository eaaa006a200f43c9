import asyncio
import signal
import sys

import disnake
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from igloo import constants
from igloo.bot import Igloo
from igloo.database import create_engine
from igloo.errors import MigrationFailure
from igloo.log import get_logger
from igloo.migrations import current_version, migrate


log = get_logger(__name__)

try:
    import uvloop  # pyright: ignore[reportMissingImports]

    uvloop.install()
    log.info("Using uvloop as event loop.")
except ImportError:
    log.info("Using default asyncio event loop.")


async def prepare_database(engine: AsyncEngine) -> bool:
    """
    Bring the schema up to date, or only check the connection when migrations are disabled.

    Returns whether it is safe to start the bot.
    """
    try:
        if constants.Database.run_migrations:
            await migrate(engine)
        else:
            log.info("Not running migrations, the database is at version %d.", await current_version(engine))
    except MigrationFailure as e:
        log.critical("%s, refusing to start with an unknown schema.", e, exc_info=e.__cause__)
        return False
    except SQLAlchemyError:
        log.critical("Could not connect to the database.", exc_info=True)
        return False
    return True


async def main() -> int:
    """Migrate the database, then create and run the bot until it is stopped."""
    engine_options = {}
    if not constants.Database.bind.startswith("sqlite"):
        engine_options["pool_size"] = constants.Database.pool_size
    database_engine = create_engine(constants.Database.bind, **engine_options)

    if not await prepare_database(database_engine):
        await database_engine.dispose()
        return 1

    bot = Igloo(
        database_engine=database_engine,
        command_prefix=constants.Client.default_command_prefix,
        activity=constants.Client.activity,
        allowed_mentions=constants.Client.allowed_mentions,
        intents=constants.Client.intents,
        command_sync_flags=constants.Client.command_sync_flags,
        owner_ids=constants.Client.owner_ids or set(),
    )

    try:
        bot.load_extensions()
    except Exception:
        log.exception("Failed to load extensions. Shutting down.")
        await bot.close()
        raise

    runner = asyncio.ensure_future(bot.start(constants.Client.token))
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.cancel)
        except NotImplementedError:
            # not available on windows, where ctrl+c still raises KeyboardInterrupt
            break

    try:
        await runner
    except asyncio.CancelledError:
        log.info("Received signal to terminate bot and event loop.")
    finally:
        await bot.close()
    return 0


if __name__ == "__main__":
    disnake.Embed.set_default_colour(constants.Colours.igloo_blue)
    sys.exit(asyncio.run(main()))
