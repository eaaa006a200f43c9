import argparse
import asyncio
import sys

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from igloo import constants
from igloo.database import create_engine
from igloo.log import get_logger
from igloo.services.config import ConfigService, GuildConfigCache
from igloo.services.config_sync import ConfigSyncService


log = get_logger(__name__)


async def sync_settings(engine: AsyncEngine, guild_ids: list[str] | None = None) -> dict[str, bool]:
    """Sync the given guilds, or every guild with a stored configuration."""
    db_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    config = ConfigService(db_session, GuildConfigCache.from_settings())
    sync = ConfigSyncService(config)

    if not guild_ids:
        results = await sync.sync_all_guilds()
        if not results:
            log.info("No guilds found to synchronize settings for.")
        return results

    results: dict[str, bool] = {}
    for guild_id in guild_ids:
        log.info("Synchronizing settings for guild %s...", guild_id)
        results[guild_id] = await sync.sync_all(guild_id)
    return results


async def run(guild_ids: list[str]) -> int:
    engine = create_engine(constants.Database.bind)
    try:
        results = await sync_settings(engine, guild_ids)
    finally:
        await engine.dispose()

    failed = sorted(guild_id for guild_id, succeeded in results.items() if not succeeded)
    if failed:
        log.error("Settings could not be fully synchronized for %d guild(s): %s", len(failed), ", ".join(failed))
        return 1
    log.info("Settings synchronization completed")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Synchronize the configuration documents with the ticket and shop tables."""
    parser = argparse.ArgumentParser(prog="igloo-sync-settings", description=main.__doc__)
    parser.add_argument("guild_ids", nargs="*", metavar="GUILD_ID", help="only sync these guilds")
    args = parser.parse_args(argv)
    return asyncio.run(run(args.guild_ids))


if __name__ == "__main__":
    sys.exit(main())
