from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Literal

import disnake
from disnake.ext import commands
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings
from pydantic_settings import SettingsConfigDict


__all__ = (  # noqa: RUF022
    "Client",
    "Monitoring",
    "Database",
    "Tickets",
    "ConfigCache",
    "Colours",
)


class BaseSettings(PydanticBaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class ClientCls(BaseSettings):
    name: ClassVar[str] = "Igloo"
    token: str = Field(validation_alias="DISCORD_TOKEN")
    default_command_prefix: str = Field("!", validation_alias="PREFIX")
    intents: ClassVar[disnake.Intents] = disnake.Intents.default() | disnake.Intents.message_content
    command_sync_flags: ClassVar[commands.CommandSyncFlags] = commands.CommandSyncFlags(
        allow_command_deletion=False,
        sync_guild_commands=True,
        sync_global_commands=True,
        sync_on_cog_actions=True,
    )
    allowed_mentions: ClassVar[disnake.AllowedMentions] = disnake.AllowedMentions(
        everyone=False,
        roles=False,
        users=True,
        replied_user=True,
    )
    test_guilds: Annotated[
        list[int] | None,
        Field(
            description="The list of IDs of the guilds where you're going to test your application commands.",
            validation_alias="DEV_GUILD_ID",
        ),
    ] = None
    owner_ids: set[int] | None = Field(None, validation_alias="OWNER_IDS")
    extensions: set[str] | bool | None = Field(None, validation_alias="BOT_EXTENSIONS")

    @field_validator("test_guilds", mode="before")
    @classmethod
    def parse_test_guilds(cls, v: Any) -> Any:
        """Accept a single guild id or a comma separated list of them."""
        if isinstance(v, int):
            return [v]
        if isinstance(v, str):
            return [int(part) for part in v.split(",") if part.strip()] or None
        return v

    @field_validator("owner_ids", mode="before")
    @classmethod
    def parse_owner_ids(cls, v: Any) -> Any:
        """Parse the comma separated OWNER_IDS environment variable."""
        if isinstance(v, int):
            return {v}
        if isinstance(v, str):
            ids = {part.strip() for part in v.split(",") if part.strip()}
            for snowflake in ids:
                if not snowflake.isdigit() or not 17 <= len(snowflake) <= 19:
                    msg = f"Invalid Discord ID in OWNER_IDS: {snowflake}"
                    raise ValueError(msg)
            return {int(snowflake) for snowflake in ids}
        return v

    @field_validator("extensions", mode="before")
    @classmethod
    def parse_extensions(cls, v: str | None) -> set[str] | bool | None:
        """Parse BOT_EXTENSIONS environment variable into a set of strings."""
        if v is None or v == "":
            return None
        if v.lower() == "true":
            return True
        if v.lower() == "false":
            return False
        return {ext.strip() for ext in v.split(",") if ext.strip()}

    @property
    def activity(self) -> disnake.Game:
        """Return the bot's activity."""
        return disnake.Game(name="/ticket | Igloo Support")


class DatabaseCls(BaseSettings):
    bind: str = Field(validation_alias="DATABASE_URL")
    run_migrations: bool = Field(True, validation_alias="DB_RUN_MIGRATIONS")
    pool_size: int = Field(20, validation_alias="DB_POOL_SIZE")

    @field_validator("bind", mode="before")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """Point plain postgres urls at the asyncpg driver."""
        if isinstance(v, str):
            for scheme in ("postgresql://", "postgres://"):
                if v.startswith(scheme):
                    return "postgresql+asyncpg://" + v.removeprefix(scheme)
        return v


class MonitoringCls(BaseSettings):
    """Runtime monitoring configuration exposed via environment variables."""

    debug_logging: bool = Field(False, validation_alias="LOG_DEBUG")
    trace_loggers: str | None = Field(None, validation_alias="BOT_TRACE_LOGGERS")
    bot_log_mode: str = Field("dev", validation_alias="BOT_LOG_MODE")
    log_directory: str = Field("logs", validation_alias="LOG_DIRECTORY")
    sentry_dsn: str | None = Field(None, validation_alias="SENTRY_DSN")

    @property
    def log_mode(self) -> Literal["daily", "dev"]:
        """Return the log mode based on bot_log_mode."""
        return "daily" if (self.bot_log_mode or "").lower() == "daily" else "dev"


class TicketsCls(BaseSettings):
    auto_close_interval: int = Field(60, validation_alias="TICKETS_AUTO_CLOSE_INTERVAL")
    """Minutes between two inactive ticket sweeps."""
    auto_close_grace: int = Field(300, validation_alias="TICKETS_AUTO_CLOSE_GRACE")
    """Seconds between the inactivity warning and the actual close."""
    initial_check_delay: ClassVar[int] = 30
    default_prefix: ClassVar[str] = "TICKET"
    default_max_open: ClassVar[int] = 5
    default_auto_close_hours: ClassVar[int] = 72


class ConfigCacheCls(BaseSettings):
    max_guilds: int = Field(1000, validation_alias="CONFIG_CACHE_MAX_GUILDS")
    ttl: float | None = Field(None, validation_alias="CONFIG_CACHE_TTL")
    """Seconds before a cached guild document is read again from the store. None keeps it until evicted."""


class ColoursCls(BaseModel):
    igloo_blue: int = 0x0CAFFF
    soft_red: int = 0xCD6D6D
    claimed: int = 0x3498DB


LAZY_DEFINED = {
    "Client": ClientCls,
    "Database": DatabaseCls,
    "Monitoring": MonitoringCls,
    "Tickets": TicketsCls,
    "ConfigCache": ConfigCacheCls,
    "Colours": ColoursCls,
}

if TYPE_CHECKING:
    Client: ClientCls
    Database: DatabaseCls
    Monitoring: MonitoringCls
    Tickets: TicketsCls
    ConfigCache: ConfigCacheCls
    Colours: ColoursCls


## Use a lazy getattr pattern to allow for importing without defining all objects
def __getattr__(name: str) -> Any:
    if name in globals():
        return globals()[name]
    if name in LAZY_DEFINED:
        cls = LAZY_DEFINED[name]
        instance = cls()  # pyright: ignore[reportCallIssue]
        globals()[name] = instance
        return instance
    msg = f"module '{__name__}' has no attribute '{name}'"
    raise AttributeError(msg)
