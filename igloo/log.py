# pyright: strict
from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, TypedDict, cast

from igloo import constants


if TYPE_CHECKING:
    from typing_extensions import Unpack


try:
    from rich.logging import RichHandler
except ImportError:
    RichHandler = None

TRACE = 5

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

# third party loggers and the level below which they are dropped
QUIET_LOGGERS: dict[str, int] = {
    "disnake": logging.WARNING,
    "websockets": logging.WARNING,
    "aiosqlite": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.INFO,
    "alembic": logging.INFO,
}


def get_logger(name: str) -> "IglooLogger":
    """Return the logger for `name`, typed so that `.trace()` is known."""
    return cast("IglooLogger", logging.getLogger(name))


class LoggingParams(TypedDict, total=False):
    """Keyword arguments accepted by the logging methods."""

    exc_info: logging._ExcInfoType  # type: ignore
    stack_info: bool
    stacklevel: int
    extra: Mapping[str, object] | None


class IglooLogger(logging.Logger):
    """Logger with an additional TRACE level, below DEBUG."""

    def trace(self, msg: object, *args: object, **kwargs: Unpack[LoggingParams]) -> None:
        """
        Log 'msg % args' with severity 'TRACE'.

        Used for per-message events such as ticket activity, which would drown out everything else at DEBUG.
        """
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)


def install_trace_level() -> None:
    """Register the TRACE level and make every new logger an IglooLogger."""
    logging.TRACE = TRACE  # type: ignore
    logging.addLevelName(TRACE, "TRACE")
    logging.setLoggerClass(IglooLogger)


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    # production keeps one file per day for two weeks, development rotates on size
    if constants.Monitoring.log_mode == "daily":
        return logging.handlers.TimedRotatingFileHandler(
            path,
            "midnight",
            utc=True,
            backupCount=14,
            encoding="utf-8",
        )
    return logging.handlers.RotatingFileHandler(
        path,
        maxBytes=5 * (2**20),
        backupCount=5,
        encoding="utf-8",
    )


def _console_handler() -> logging.Handler:
    if RichHandler is not None:
        return RichHandler(rich_tracebacks=True)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup() -> None:
    """
    Set up logging for the bot and its scripts.

    Everything goes to `igloo.log` in the log directory and to the console.
    Schema migrations are additionally written to `migrations.log`, which keeps a record of every
    change made to the database schema independent of the rotation of the main log.
    """
    install_trace_level()
    log_format = logging.Formatter(LOG_FORMAT)
    log_directory = Path(constants.Monitoring.log_directory)
    root_logger = logging.getLogger()

    main_handler = _file_handler(log_directory / "igloo.log")
    main_handler.setFormatter(log_format)
    root_logger.addHandler(main_handler)
    root_logger.addHandler(_console_handler())

    migration_handler = _file_handler(log_directory / "migrations.log")
    migration_handler.setFormatter(log_format)
    migration_handler.setLevel(logging.INFO)
    logging.getLogger("igloo.migrations").addHandler(migration_handler)

    root_logger.setLevel(logging.DEBUG if constants.Monitoring.debug_logging else logging.INFO)
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    _set_trace_loggers()

    root_logger.info("Logging initialization complete")


def _set_trace_loggers() -> None:
    """
    Apply the BOT_TRACE_LOGGERS environment variable.

    A comma separated list of logger names sets each of them to TRACE, eg. `igloo.services.tickets`.
    Prefixed with "!", every logger except the listed ones is set to TRACE.
    Starting with "*", the root logger is set to TRACE and the rest is ignored.
    """
    level_filter = constants.Monitoring.trace_loggers
    if not level_filter:
        return

    if level_filter.startswith("*"):
        logging.getLogger().setLevel(TRACE)
        return

    names = [name.strip() for name in level_filter.strip("!,").split(",") if name.strip()]
    if level_filter.startswith("!"):
        logging.getLogger().setLevel(TRACE)
        for name in names:
            logging.getLogger(name).setLevel(logging.DEBUG)
        return

    for name in names:
        logging.getLogger(name).setLevel(TRACE)
