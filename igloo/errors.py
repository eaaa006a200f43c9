from __future__ import annotations

from typing import TYPE_CHECKING

from disnake.ext import commands


if TYPE_CHECKING:
    from collections.abc import Hashable


class ConfigError(commands.UserInputError):
    """Base class for configuration errors which are safe to show to the administrator who caused them."""


class InvalidPath(ConfigError):
    """Raised when a setting is referenced which the configuration schema does not know about."""

    def __init__(self, section: str, key: str) -> None:
        self.section = section
        self.key = key
        super().__init__(f"Invalid config path: {section}.{key}")


class ValidationError(ConfigError):
    """
    Raised when a value does not satisfy the constraints of its setting.

    Attributes:
        `section`, `key` -- the setting that was being written, if known
        `constraint` -- the violated constraint, eg. "must be at least 1"
    """

    def __init__(self, message: str, *, section: str | None = None, key: str | None = None, constraint: str) -> None:
        self.section = section
        self.key = key
        self.constraint = constraint
        super().__init__(message)

    @classmethod
    def for_setting(cls, section: str, key: str, constraint: str) -> ValidationError:
        """Build an error whose message names the setting and the constraint it broke."""
        return cls(f"{section}.{key} {constraint}", section=section, key=key, constraint=constraint)


class UnsupportedVersion(ConfigError):
    """Raised when an imported configuration was exported by an incompatible format version."""

    def __init__(self, version: object) -> None:
        self.version = version
        super().__init__(f"Unsupported import version: {version}")


class StoreUnavailable(commands.CommandError):
    """Raised when the database could not complete a write."""

    def __init__(self, operation: str, guild_id: Hashable | None = None) -> None:
        self.operation = operation
        self.guild_id = guild_id
        where = f" for guild {guild_id}" if guild_id is not None else ""
        super().__init__(f"The database is unavailable, could not {operation}{where}.")


class MigrationFailure(RuntimeError):
    """Raised when a schema migration fails to apply. The failed migration has been rolled back."""

    def __init__(self, version: int, name: str) -> None:
        self.version = version
        self.name = name
        super().__init__(f"Migration {version} ({name}) failed")


class TicketError(commands.CheckFailure):
    """Base class for ticket lifecycle errors."""


class TooManyOpenTickets(TicketError):
    def __init__(self, open_tickets: int) -> None:
        self.open_tickets = open_tickets
        super().__init__(
            f"You already have {open_tickets} open tickets. Please close some before creating new ones."
        )


class TicketAlreadyClaimed(TicketError):
    def __init__(self, claimed_by: str) -> None:
        self.claimed_by = claimed_by
        super().__init__(f"This ticket is already claimed by <@{claimed_by}>!")


class TicketAlreadyClosed(TicketError):
    def __init__(self) -> None:
        super().__init__("This ticket is already closed!")


class TicketPermissionDenied(TicketError):
    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"You do not have permission to {action} this ticket!")
