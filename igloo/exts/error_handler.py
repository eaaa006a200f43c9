from __future__ import annotations

import re
import typing

import disnake
from disnake.ext import commands

from igloo import constants
from igloo.bot import Igloo
from igloo.errors import StoreUnavailable, TicketError
from igloo.log import get_logger
from igloo.metadata import ExtMetadata


if typing.TYPE_CHECKING:
    AnyContext = typing.Union[commands.Context, disnake.ApplicationCommandInteraction]

EXT_METADATA = ExtMetadata(core=True)
logger = get_logger(__name__)

STORE_UNAVAILABLE_MESSAGE = "Your change could not be saved, please try again later."
ERROR_TITLE_REGEX = re.compile(r"((?<=[a-z])[A-Z]|(?<=[a-zA-Z])[A-Z](?=[a-z]))")


class ErrorHandler(commands.Cog, name="Error Handler"):
    """Handles all errors across the bot."""

    def __init__(self, bot: Igloo) -> None:
        self.bot = bot

    @staticmethod
    def error_embed(title: str, message: str) -> disnake.Embed:
        """Create an error embed with an error colour and reason and return it."""
        return disnake.Embed(title=title, description=message, colour=constants.Colours.soft_red)

    @staticmethod
    def get_title_from_name(error: typing.Union[Exception, str]) -> str:
        """
        Return a message derived from the exception class name.

        Eg TooManyOpenTickets returns Too Many Open Tickets
        """
        if not isinstance(error, str):
            error = error.__class__.__name__
        return re.sub(ERROR_TITLE_REGEX, r" \1", error)

    def describe_error(self, error: commands.CommandError) -> disnake.Embed | None:
        """Build the embed shown to the user for an error, or None if the error should not be answered."""
        if isinstance(error, commands.CommandNotFound):
            return None
        if isinstance(error, commands.UserInputError):
            # configuration errors carry the exact constraint that was broken
            return self.error_embed(self.get_title_from_name(error), str(error))
        if isinstance(error, TicketError):
            return self.error_embed("Ticket", str(error))
        if isinstance(error, commands.NoPrivateMessage):
            return self.error_embed("Server Only", str(error))
        if isinstance(error, commands.CheckFailure):
            return self.error_embed("Check Failure", str(error))
        if isinstance(error, StoreUnavailable):
            return self.error_embed("Database Unavailable", STORE_UNAVAILABLE_MESSAGE)
        if isinstance(error, (commands.CommandInvokeError, commands.ConversionError)):
            # errors raised by the services inside a command arrive wrapped
            if isinstance(error.original, commands.CommandError):
                return self.describe_error(error.original)
            return self.error_embed(
                "Internal Error", "Something went wrong internally in the action you were trying to execute."
            )
        return self.error_embed(self.get_title_from_name(error), str(error))

    @commands.Cog.listener(name="on_command_error")
    @commands.Cog.listener(name="on_slash_command_error")
    async def on_any_command_error(self, ctx: AnyContext, error: commands.CommandError) -> None:
        """Handle all errors with one mega error handler."""
        if getattr(error, "handled", False):
            command = getattr(ctx, "application_command", None) or getattr(ctx, "command", None)
            logger.debug(f"Command {command} had its error already handled locally, ignoring.")
            return

        if isinstance(error, (commands.CommandInvokeError, commands.ConversionError)):
            original = error.original
            if isinstance(original, StoreUnavailable):
                logger.error(str(original), exc_info=original.__cause__)
            elif not isinstance(original, commands.CommandError):
                logger.error(f"Error occurred in command invoked by {ctx.author.id}", exc_info=original)

        embed = self.describe_error(error)
        if embed is None:
            return

        try:
            if isinstance(ctx, commands.Context):
                await ctx.reply(embed=embed, fail_if_not_exists=False)
            elif ctx.response.is_done():
                await ctx.followup.send(embed=embed, ephemeral=True)
            else:
                await ctx.send(embed=embed, ephemeral=True)
        except disnake.HTTPException:
            logger.exception("Could not send the error message")


def setup(bot: Igloo) -> None:
    """Add the error handler cog to the bot."""
    bot.add_cog(ErrorHandler(bot))
