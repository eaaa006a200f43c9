from __future__ import annotations

import io
import json

import disnake
from disnake.ext import commands

from igloo import constants
from igloo.bot import Igloo
from igloo.config import SCHEMA, get_spec, iter_paths
from igloo.config.models import ConfigValue, SettingSpec
from igloo.errors import ValidationError
from igloo.log import get_logger
from igloo.metadata import ExtMetadata


EXT_METADATA = ExtMetadata(core=True)
logger = get_logger(__name__)

MAX_IMPORT_SIZE = 64 * 1024


def split_option(option: str) -> tuple[str, str]:
    """Split a `section.key` option into its parts. The path itself is checked by the schema."""
    section, _, key = option.strip().partition(".")
    return section.lower(), key.lower()


def format_value(value: ConfigValue, spec: SettingSpec | None = None) -> str:
    if value is None:
        return "*unset, required*" if spec is not None and spec.required else "*unset*"
    if isinstance(value, bool):
        return "enabled" if value else "disabled"
    text = str(value)
    if len(text) > 100:
        text = text[:97] + "..."
    return f"`{text}`"


class Configuration(
    commands.Cog,
    name="Config Manager",
    slash_command_attrs={
        "dm_permission": False,
        "default_member_permissions": disnake.Permissions(manage_guild=True),
    },
):
    """Configuration management for each guild."""

    def __init__(self, bot: Igloo) -> None:
        self.bot = bot

    @commands.Cog.listener("on_guild_remove")
    async def forget_config_on_guild_remove(self, guild: disnake.Guild) -> None:
        """Drop the cached config as soon as we leave a guild. The stored document is kept."""
        if self.bot.config.invalidate(guild.id):
            logger.info(f"Dropped the cached config of guild {guild.id} after leaving it")

    @commands.slash_command()
    async def config(self, inter: disnake.GuildCommandInteraction) -> None:
        """Manage the configuration of this server."""
        pass

    @config.sub_command("view")
    async def view_command(self, inter: disnake.GuildCommandInteraction, option: str | None = None) -> None:
        """
        View the current configuration, or a single option.

        Parameters
        ----------
        option: The option to show, such as tickets.category. Leave empty to show everything.
        """
        document = await self.bot.config.get_guild_config(inter.guild_id)
        if option:
            section, key = split_option(option)
            spec = get_spec(section, key)
            await inter.response.send_message(
                f"**{section}.{key}** is {format_value(document.get(section, key), spec)}\n-# {spec.description}",
                ephemeral=True,
            )
            return

        embed = disnake.Embed(title=f"Configuration of {inter.guild.name}", colour=constants.Colours.igloo_blue)
        for section, settings in SCHEMA.items():
            lines = [
                f"**{key}**: {format_value(document.get(section, key), spec)}" for key, spec in settings.items()
            ]
            embed.add_field(name=section.title(), value="\n".join(lines), inline=False)
        await inter.response.send_message(embed=embed, ephemeral=True)

    @config.sub_command("edit")
    async def edit_command(self, inter: disnake.GuildCommandInteraction, option: str, value: str) -> None:
        """
        Change a configuration option.

        Parameters
        ----------
        option: The option to change, such as tickets.max_open_tickets.
        value: The new value. Use "none" to unset the option.
        """
        section, key = split_option(option)
        spec = get_spec(section, key)
        try:
            converted = spec.parse(value)
        except ValueError as e:
            raise commands.BadArgument(f"Could not set {section}.{key}: {e}") from None

        old = (await self.bot.config.get_guild_config(inter.guild_id)).get(section, key)
        await self.bot.config.update_guild_config(inter.guild_id, section, key, converted)

        await inter.response.send_message(
            f"Changed **{section}.{key}** from {format_value(old, spec)} to {format_value(converted, spec)}.",
            ephemeral=True,
        )

        if section in ("tickets", "shop") and not await self.bot.config_sync.sync_all(inter.guild_id):
            await inter.followup.send(
                "The setting was saved, but could not be copied to the ticket and shop tables. "
                "Run `/sync` to try again.",
                ephemeral=True,
            )

    @config.sub_command("reset")
    async def reset_command(self, inter: disnake.GuildCommandInteraction) -> None:
        """Reset every configuration option of this server to its default."""
        await inter.response.defer(ephemeral=True)
        await self.bot.config.reset_guild_config(inter.guild_id)
        await self.bot.config_sync.sync_all(inter.guild_id)
        await inter.followup.send("The configuration has been reset to the defaults.", ephemeral=True)

    @config.sub_command("export")
    async def export_command(self, inter: disnake.GuildCommandInteraction) -> None:
        """Export the configuration of this server as a file."""
        payload = await self.bot.config.export_config(inter.guild_id)
        data = json.dumps(payload, indent=2).encode()
        file = disnake.File(io.BytesIO(data), filename=f"igloo-config-{inter.guild_id}.json")
        await inter.response.send_message("Here is the current configuration.", file=file, ephemeral=True)

    @config.sub_command("import")
    async def import_command(self, inter: disnake.GuildCommandInteraction, file: disnake.Attachment) -> None:
        """
        Import a configuration file made by /config export.

        Parameters
        ----------
        file: The exported configuration file.
        """
        if file.size > MAX_IMPORT_SIZE:
            raise commands.BadArgument("That file is too large to be a configuration export.")
        await inter.response.defer(ephemeral=True)
        try:
            payload = json.loads(await file.read())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Invalid import data format", constraint="invalid format") from None

        await self.bot.config.import_config(inter.guild_id, payload)
        synced = await self.bot.config_sync.sync_all(inter.guild_id)
        msg = "The configuration has been imported."
        if not synced:
            msg += " It could not be copied to the ticket and shop tables, run `/sync` to try again."
        await inter.followup.send(msg, ephemeral=True)

    @view_command.autocomplete("option")
    @edit_command.autocomplete("option")
    async def option_autocomplete(self, inter: disnake.CommandInteraction, option: str) -> dict[str, str]:
        """Suggest configuration options."""
        option = option.lower()
        choices = {
            f"{section}.{key}": f"{section}.{key}"
            for section, key, _ in iter_paths()
            if option in f"{section}.{key}"
        }
        return dict(list(choices.items())[:25])

    @commands.slash_command(name="sync")
    async def sync_command(self, inter: disnake.GuildCommandInteraction) -> None:
        """Copy this server's configuration into the ticket and shop tables, and back."""
        await inter.response.defer(ephemeral=True)
        if await self.bot.config_sync.sync_all(inter.guild_id):
            await inter.followup.send("The configuration is in sync.", ephemeral=True)
            return
        await inter.followup.send(
            "Some settings could not be synced, the errors have been logged. Try again in a moment.",
            ephemeral=True,
        )


def setup(bot: Igloo) -> None:
    """Add the configuration cog to the bot."""
    bot.add_cog(Configuration(bot))
