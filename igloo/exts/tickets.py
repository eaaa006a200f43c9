from __future__ import annotations

import asyncio
from typing import Literal

import disnake
from disnake.ext import commands, tasks

from igloo import constants
from igloo.bot import Igloo
from igloo.database import Ticket
from igloo.errors import StoreUnavailable, TicketError, TicketPermissionDenied
from igloo.exts.error_handler import STORE_UNAVAILABLE_MESSAGE, ErrorHandler
from igloo.log import get_logger
from igloo.metadata import ExtMetadata
from igloo.services.tickets import AUTO_CLOSE_REASON, TicketDraft


EXT_METADATA = ExtMetadata(core=True)
logger = get_logger(__name__)

CLAIM_BUTTON = "ticket_claim"
CLOSE_BUTTON = "ticket_close"
DELETE_BUTTON = "ticket_delete"

DEFAULT_WELCOME_MESSAGE = (
    "Thank you for opening a ticket! Please describe your issue and a member of staff will be with you soon."
)

TicketCategory = Literal["general", "support", "billing", "report"]


def ticket_buttons() -> list[disnake.ui.Button]:
    return [
        disnake.ui.Button(
            label="Claim", emoji="\N{RAISED HAND}", style=disnake.ButtonStyle.primary, custom_id=CLAIM_BUTTON
        ),
        disnake.ui.Button(
            label="Close", emoji="\N{LOCK}", style=disnake.ButtonStyle.secondary, custom_id=CLOSE_BUTTON
        ),
        disnake.ui.Button(
            label="Delete", emoji="\N{WASTEBASKET}", style=disnake.ButtonStyle.danger, custom_id=DELETE_BUTTON
        ),
    ]


def is_staff(member: disnake.Member | disnake.User, support_role_id: str | None) -> bool:
    """Staff are members holding the support role, or anyone who may manage threads."""
    if not isinstance(member, disnake.Member):
        return False
    if support_role_id and any(str(role.id) == support_role_id for role in member.roles):
        return True
    return member.guild_permissions.manage_threads


class Tickets(commands.Cog, slash_command_attrs={"dm_permission": False}):
    """Support tickets, one private channel per ticket."""

    def __init__(self, bot: Igloo) -> None:
        self.bot = bot
        self._pending_closes: dict[int, asyncio.Task[None]] = {}
        self.auto_close_inactive.change_interval(minutes=constants.Tickets.auto_close_interval)
        self.auto_close_inactive.start()

    def cog_unload(self) -> None:
        """Stop existing tasks on cog unload."""
        self.auto_close_inactive.cancel()
        for task in self._pending_closes.values():
            task.cancel()

    async def _open_channel(
        self, guild: disnake.Guild, member: disnake.Member, draft: TicketDraft
    ) -> disnake.TextChannel:
        routing = draft.routing
        overwrites: dict[disnake.Role | disnake.Member, disnake.PermissionOverwrite] = {
            guild.default_role: disnake.PermissionOverwrite(view_channel=False),
            member: disnake.PermissionOverwrite(
                view_channel=True, send_messages=True, read_message_history=True, attach_files=True
            ),
            guild.me: disnake.PermissionOverwrite(view_channel=True, send_messages=True, manage_channels=True),
        }
        if routing.support_role_id and (role := guild.get_role(int(routing.support_role_id))):
            overwrites[role] = disnake.PermissionOverwrite(
                view_channel=True, send_messages=True, read_message_history=True
            )

        category = None
        if routing.category_id:
            category = guild.get_channel(int(routing.category_id))
            if not isinstance(category, disnake.CategoryChannel):
                logger.warning(f"Ticket category {routing.category_id} of guild {guild.id} is not a category")
                category = None

        return await guild.create_text_channel(
            draft.channel_name,
            category=category,
            overwrites=overwrites,
            topic=f"Support ticket {draft.ticket_id} for {member}",
            reason=f"Ticket {draft.ticket_id} opened by {member} ({member.id})",
        )

    @commands.slash_command(name="ticket")
    async def open_ticket(self, inter: disnake.GuildCommandInteraction, category: TicketCategory = "general") -> None:
        """
        Open a private support ticket.

        Parameters
        ----------
        category: What the ticket is about.
        """
        await inter.response.defer(ephemeral=True)
        async with self.bot.tickets.lock(inter.guild_id):
            draft = await self.bot.tickets.prepare_ticket(inter.guild_id, inter.author.id)
            channel = await self._open_channel(inter.guild, inter.author, draft)
            try:
                ticket = await self.bot.tickets.create_ticket(draft, channel.id, category)
            except StoreUnavailable:
                await channel.delete(reason="The ticket could not be saved")
                raise

        embed = disnake.Embed(
            title=f"Ticket {ticket.ticket_id}",
            description=draft.routing.welcome_message or DEFAULT_WELCOME_MESSAGE,
            colour=constants.Colours.igloo_blue,
        )
        embed.add_field(name="Category", value=category.title())
        embed.add_field(name="Opened by", value=inter.author.mention)
        mention = f"<@&{draft.routing.support_role_id}>" if draft.routing.support_role_id else ""
        await channel.send(
            f"{inter.author.mention} {mention}".strip(),
            embed=embed,
            components=ticket_buttons(),
            allowed_mentions=disnake.AllowedMentions(users=True, roles=True),
        )
        await inter.followup.send(f"Your ticket has been opened in {channel.mention}.", ephemeral=True)

    @commands.slash_command(name="close")
    async def close_command(self, inter: disnake.GuildCommandInteraction, reason: str | None = None) -> None:
        """
        Close the ticket this channel belongs to.

        Parameters
        ----------
        reason: Why the ticket is being closed.
        """
        ticket = await self._ticket_in_channel(inter)
        if ticket is None:
            return
        await self._close(inter, ticket, reason)

    async def _ticket_in_channel(self, inter: disnake.Interaction) -> Ticket | None:
        ticket = await self.bot.tickets.get_by_channel(inter.channel_id)
        if ticket is None:
            await inter.response.send_message("This channel is not a ticket.", ephemeral=True)
        return ticket

    async def _close(self, inter: disnake.Interaction, ticket: Ticket, reason: str | None) -> None:
        routing = await self.bot.tickets.get_routing(ticket.guild_id)
        ticket = await self.bot.tickets.close_ticket(
            ticket, inter.author.id, is_staff=is_staff(inter.author, routing.support_role_id), reason=reason
        )
        embed = disnake.Embed(
            title="Ticket closed",
            description=f"This ticket has been closed by {inter.author.mention}.",
            colour=constants.Colours.soft_red,
        )
        if reason:
            embed.add_field(name="Reason", value=reason)
        await inter.response.send_message(embed=embed)

        if isinstance(inter.channel, disnake.TextChannel):
            owner = inter.guild and inter.guild.get_member(int(ticket.user_id))
            if owner is not None:
                await inter.channel.set_permissions(owner, send_messages=False, reason="Ticket closed")

    @commands.Cog.listener("on_button_click")
    async def ticket_button_listener(self, inter: disnake.MessageInteraction) -> None:
        """Handle the claim, close and delete buttons of a ticket."""
        if inter.component.custom_id not in (CLAIM_BUTTON, CLOSE_BUTTON, DELETE_BUTTON):
            return
        # button clicks never reach the command error handler
        try:
            await self._handle_ticket_button(inter)
        except TicketError as e:
            await inter.response.send_message(str(e), ephemeral=True)
        except StoreUnavailable as e:
            logger.error(str(e), exc_info=e.__cause__)
            embed = ErrorHandler.error_embed("Database Unavailable", STORE_UNAVAILABLE_MESSAGE)
            if inter.response.is_done():
                await inter.followup.send(embed=embed, ephemeral=True)
            else:
                await inter.response.send_message(embed=embed, ephemeral=True)

    async def _handle_ticket_button(self, inter: disnake.MessageInteraction) -> None:
        ticket = await self._ticket_in_channel(inter)
        if ticket is None:
            return

        if inter.component.custom_id == CLOSE_BUTTON:
            await self._close(inter, ticket, None)
            return

        if inter.component.custom_id == DELETE_BUTTON:
            await self.bot.tickets.delete_ticket(
                ticket,
                can_manage_channels=isinstance(inter.author, disnake.Member)
                and inter.author.guild_permissions.manage_channels,
            )
            await inter.response.send_message("This ticket will be deleted in a few seconds.")
            await asyncio.sleep(5)
            await inter.channel.delete(reason=f"Ticket {ticket.ticket_id} deleted by {inter.author}")
            return

        routing = await self.bot.tickets.get_routing(ticket.guild_id)
        if not is_staff(inter.author, routing.support_role_id):
            raise TicketPermissionDenied("claim")
        ticket = await self.bot.tickets.claim_ticket(ticket, inter.author.id)
        embed = disnake.Embed(
            description=f"This ticket has been claimed by {inter.author.mention}.",
            colour=constants.Colours.claimed,
        )
        await inter.response.send_message(embed=embed)

    @commands.Cog.listener("on_message")
    async def mark_ticket_activity(self, message: disnake.Message) -> None:
        """Any message from a member keeps its ticket from being closed for inactivity."""
        if message.author.bot or not message.guild:
            return
        try:
            await self.bot.tickets.touch(message.channel.id)
        except StoreUnavailable:
            logger.warning(f"Could not record activity in channel {message.channel.id}", exc_info=True)

    @tasks.loop(minutes=60)
    async def auto_close_inactive(self) -> None:
        """Warn about, and then close, tickets which have not seen activity in a while."""
        try:
            inactive = await self.bot.tickets.find_inactive()
        except StoreUnavailable:
            logger.error("Could not look for inactive tickets, trying again on the next sweep", exc_info=True)
            return

        for ticket in inactive:
            if ticket.id in self._pending_closes:
                continue
            # one broken ticket must not stop the loop for every other guild
            try:
                await self._expire(ticket)
            except (disnake.HTTPException, StoreUnavailable):
                logger.exception(f"Failed to expire inactive ticket {ticket.ticket_id}")

    async def _expire(self, ticket: Ticket) -> None:
        channel = self.bot.get_channel(int(ticket.channel_id))
        if not isinstance(channel, disnake.TextChannel):
            # the channel is already gone, so there is nobody to warn
            await self.bot.tickets.auto_close(ticket, self.bot.user.id)
            return

        grace = constants.Tickets.auto_close_grace
        await channel.send(
            f"\N{WARNING SIGN} This ticket has been inactive for a while and will be closed automatically "
            f"in {grace // 60} minutes unless someone replies."
        )
        task = asyncio.create_task(self._close_after_grace(ticket, channel, grace))
        self._pending_closes[ticket.id] = task
        task.add_done_callback(lambda _, ticket_id=ticket.id: self._pending_closes.pop(ticket_id, None))

    @auto_close_inactive.before_loop
    async def before_auto_close_inactive(self) -> None:
        """Wait until the bot is ready, and a little longer, before the first sweep."""
        await self.bot.wait_until_ready()
        await asyncio.sleep(constants.TicketsCls.initial_check_delay)

    async def _close_after_grace(self, ticket: Ticket, channel: disnake.TextChannel, grace: float) -> None:
        await asyncio.sleep(grace)
        try:
            if not await self.bot.tickets.auto_close(ticket, self.bot.user.id):
                return
            await channel.delete(reason=AUTO_CLOSE_REASON)
        except (StoreUnavailable, disnake.HTTPException):
            logger.exception(f"Failed to auto close ticket {ticket.ticket_id}")


def setup(bot: Igloo) -> None:
    """Add the tickets cog to the bot."""
    bot.add_cog(Tickets(bot))
