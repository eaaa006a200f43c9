from __future__ import annotations

import asyncio
import contextlib
import datetime
from collections.abc import AsyncGenerator, Iterator
from weakref import WeakValueDictionary

import attrs
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from igloo import constants
from igloo.database import Ticket, TicketConfig, TicketStatus
from igloo.database.base import utcnow
from igloo.errors import (
    StoreUnavailable,
    TicketAlreadyClaimed,
    TicketAlreadyClosed,
    TicketPermissionDenied,
    TooManyOpenTickets,
)
from igloo.log import get_logger


__all__ = ("AUTO_CLOSE_REASON", "TicketDraft", "TicketRouting", "TicketService")

log = get_logger(__name__)

AUTO_CLOSE_REASON = "Auto-closed due to inactivity"


@attrs.frozen
class TicketRouting:
    """Where the tickets of a guild go, as stored in `ticket_config`."""

    category_id: str | None = None
    support_role_id: str | None = None
    log_channel_id: str | None = None
    welcome_message: str | None = None
    prefix: str = constants.TicketsCls.default_prefix
    max_open_tickets: int = constants.TicketsCls.default_max_open
    auto_close_hours: int = constants.TicketsCls.default_auto_close_hours

    @classmethod
    def from_row(cls, row: TicketConfig | None) -> TicketRouting:
        if row is None:
            return cls()
        return cls(
            category_id=row.ticket_category_id,
            support_role_id=row.support_role_id,
            log_channel_id=row.log_channel_id,
            welcome_message=row.welcome_message,
            prefix=row.ticket_prefix or constants.TicketsCls.default_prefix,
            max_open_tickets=row.max_open_tickets or constants.TicketsCls.default_max_open,
            auto_close_hours=row.auto_close_hours or constants.TicketsCls.default_auto_close_hours,
        )


@attrs.frozen
class TicketDraft:
    """A ticket that has been allowed and numbered, but whose channel does not exist yet."""

    guild_id: str
    user_id: str
    number: int
    ticket_id: str
    routing: TicketRouting

    @property
    def channel_name(self) -> str:
        return f"ticket-{self.number:04d}"


def _aware(value: datetime.datetime) -> datetime.datetime:
    # sqlite hands back naive datetimes, which are always utc here
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


@contextlib.contextmanager
def _store_errors(operation: str, guild_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreUnavailable(operation, guild_id) from e


class TicketService:
    """
    Ticket state transitions against the `tickets` table.

    Routing is read straight from `ticket_config`, never from the configuration documents.
    Creating and deleting the channels themselves is left to the caller.
    """

    def __init__(self, db_session: async_sessionmaker[AsyncSession]) -> None:
        self.db_session = db_session
        self._guild_locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    @contextlib.asynccontextmanager
    async def lock(self, guild_id: str | int) -> AsyncGenerator[None, None]:
        """Serialize ticket creation within a guild, so two tickets never get the same number."""
        guild_id = str(guild_id)
        lock = self._guild_locks.get(guild_id)
        if lock is None:
            lock = self._guild_locks[guild_id] = asyncio.Lock()
        async with lock:
            yield

    async def get_routing(self, guild_id: str | int) -> TicketRouting:
        guild_id = str(guild_id)
        with _store_errors("read the ticket settings", guild_id):
            async with self.db_session() as session:
                row = await session.scalar(sa.select(TicketConfig).where(TicketConfig.guild_id == guild_id))
        return TicketRouting.from_row(row)

    async def prepare_ticket(self, guild_id: str | int, user_id: str | int) -> TicketDraft:
        """
        Check that a member may open another ticket and allocate its number.

        Raises:
            TooManyOpenTickets: the member already has `max_open_tickets` open tickets
        """
        guild_id, user_id = str(guild_id), str(user_id)
        routing = await self.get_routing(guild_id)
        with _store_errors("prepare a ticket", guild_id):
            async with self.db_session() as session:
                open_tickets = await session.scalar(
                    sa.select(sa.func.count(Ticket.id)).where(
                        Ticket.guild_id == guild_id,
                        Ticket.user_id == user_id,
                        Ticket.status == TicketStatus.OPEN.value,
                    )
                )
                last_number = await session.scalar(
                    sa.select(sa.func.max(Ticket.number)).where(Ticket.guild_id == guild_id)
                )

        if (open_tickets or 0) >= routing.max_open_tickets:
            raise TooManyOpenTickets(open_tickets or 0)

        number = (last_number or 0) + 1
        return TicketDraft(
            guild_id=guild_id,
            user_id=user_id,
            number=number,
            ticket_id=f"{routing.prefix}-{number:04d}",
            routing=routing,
        )

    async def create_ticket(self, draft: TicketDraft, channel_id: str | int, category: str | None = None) -> Ticket:
        ticket = Ticket(
            ticket_id=draft.ticket_id,
            number=draft.number,
            guild_id=draft.guild_id,
            user_id=draft.user_id,
            channel_id=str(channel_id),
            category=category,
            status=TicketStatus.OPEN.value,
        )
        with _store_errors("create the ticket", draft.guild_id):
            async with self.db_session.begin() as session:
                session.add(ticket)
        log.info("Opened ticket %s in guild %s for user %s", ticket.ticket_id, ticket.guild_id, ticket.user_id)
        return ticket

    async def get_by_channel(self, channel_id: str | int) -> Ticket | None:
        with _store_errors("read the ticket"):
            async with self.db_session() as session:
                return await session.scalar(sa.select(Ticket).where(Ticket.channel_id == str(channel_id)))

    async def claim_ticket(self, ticket: Ticket, staff_id: str | int) -> Ticket:
        """
        Raises:
            TicketAlreadyClaimed: someone has already claimed the ticket
            TicketAlreadyClosed: the ticket is closed
        """
        with _store_errors("claim the ticket", ticket.guild_id):
            async with self.db_session.begin() as session:
                row = await self._reload(session, ticket)
                if row.claimed_by:
                    raise TicketAlreadyClaimed(row.claimed_by)
                if not row.is_open:
                    raise TicketAlreadyClosed
                row.claimed_by = str(staff_id)
                row.updated_at = utcnow()
        log.info("Ticket %s was claimed by %s", row.ticket_id, row.claimed_by)
        return row

    async def close_ticket(
        self, ticket: Ticket, actor_id: str | int, *, is_staff: bool, reason: str | None = None
    ) -> Ticket:
        """
        Close a ticket. The owner, the claimer and staff may close a ticket.

        Raises:
            TicketPermissionDenied: `actor_id` may not close this ticket
            TicketAlreadyClosed: the ticket is closed
        """
        actor_id = str(actor_id)
        if not (is_staff or actor_id in (ticket.user_id, ticket.claimed_by)):
            raise TicketPermissionDenied("close")

        with _store_errors("close the ticket", ticket.guild_id):
            async with self.db_session.begin() as session:
                row = await self._reload(session, ticket)
                if not row.is_open:
                    raise TicketAlreadyClosed
                now = utcnow()
                row.status = TicketStatus.CLOSED.value
                row.closed_by = actor_id
                row.closed_reason = reason
                row.closed_at = now
                row.updated_at = now
        log.info("Ticket %s was closed by %s", row.ticket_id, actor_id)
        return row

    async def delete_ticket(self, ticket: Ticket, *, can_manage_channels: bool) -> None:
        """
        Raises:
            TicketPermissionDenied: the caller may not manage channels
        """
        if not can_manage_channels:
            raise TicketPermissionDenied("delete")
        with _store_errors("delete the ticket", ticket.guild_id):
            async with self.db_session.begin() as session:
                await session.execute(sa.delete(Ticket).where(Ticket.id == ticket.id))
        log.info("Ticket %s was deleted", ticket.ticket_id)

    async def touch(self, channel_id: str | int) -> bool:
        """Record activity in a ticket channel. Returns whether the channel belonged to an open ticket."""
        with _store_errors("record ticket activity"):
            async with self.db_session.begin() as session:
                result = await session.execute(
                    sa.update(Ticket)
                    .where(Ticket.channel_id == str(channel_id), Ticket.status == TicketStatus.OPEN.value)
                    .values(updated_at=utcnow())
                )
        touched = bool(result.rowcount)
        if touched:
            log.trace("Marked activity on the ticket in channel %s", channel_id)
        return touched

    async def find_inactive(self, now: datetime.datetime | None = None) -> list[Ticket]:
        """Return the open tickets that have not seen activity for their guild's `auto_close_hours`."""
        now = now or utcnow()
        default_hours = constants.TicketsCls.default_auto_close_hours
        stmt = (
            sa.select(Ticket, TicketConfig.auto_close_hours)
            .outerjoin(TicketConfig, TicketConfig.guild_id == Ticket.guild_id)
            .where(
                Ticket.status == TicketStatus.OPEN.value,
                # no guild may close tickets sooner than after an hour
                Ticket.updated_at < now - datetime.timedelta(hours=1),
            )
            .order_by(Ticket.updated_at)
        )
        with _store_errors("look for inactive tickets"):
            async with self.db_session() as session:
                rows = (await session.execute(stmt)).all()

        inactive = [
            ticket
            for ticket, hours in rows
            if _aware(ticket.updated_at) < now - datetime.timedelta(hours=hours or default_hours)
        ]
        log.debug("Found %d inactive ticket(s)", len(inactive))
        return inactive

    async def auto_close(self, ticket: Ticket, bot_user_id: str | int) -> bool:
        """Close a ticket for inactivity, unless it was closed or saw activity since it was found."""
        with _store_errors("auto close the ticket", ticket.guild_id):
            async with self.db_session.begin() as session:
                row = await session.get(Ticket, ticket.id)
                if row is None or not row.is_open:
                    return False
                hours = await session.scalar(
                    sa.select(TicketConfig.auto_close_hours).where(TicketConfig.guild_id == row.guild_id)
                )
                now = utcnow()
                cutoff = now - datetime.timedelta(hours=hours or constants.TicketsCls.default_auto_close_hours)
                if _aware(row.updated_at) >= cutoff:
                    log.debug("Ticket %s saw activity again, not closing it", row.ticket_id)
                    return False
                row.status = TicketStatus.CLOSED.value
                row.closed_by = str(bot_user_id)
                row.closed_reason = AUTO_CLOSE_REASON
                row.closed_at = now
                row.updated_at = now
        log.info("Auto-closed ticket %s due to inactivity", row.ticket_id)
        return True

    async def _reload(self, session: AsyncSession, ticket: Ticket) -> Ticket:
        row = await session.get(Ticket, ticket.id, with_for_update=True)
        if row is None:
            raise TicketAlreadyClosed
        return row
