"""Tests for opening, claiming, closing and auto closing tickets."""

import datetime

import pytest
import sqlalchemy as sa

from igloo.database import Ticket, TicketConfig, TicketStatus
from igloo.database.base import utcnow
from igloo.errors import TicketAlreadyClaimed, TicketAlreadyClosed, TicketPermissionDenied, TooManyOpenTickets
from igloo.services.tickets import AUTO_CLOSE_REASON

from .conftest import GUILD_ID, OTHER_GUILD_ID


USER_ID = "300000000000000001"
OTHER_USER_ID = "300000000000000002"
STAFF_ID = "400000000000000001"
BOT_ID = "500000000000000001"

channel_ids = iter(range(600000000000000000, 700000000000000000))


async def open_ticket(ticket_service, guild_id=GUILD_ID, user_id=USER_ID):
    draft = await ticket_service.prepare_ticket(guild_id, user_id)
    return await ticket_service.create_ticket(draft, next(channel_ids), "support")


async def set_routing(db_session, guild_id=GUILD_ID, **columns):
    async with db_session.begin() as session:
        session.add(TicketConfig(guild_id=guild_id, **columns))


async def backdate(db_session, ticket, hours):
    async with db_session.begin() as session:
        await session.execute(
            sa.update(Ticket)
            .where(Ticket.id == ticket.id)
            .values(updated_at=utcnow() - datetime.timedelta(hours=hours))
        )


class TestPrepareTicket:
    """Tests for allowing and numbering new tickets."""

    async def test_defaults_without_routing(self, ticket_service):
        draft = await ticket_service.prepare_ticket(GUILD_ID, USER_ID)
        assert draft.number == 1
        assert draft.ticket_id == "TICKET-0001"
        assert draft.channel_name == "ticket-0001"
        assert draft.routing.max_open_tickets == 5
        assert draft.routing.category_id is None

    async def test_routing_comes_from_ticket_config(self, ticket_service, db_session):
        await set_routing(
            db_session, ticket_category_id="1", support_role_id="2", ticket_prefix="HELP", welcome_message="Hello"
        )
        draft = await ticket_service.prepare_ticket(GUILD_ID, USER_ID)
        assert draft.ticket_id == "HELP-0001"
        assert draft.routing.category_id == "1"
        assert draft.routing.support_role_id == "2"
        assert draft.routing.welcome_message == "Hello"

    async def test_numbers_increase_per_guild(self, ticket_service):
        first = await open_ticket(ticket_service)
        second = await open_ticket(ticket_service, user_id=OTHER_USER_ID)
        other_guild = await open_ticket(ticket_service, guild_id=OTHER_GUILD_ID)

        assert (first.number, second.number) == (1, 2)
        assert second.ticket_id == "TICKET-0002"
        assert other_guild.ticket_id == "TICKET-0001"

    async def test_numbers_are_not_reused_after_closing(self, ticket_service):
        first = await open_ticket(ticket_service)
        await ticket_service.close_ticket(first, USER_ID, is_staff=False)
        second = await open_ticket(ticket_service)
        assert second.number == 2

    async def test_too_many_open_tickets(self, ticket_service, db_session):
        await set_routing(db_session, max_open_tickets=2)
        await open_ticket(ticket_service)
        await open_ticket(ticket_service)

        with pytest.raises(TooManyOpenTickets) as exc_info:
            await ticket_service.prepare_ticket(GUILD_ID, USER_ID)
        assert exc_info.value.open_tickets == 2

        # the limit is per member
        draft = await ticket_service.prepare_ticket(GUILD_ID, OTHER_USER_ID)
        assert draft.number == 3

    async def test_closed_tickets_do_not_count(self, ticket_service, db_session):
        await set_routing(db_session, max_open_tickets=1)
        ticket = await open_ticket(ticket_service)
        await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)

        draft = await ticket_service.prepare_ticket(GUILD_ID, USER_ID)
        assert draft.number == 2

    async def test_created_ticket_can_be_found_by_channel(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        found = await ticket_service.get_by_channel(ticket.channel_id)
        assert found.id == ticket.id
        assert found.status == TicketStatus.OPEN.value
        assert found.category == "support"
        assert await ticket_service.get_by_channel("1") is None


class TestClaimAndClose:
    """Tests for claiming, closing and deleting tickets."""

    async def test_claim(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        claimed = await ticket_service.claim_ticket(ticket, STAFF_ID)
        assert claimed.claimed_by == STAFF_ID

        with pytest.raises(TicketAlreadyClaimed) as exc_info:
            await ticket_service.claim_ticket(ticket, OTHER_USER_ID)
        assert exc_info.value.claimed_by == STAFF_ID

    async def test_claim_closed_ticket(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)
        with pytest.raises(TicketAlreadyClosed):
            await ticket_service.claim_ticket(ticket, STAFF_ID)

    async def test_owner_can_close(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        closed = await ticket_service.close_ticket(ticket, USER_ID, is_staff=False, reason="Solved")
        assert closed.status == TicketStatus.CLOSED.value
        assert closed.closed_by == USER_ID
        assert closed.closed_reason == "Solved"
        assert closed.closed_at is not None
        assert not closed.is_open

    async def test_staff_can_close(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        closed = await ticket_service.close_ticket(ticket, STAFF_ID, is_staff=True)
        assert closed.closed_by == STAFF_ID

    async def test_claimer_can_close(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        claimed = await ticket_service.claim_ticket(ticket, STAFF_ID)
        closed = await ticket_service.close_ticket(claimed, STAFF_ID, is_staff=False)
        assert closed.closed_by == STAFF_ID

    async def test_others_cannot_close(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        with pytest.raises(TicketPermissionDenied) as exc_info:
            await ticket_service.close_ticket(ticket, OTHER_USER_ID, is_staff=False)
        assert exc_info.value.action == "close"
        assert (await ticket_service.get_by_channel(ticket.channel_id)).is_open

    async def test_close_twice(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)
        with pytest.raises(TicketAlreadyClosed):
            await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)

    async def test_delete_needs_manage_channels(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        with pytest.raises(TicketPermissionDenied):
            await ticket_service.delete_ticket(ticket, can_manage_channels=False)

        await ticket_service.delete_ticket(ticket, can_manage_channels=True)
        assert await ticket_service.get_by_channel(ticket.channel_id) is None


class TestInactivity:
    """Tests for activity tracking and closing inactive tickets."""

    async def test_touch(self, ticket_service, db_session):
        ticket = await open_ticket(ticket_service)
        await backdate(db_session, ticket, hours=80)

        assert await ticket_service.touch(ticket.channel_id) is True
        assert await ticket_service.touch("1") is False
        assert await ticket_service.find_inactive() == []

    async def test_touch_closed_ticket(self, ticket_service):
        ticket = await open_ticket(ticket_service)
        await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)
        assert await ticket_service.touch(ticket.channel_id) is False

    async def test_find_inactive_uses_default_hours(self, ticket_service, db_session):
        stale = await open_ticket(ticket_service)
        recent = await open_ticket(ticket_service, user_id=OTHER_USER_ID)
        await backdate(db_session, stale, hours=73)
        await backdate(db_session, recent, hours=71)

        assert [ticket.id for ticket in await ticket_service.find_inactive()] == [stale.id]

    async def test_find_inactive_uses_guild_hours(self, ticket_service, db_session):
        await set_routing(db_session, auto_close_hours=2)
        ticket = await open_ticket(ticket_service)
        other_guild = await open_ticket(ticket_service, guild_id=OTHER_GUILD_ID)
        await backdate(db_session, ticket, hours=3)
        await backdate(db_session, other_guild, hours=3)

        assert [found.id for found in await ticket_service.find_inactive()] == [ticket.id]

    async def test_find_inactive_skips_closed(self, ticket_service, db_session):
        ticket = await open_ticket(ticket_service)
        await ticket_service.close_ticket(ticket, USER_ID, is_staff=False)
        await backdate(db_session, ticket, hours=100)
        assert await ticket_service.find_inactive() == []

    async def test_auto_close(self, ticket_service, db_session):
        ticket = await open_ticket(ticket_service)
        await backdate(db_session, ticket, hours=80)
        (inactive,) = await ticket_service.find_inactive()

        assert await ticket_service.auto_close(inactive, BOT_ID) is True
        closed = await ticket_service.get_by_channel(ticket.channel_id)
        assert closed.status == TicketStatus.CLOSED.value
        assert closed.closed_by == BOT_ID
        assert closed.closed_reason == AUTO_CLOSE_REASON

        assert await ticket_service.auto_close(inactive, BOT_ID) is False

    async def test_auto_close_skips_ticket_with_new_activity(self, ticket_service, db_session):
        ticket = await open_ticket(ticket_service)
        await backdate(db_session, ticket, hours=80)
        (inactive,) = await ticket_service.find_inactive()

        await ticket_service.touch(ticket.channel_id)
        assert await ticket_service.auto_close(inactive, BOT_ID) is False
        assert (await ticket_service.get_by_channel(ticket.channel_id)).is_open
