import datetime
import enum
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Snowflake, utcnow


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class Ticket(Base):
    """A support ticket and the channel it lives in."""

    __tablename__ = "tickets"
    __table_args__ = (sa.UniqueConstraint("guild_id", "ticket_id", name="uq_tickets_guild_ticket_id"),)

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(sa.String(length=30), nullable=False)
    number: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    guild_id: Mapped[str] = mapped_column(Snowflake, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(Snowflake, nullable=False, index=True)
    channel_id: Mapped[str] = mapped_column(Snowflake, unique=True, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(sa.String(length=100), nullable=True, default=None)
    status: Mapped[str] = mapped_column(
        sa.String(length=20), default=TicketStatus.OPEN.value, server_default=TicketStatus.OPEN.value, index=True
    )
    claimed_by: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    closed_by: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    closed_reason: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True, default=None)
    priority: Mapped[str] = mapped_column(sa.String(length=20), default="normal", server_default="normal")
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    closed_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, default=None
    )
    auto_close_at: Mapped[Optional[datetime.datetime]] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, default=None
    )
    transcript_url: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True, default=None)

    @property
    def is_open(self) -> bool:
        return self.status == TicketStatus.OPEN.value
