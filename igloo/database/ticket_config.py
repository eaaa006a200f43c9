import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Snowflake, utcnow


# n.b. the columns here mirror the `tickets` section of the config schema, keep igloo.services.config_sync in step
class TicketConfig(Base):
    """Normalized ticket routing for a guild, read directly when tickets are opened."""

    __tablename__ = "ticket_config"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(Snowflake, unique=True, nullable=False)
    ticket_category_id: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    support_role_id: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    log_channel_id: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    auto_close_hours: Mapped[int] = mapped_column(sa.Integer, default=72, server_default="72")
    max_open_tickets: Mapped[int] = mapped_column(sa.Integer, default=5, server_default="5")
    ticket_prefix: Mapped[str] = mapped_column(sa.String(length=20), default="TICKET", server_default="TICKET")
    welcome_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True, default=None)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
