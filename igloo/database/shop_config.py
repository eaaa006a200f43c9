import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, Snowflake, utcnow


# n.b. the columns here mirror the `shop` section of the config schema, keep igloo.services.config_sync in step
class ShopConfig(Base):
    """Normalized shop settings for a guild."""

    __tablename__ = "shop_config"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(Snowflake, unique=True, nullable=False)
    shop_channel_id: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    customer_role_id: Mapped[Optional[str]] = mapped_column(Snowflake, nullable=True, default=None)
    currency: Mapped[str] = mapped_column(sa.String(length=3), default="USD", server_default="USD")
    tax_rate: Mapped[float] = mapped_column(sa.Numeric(5, 2, asdecimal=False), default=0, server_default="0")
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now()
    )
