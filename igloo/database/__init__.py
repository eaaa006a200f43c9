from .base import Base
from .engine import create_engine
from .guild_config import GuildConfig
from .schema_version import SchemaVersion
from .shop_config import ShopConfig
from .ticket import Ticket, TicketStatus
from .ticket_config import TicketConfig


__all__ = (
    "Base",
    "GuildConfig",
    "SchemaVersion",
    "ShopConfig",
    "Ticket",
    "TicketConfig",
    "TicketStatus",
    "create_engine",
)
