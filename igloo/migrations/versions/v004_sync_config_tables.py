from typing import Any

import sqlalchemy as sa
from alembic.operations import Operations

from igloo.database.base import JSONDocument, Snowflake
from igloo.migrations.registry import Migration


guild_configs = sa.table(
    "guild_configs",
    sa.column("guild_id", Snowflake),
    sa.column("config", JSONDocument),
)


def _number(value: Any, default: float) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def _string(value: Any, default: str | None = None) -> str | None:
    if value is None or value == "":
        return default
    return str(value)


def up(op: Operations) -> None:
    ticket_config = op.create_table(
        "ticket_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", Snowflake, nullable=False, unique=True),
        sa.Column("ticket_category_id", Snowflake, nullable=True),
        sa.Column("support_role_id", Snowflake, nullable=True),
        sa.Column("log_channel_id", Snowflake, nullable=True),
        sa.Column("auto_close_hours", sa.Integer(), server_default="72"),
        sa.Column("max_open_tickets", sa.Integer(), server_default="5"),
        sa.Column("ticket_prefix", sa.String(length=20), server_default="TICKET"),
        sa.Column("welcome_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    shop_config = op.create_table(
        "shop_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", Snowflake, nullable=False, unique=True),
        sa.Column("shop_channel_id", Snowflake, nullable=True),
        sa.Column("customer_role_id", Snowflake, nullable=True),
        sa.Column("currency", sa.String(length=3), server_default="USD"),
        sa.Column("tax_rate", sa.Numeric(5, 2, asdecimal=False), server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # copy what the existing documents already hold, so the mirrors start out in step
    conn = op.get_bind()
    ticket_rows = []
    shop_rows = []
    for row in conn.execute(sa.select(guild_configs.c.guild_id, guild_configs.c.config)).all():
        config = row.config or {}
        tickets = config.get("tickets") or {}
        shop = config.get("shop") or {}
        ticket_rows.append({
            "guild_id": row.guild_id,
            "ticket_category_id": _string(tickets.get("category")),
            "support_role_id": _string(tickets.get("support_role")),
            "log_channel_id": _string(tickets.get("log_channel")),
            "auto_close_hours": int(_number(tickets.get("auto_close_hours"), 72)),
            "max_open_tickets": int(_number(tickets.get("max_open_tickets"), 5)),
        })
        shop_rows.append({
            "guild_id": row.guild_id,
            "shop_channel_id": _string(shop.get("channel")),
            "customer_role_id": _string(shop.get("customer_role")),
            "currency": _string(shop.get("currency"), "USD"),
            "tax_rate": _number(shop.get("tax_rate"), 0),
        })

    if ticket_rows:
        op.bulk_insert(ticket_config, ticket_rows)
        op.bulk_insert(shop_config, shop_rows)


def down(op: Operations) -> None:
    op.drop_table("shop_config")
    op.drop_table("ticket_config")


migration = Migration(4, "Sync Config Tables", up, down)
