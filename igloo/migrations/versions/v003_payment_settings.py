import sqlalchemy as sa
from alembic.operations import Operations

from igloo.database.base import JSONDocument, Snowflake
from igloo.migrations.registry import Migration


DEFAULT_PAYMENT_SECTION = {
    "currency": "USD",
    "tax_rate": 0,
    "business_name": "",
    "business_address": "",
    "receipt_footer": "",
    "stripe_enabled": False,
    "paypal_enabled": False,
}

guild_configs = sa.table(
    "guild_configs",
    sa.column("id", sa.Integer()),
    sa.column("config", JSONDocument),
)


def up(op: Operations) -> None:
    op.create_table(
        "payment_providers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", Snowflake, nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.false()),
        sa.Column("credentials", JSONDocument, nullable=True),
        sa.Column("settings", JSONDocument, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("guild_id", "provider", name="uq_payment_providers_guild_provider"),
    )

    op.create_table(
        "payment_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", Snowflake, nullable=False),
        sa.Column("order_id", sa.String(length=20), nullable=True),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), server_default="USD"),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_id", sa.String(length=100), nullable=True),
        sa.Column("raw_data", JSONDocument, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_payment_logs_guild_id", "payment_logs", ["guild_id"])
    op.create_index("ix_payment_logs_order_id", "payment_logs", ["order_id"])

    conn = op.get_bind()
    for row in conn.execute(sa.select(guild_configs.c.id, guild_configs.c.config)).all():
        config = dict(row.config or {})
        if config.get("payment") is not None:
            continue
        config["payment"] = dict(DEFAULT_PAYMENT_SECTION)
        conn.execute(sa.update(guild_configs).where(guild_configs.c.id == row.id).values(config=config))


def down(op: Operations) -> None:
    op.drop_table("payment_logs")
    op.drop_table("payment_providers")

    conn = op.get_bind()
    for row in conn.execute(sa.select(guild_configs.c.id, guild_configs.c.config)).all():
        config = dict(row.config or {})
        if config.pop("payment", None) is None:
            continue
        conn.execute(sa.update(guild_configs).where(guild_configs.c.id == row.id).values(config=config))


migration = Migration(3, "Add Payment Settings", up, down)
