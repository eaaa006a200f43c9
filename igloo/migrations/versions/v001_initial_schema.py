import sqlalchemy as sa
from alembic.operations import Operations

from igloo.database.base import JSONDocument, Snowflake
from igloo.migrations.registry import Migration


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def up(op: Operations) -> None:
    op.create_table(
        "guild_configs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", Snowflake, nullable=False, unique=True),
        sa.Column("config", JSONDocument, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.String(length=30), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("guild_id", Snowflake, nullable=False),
        sa.Column("user_id", Snowflake, nullable=False),
        sa.Column("channel_id", Snowflake, nullable=False, unique=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="open"),
        sa.Column("claimed_by", Snowflake, nullable=True),
        sa.Column("closed_by", Snowflake, nullable=True),
        sa.Column("closed_reason", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(length=20), server_default="normal"),
        *_timestamps(),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_close_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transcript_url", sa.Text(), nullable=True),
        sa.UniqueConstraint("guild_id", "ticket_id", name="uq_tickets_guild_ticket_id"),
    )
    op.create_index("ix_tickets_guild_id", "tickets", ["guild_id"])
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_status", "tickets", ["status"])

    op.create_table(
        "ticket_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="CASCADE")),
        sa.Column("user_id", Snowflake, nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("attachments", JSONDocument, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ticket_messages_ticket_id", "ticket_messages", ["ticket_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("discord_id", Snowflake, nullable=False, unique=True),
        sa.Column("username", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("total_tickets", sa.Integer(), server_default="0"),
        sa.Column("total_orders", sa.Integer(), server_default="0"),
        sa.Column("total_spent", sa.Numeric(10, 2), server_default="0"),
        *_timestamps(),
        sa.Column("last_seen", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("banned", sa.Boolean(), server_default=sa.false()),
        sa.Column("ban_reason", sa.Text(), nullable=True),
    )

    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", Snowflake, nullable=False, unique=True),
        sa.Column("guild_id", Snowflake, nullable=False),
        sa.Column("tickets_handled", sa.Integer(), server_default="0"),
        sa.Column("average_response_time", sa.Integer(), nullable=True),
        sa.Column("rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("permissions", JSONDocument, nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_staff_guild_id", "staff", ["guild_id"])


def down(op: Operations) -> None:
    op.drop_table("staff")
    op.drop_table("users")
    op.drop_table("ticket_messages")
    op.drop_table("tickets")
    op.drop_table("guild_configs")


migration = Migration(1, "Initial Schema", up, down)
