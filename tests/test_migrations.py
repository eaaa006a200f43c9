"""Tests for the migration registry, the runner, and the migrations shipped with the bot."""

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from igloo.database import GuildConfig, SchemaVersion, ShopConfig, TicketConfig
from igloo.errors import MigrationFailure
from igloo.migrations import Migration, MigrationRegistry, current_version, downgrade, migrate
from igloo.migrations.versions import default_registry, v001_initial_schema, v002_shop_tables
from igloo.migrations.versions.v003_payment_settings import DEFAULT_PAYMENT_SECTION

from .conftest import GUILD_ID, OTHER_GUILD_ID


def table_migration(version, calls, *, fail=False):
    """A migration creating `table_<version>`, recording every call to `up` in `calls`."""

    def up(op):
        calls.append(version)
        op.create_table(f"table_{version}", sa.Column("id", sa.Integer(), primary_key=True))
        if fail:
            raise RuntimeError(f"migration {version} exploded")

    def down(op):
        op.drop_table(f"table_{version}")

    return Migration(version, f"Create table {version}", up, down)


async def has_table(engine, name):
    async with engine.connect() as conn:
        return await conn.run_sync(lambda sync_conn: sa.inspect(sync_conn).has_table(name))


async def ledger(engine):
    async with engine.connect() as conn:
        result = await conn.execute(sa.select(SchemaVersion.version).order_by(SchemaVersion.version))
        return list(result.scalars())


class TestMigrationRegistry:
    """Tests for MigrationRegistry."""

    def test_iterates_by_version(self):
        calls = []
        registry = MigrationRegistry([table_migration(3, calls), table_migration(1, calls)])
        registry.register(table_migration(2, calls))
        assert [migration.version for migration in registry] == [1, 2, 3]
        assert registry.latest == 3
        assert len(registry) == 3
        assert 2 in registry
        assert registry.get(4) is None

    def test_duplicate_version(self):
        calls = []
        registry = MigrationRegistry([table_migration(1, calls)])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(table_migration(1, calls))

    def test_version_starts_at_one(self):
        with pytest.raises(ValueError, match="start at 1"):
            MigrationRegistry([table_migration(0, [])])

    def test_gap_is_rejected(self):
        registry = MigrationRegistry([table_migration(1, []), table_migration(3, [])])
        with pytest.raises(ValueError, match=r"missing \[2\]"):
            registry.validate()

    def test_empty_registry_is_valid(self):
        registry = MigrationRegistry()
        registry.validate()
        assert registry.latest == 0

    def test_default_registry_is_contiguous(self):
        registry = default_registry()
        registry.validate()
        assert [migration.name for migration in registry] == [
            "Initial Schema",
            "Add Shop Tables",
            "Add Payment Settings",
            "Sync Config Tables",
        ]


class TestMigrate:
    """Tests for applying migrations."""

    async def test_applies_in_order(self, engine):
        calls = []
        registry = MigrationRegistry([table_migration(v, calls) for v in (2, 3, 1)])

        assert await migrate(engine, registry) == [1, 2, 3]
        assert calls == [1, 2, 3]
        assert await ledger(engine) == [1, 2, 3]
        assert await current_version(engine) == 3

    async def test_rerun_applies_nothing(self, engine):
        calls = []
        registry = MigrationRegistry([table_migration(v, calls) for v in (1, 2, 3)])
        await migrate(engine, registry)

        assert await migrate(engine, registry) == []
        assert calls == [1, 2, 3]
        assert await ledger(engine) == [1, 2, 3]

    async def test_only_new_migrations_are_applied(self, engine):
        calls = []
        await migrate(engine, MigrationRegistry([table_migration(1, calls)]))
        assert await migrate(engine, MigrationRegistry([table_migration(v, calls) for v in (1, 2)])) == [2]
        assert calls == [1, 2]

    async def test_failure_halts_and_rolls_back(self, engine):
        calls = []
        registry = MigrationRegistry(
            [table_migration(1, calls), table_migration(2, calls, fail=True), table_migration(3, calls)]
        )

        with pytest.raises(MigrationFailure) as exc_info:
            await migrate(engine, registry)

        assert exc_info.value.version == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert calls == [1, 2]
        assert await current_version(engine) == 1
        assert await has_table(engine, "table_1")
        # the table created before the failure was rolled back with it
        assert not await has_table(engine, "table_2")
        assert not await has_table(engine, "table_3")

    async def test_failed_data_change_is_rolled_back(self, engine):
        await migrate(engine, MigrationRegistry([v001_initial_schema.migration]))

        def up(op):
            op.execute(sa.text("INSERT INTO guild_configs (guild_id, config) VALUES ('1', '{}')"))
            raise RuntimeError("after the insert")

        registry = MigrationRegistry([v001_initial_schema.migration, Migration(2, "Broken", up, lambda op: None)])
        with pytest.raises(MigrationFailure):
            await migrate(engine, registry)

        async with engine.connect() as conn:
            assert await conn.scalar(sa.select(sa.func.count()).select_from(GuildConfig.__table__)) == 0

    async def test_resumes_after_fixed_failure(self, engine):
        calls = []
        broken = MigrationRegistry([table_migration(1, calls), table_migration(2, calls, fail=True)])
        with pytest.raises(MigrationFailure):
            await migrate(engine, broken)

        fixed = MigrationRegistry([table_migration(1, calls), table_migration(2, calls)])
        assert await migrate(engine, fixed) == [2]
        assert await ledger(engine) == [1, 2]

    async def test_gap_is_rejected_before_running(self, engine):
        calls = []
        with pytest.raises(ValueError):
            await migrate(engine, MigrationRegistry([table_migration(1, calls), table_migration(3, calls)]))
        assert calls == []
        assert await current_version(engine) == 0

    async def test_fresh_database_version(self, engine):
        assert await current_version(engine) == 0


class TestDowngrade:
    """Tests for reverting migrations."""

    async def test_downgrade_to_target(self, engine):
        calls = []
        registry = MigrationRegistry([table_migration(v, calls) for v in (1, 2, 3)])
        await migrate(engine, registry)

        assert await downgrade(engine, registry, target=1) == [3, 2]
        assert await ledger(engine) == [1]
        assert await has_table(engine, "table_1")
        assert not await has_table(engine, "table_2")

        assert await migrate(engine, registry) == [2, 3]

    async def test_downgrade_everything(self, migrated_engine):
        assert await downgrade(migrated_engine) == [4, 3, 2, 1]
        assert await current_version(migrated_engine) == 0
        assert not await has_table(migrated_engine, "guild_configs")


class TestShippedMigrations:
    """Tests for the migrations in igloo.migrations.versions."""

    async def test_fresh_database(self, engine):
        assert await migrate(engine) == [1, 2, 3, 4]
        for table in (
            "guild_configs",
            "tickets",
            "ticket_messages",
            "users",
            "staff",
            "products",
            "orders",
            "order_items",
            "coupons",
            "payment_providers",
            "payment_logs",
            "ticket_config",
            "shop_config",
        ):
            assert await has_table(engine, table), table

    async def test_existing_documents_are_carried_forward(self, engine):
        await migrate(engine, MigrationRegistry([v001_initial_schema.migration, v002_shop_tables.migration]))
        db_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        async with db_session.begin() as session:
            session.add(
                GuildConfig(
                    guild_id=GUILD_ID,
                    config={
                        "tickets": {"category": "123456789012345678", "max_open_tickets": 3},
                        "shop": {"tax_rate": 5, "currency": "EUR"},
                    },
                )
            )
            session.add(GuildConfig(guild_id=OTHER_GUILD_ID, config={"payment": {"currency": "GBP"}}))

        assert await migrate(engine) == [3, 4]

        async with db_session() as session:
            documents = {row.guild_id: row.config for row in await session.scalars(sa.select(GuildConfig))}
            tickets = await session.scalar(sa.select(TicketConfig).where(TicketConfig.guild_id == GUILD_ID))
            shop = await session.scalar(sa.select(ShopConfig).where(ShopConfig.guild_id == GUILD_ID))
            other_tickets = await session.scalar(
                sa.select(TicketConfig).where(TicketConfig.guild_id == OTHER_GUILD_ID)
            )

        assert documents[GUILD_ID]["payment"] == DEFAULT_PAYMENT_SECTION
        # a payment section that is already there is left alone
        assert documents[OTHER_GUILD_ID]["payment"] == {"currency": "GBP"}

        assert tickets.ticket_category_id == "123456789012345678"
        assert tickets.max_open_tickets == 3
        assert tickets.auto_close_hours == 72
        assert tickets.ticket_prefix == "TICKET"
        assert shop.tax_rate == 5
        assert shop.currency == "EUR"
        assert other_tickets.ticket_category_id is None
        assert other_tickets.max_open_tickets == 5

    async def test_payment_section_is_removed_on_downgrade(self, engine):
        await migrate(engine, MigrationRegistry([v001_initial_schema.migration, v002_shop_tables.migration]))
        db_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        async with db_session.begin() as session:
            session.add(GuildConfig(guild_id=GUILD_ID, config={"general": {"prefix": "?"}}))
        await migrate(engine)

        assert await downgrade(engine, target=2) == [4, 3]

        async with db_session() as session:
            config = await session.scalar(sa.select(GuildConfig.config).where(GuildConfig.guild_id == GUILD_ID))
        assert config == {"general": {"prefix": "?"}}
        assert not await has_table(engine, "payment_providers")
        assert not await has_table(engine, "ticket_config")
