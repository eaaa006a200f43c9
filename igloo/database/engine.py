from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


__all__ = ("create_engine",)


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    # pysqlite only opens a transaction before DML, so DDL would otherwise autocommit
    # and a failed migration could not be rolled back.
    @sa.event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @sa.event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn: sa.Connection) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create the async engine for `url`, with transactional DDL on every backend."""
    engine = create_async_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_transactions(engine)
    return engine
