"""Engine, sessions and additive schema upgrades for the Episodic store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, NamedTuple

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits on a locked database before failing.
SQLITE_BUSY_TIMEOUT = 30


class Base(DeclarativeBase):
    metadata = MetaData()


class ColumnUpgrade(NamedTuple):
    """A column added after a table first shipped."""

    table: str
    column: str
    ddl: str
    backfill: str | None = None


COLUMN_UPGRADES: tuple[ColumnUpgrade, ...] = (
    ColumnUpgrade(
        "shows",
        "tagline",
        "ALTER TABLE shows ADD COLUMN tagline TEXT DEFAULT ''",
        "UPDATE shows SET tagline = '' WHERE tagline IS NULL",
    ),
    ColumnUpgrade(
        "shows",
        "synced_at",
        "ALTER TABLE shows ADD COLUMN synced_at DATETIME",
    ),
)


class Database:
    """Owns the async engine and the session factory shared by repositories."""

    def __init__(self, database_url: str):
        connect_args: dict[str, Any] = {}
        if make_url(database_url).get_backend_name() == "sqlite":
            connect_args["timeout"] = SQLITE_BUSY_TIMEOUT

        self._engine: AsyncEngine = create_async_engine(
            database_url, future=True, connect_args=connect_args
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create missing tables and add columns introduced since they were created."""

        # Registers the mapped tables on the shared metadata.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection: Connection) -> None:
        inspector = inspect(sync_connection)
        table_names = set(inspector.get_table_names())
        known_columns: dict[str, set[str]] = {}

        for upgrade in COLUMN_UPGRADES:
            if upgrade.table not in table_names:
                continue
            columns = known_columns.setdefault(
                upgrade.table,
                {column["name"] for column in inspector.get_columns(upgrade.table)},
            )
            if upgrade.column in columns:
                continue
            logger.info("Adding column %s.%s", upgrade.table, upgrade.column)
            sync_connection.execute(text(upgrade.ddl))
            if upgrade.backfill:
                sync_connection.execute(text(upgrade.backfill))
            columns.add(upgrade.column)

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session
