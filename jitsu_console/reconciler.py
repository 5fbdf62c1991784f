"""Hard-deletion of soft-deleted Console rows.

The Console never removes rows, it flags them ``deleted``. The flagged row keeps its unique
key, so recreating an object with the same ID fails with a unique-constraint error. This
module reaches into the Console database and removes such rows before the create is retried.
"""

import asyncio
from enum import Enum

import asyncpg
from sqlalchemy import Boolean, Column, MetaData, String, Table, delete, or_, true
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from jitsu_console.errors import ConfigurationError, ReconcileError
from jitsu_console.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEMA = "newjitsu"
ASYNC_DRIVER = "postgresql+asyncpg"

MISSING_DATABASE_URL = (
    "database_url not configured; Jitsu uses soft-delete, so re-creating objects with "
    "the same ID requires database_url to hard-delete stale rows"
)


class TableKind(str, Enum):
    """Console tables that can hold soft-deleted rows."""

    OBJECT = "ConfigurationObject"
    LINK = "ConfigurationObjectLink"

    @classmethod
    def for_resource_type(cls, resource_type: str) -> "TableKind":
        if resource_type == "link":
            return cls.LINK
        return cls.OBJECT


def build_tables(schema: str = DEFAULT_SCHEMA) -> dict[TableKind, Table]:
    """Describe the columns of the Console tables that purging touches."""
    metadata = MetaData(schema=schema)
    objects = Table(
        TableKind.OBJECT.value,
        metadata,
        Column("id", String, primary_key=True),
        Column("deleted", Boolean, nullable=False),
    )
    links = Table(
        TableKind.LINK.value,
        metadata,
        Column("id", String, primary_key=True),
        Column("fromId", String, nullable=False),
        Column("toId", String, nullable=False),
        Column("deleted", Boolean, nullable=False),
    )
    return {TableKind.OBJECT: objects, TableKind.LINK: links}


def normalize_database_url(database_url: str) -> URL:
    """Point a libpq-style PostgreSQL URL at the asyncpg driver.

    ``sslmode`` is renamed to asyncpg's ``ssl`` connect argument.
    """
    try:
        url = make_url(database_url)
    except ArgumentError as e:
        # The parse error echoes the URL, password included.
        raise ConfigurationError("database_url is not a valid connection URL") from e

    if url.get_backend_name() in ("postgres", "postgresql"):
        url = url.set(drivername=ASYNC_DRIVER)

    sslmode = url.query.get("sslmode")
    if sslmode is not None:
        url = url.difference_update_query(["sslmode"]).update_query_dict({"ssl": sslmode})
    return url


class SoftDeleteReconciler:
    """Removes soft-deleted rows that block recreation under the same ID.

    The connection pool is opened on first use, at most once per instance. Concurrent first
    callers wait for that single initialization and share its engine or its error.
    """

    def __init__(self, database_url: str | None, schema: str = DEFAULT_SCHEMA):
        self._database_url = database_url
        self._tables = build_tables(schema)
        self._engine: AsyncEngine | None = None
        self._engine_error: ConfigurationError | None = None
        self._engine_initialized = False
        self._engine_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._database_url)

    async def _get_engine(self) -> AsyncEngine:
        if not self._database_url:
            raise ConfigurationError(MISSING_DATABASE_URL)

        async with self._engine_lock:
            if not self._engine_initialized:
                self._engine_initialized = True
                try:
                    self._engine = create_async_engine(
                        normalize_database_url(self._database_url),
                        pool_size=1,
                        max_overflow=1,
                        pool_pre_ping=True,
                    )
                except ConfigurationError as e:
                    self._engine_error = e
                except (SQLAlchemyError, ImportError) as e:
                    error = ConfigurationError(f"opening database connection pool: {e}")
                    error.__cause__ = e
                    self._engine_error = error

        if self._engine_error is not None:
            raise ConfigurationError(str(self._engine_error)) from self._engine_error.__cause__
        if self._engine is None:
            raise ConfigurationError("database connection pool is closed")
        return self._engine

    async def purge_soft_deleted(self, id: str, table_kind: TableKind) -> None:
        """Hard-delete the soft-deleted row ``id`` so it can be created again.

        For configuration objects, soft-deleted links referencing the object through
        ``fromId`` or ``toId`` are removed first, since they hold foreign keys to it.
        Only rows with ``deleted = true`` are ever touched.

        Raises:
            ConfigurationError: If no database URL is configured or the pool cannot be opened
            ReconcileError: If the database is unreachable or a delete statement fails
        """
        engine = await self._get_engine()
        table = self._tables[table_kind]
        links = self._tables[TableKind.LINK]

        logger.warning("hard_deleting_soft_deleted_row", id=id, table=table_kind.value)

        try:
            async with engine.begin() as conn:
                if table_kind is TableKind.OBJECT:
                    result = await conn.execute(
                        delete(links).where(
                            links.c.deleted == true(),
                            or_(links.c.fromId == id, links.c.toId == id),
                        )
                    )
                    logger.info("purged_referencing_links", id=id, rows=result.rowcount)

                result = await conn.execute(
                    delete(table).where(table.c.id == id, table.c.deleted == true())
                )
                logger.info(
                    "purged_soft_deleted_row", id=id, table=table_kind.value, rows=result.rowcount
                )
        except (SQLAlchemyError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            # Connect failures from asyncpg are raised as-is, not as DBAPIError.
            raise ReconcileError(
                f"hard-deleting soft-deleted {table_kind.value} {id!r}: {e}"
            ) from e

    async def close(self) -> None:
        """Dispose of the connection pool if it was opened."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._engine_initialized = False
