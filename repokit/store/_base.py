"""Shared pieces of the entity store adapters.

The entity store is the unit-of-work scope repositories work against. It is
a thin layer over a SQLAlchemy session that exposes only what repositories
need: a lazy collection view, key lookup, change marking and commit.
"""

import typing as t
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from sqlalchemy import Select, inspect, select
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import create_async_engine as sa_create_async_engine
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import FlushError, StaleDataError

from repokit.config import Settings
from repokit.repository._base import (
    ConcurrencyConflictError,
    PersistenceConflictError,
    RepositoryError,
    TransientConnectivityError,
)


class StoreSettings(Settings):
    """Connection settings for the entity store."""

    model_config = SettingsConfigDict(env_prefix="REPOKIT_STORE_", extra="ignore")

    database_url: str = "sqlite+pysqlite:///:memory:"
    async_database_url: str = "sqlite+aiosqlite:///:memory:"
    echo: bool = False
    pool_pre_ping: bool = False
    expire_on_commit: bool = Field(
        default=False,
        description="Expire loaded instances after each commit",
    )
    engine_kwargs: dict[str, t.Any] = {}

    def engine_options(self) -> dict[str, t.Any]:
        return {
            "echo": self.echo,
            "pool_pre_ping": self.pool_pre_ping,
        } | self.engine_kwargs


def create_engine(settings: StoreSettings | None = None) -> Engine:
    settings = settings or StoreSettings()
    return sa_create_engine(settings.database_url, **settings.engine_options())


def create_async_engine(settings: StoreSettings | None = None) -> AsyncEngine:
    settings = settings or StoreSettings()
    return sa_create_async_engine(
        settings.async_database_url,
        **settings.engine_options(),
    )


def collection_view[EntityType](entity_type: type[EntityType]) -> Select[t.Any]:
    return select(entity_type)


def pending_changes(session: t.Any) -> int:
    """Number of instances the next flush will insert, update or delete."""
    return len(session.new) + len(session.dirty) + len(session.deleted)


def is_new(instance: t.Any) -> bool:
    return inspect(instance).pending


def flag_all_modified(instance: t.Any) -> None:
    """Mark every non-key column of ``instance`` as changed."""
    mapper = inspect(instance).mapper
    for attr in mapper.column_attrs:
        if any(column.primary_key for column in attr.columns):
            continue
        flag_modified(instance, attr.key)


def missing_row_error(entity_name: str, operation: str) -> ConcurrencyConflictError:
    return ConcurrencyConflictError(
        f"{entity_name} row to {operation} does not exist; expected 1 row, "
        "matched 0",
        entity_type=entity_name,
        operation=operation,
    )


def translate_error(error: Exception, operation: str) -> RepositoryError:
    """Map a SQLAlchemy error raised at the store boundary onto our taxonomy."""
    if isinstance(error, RepositoryError):
        return error
    if isinstance(error, StaleDataError):
        return ConcurrencyConflictError(
            f"Concurrency conflict during {operation}: {error}",
            operation=operation,
        )
    if isinstance(error, IntegrityError | FlushError):
        return PersistenceConflictError(
            f"Store rejected {operation}: {error}",
            operation=operation,
        )
    if isinstance(error, OperationalError | InterfaceError | DisconnectionError):
        return TransientConnectivityError(
            f"Store unavailable during {operation}: {error}",
            operation=operation,
        )
    if isinstance(error, PoolTimeoutError):
        return TransientConnectivityError(
            f"Timed out waiting for a connection during {operation}: {error}",
            operation=operation,
        )
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return TransientConnectivityError(
            f"Connection lost during {operation}: {error}",
            operation=operation,
        )
    return RepositoryError(f"Store {operation} failed: {error}", operation=operation)


STORE_ERRORS = (SQLAlchemyError,)
