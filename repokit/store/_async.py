"""Entity store over a SQLAlchemy ``AsyncSession``.

Every method that reaches the database is a coroutine; nothing else
suspends. Cancelling a commit rolls the session back before the
cancellation propagates, so an interrupted call leaves no partial change.
"""

import asyncio

import typing as t
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from repokit.cleanup import CleanupMixin
from repokit.logger import logger

from ._base import (
    STORE_ERRORS,
    StoreSettings,
    collection_view,
    flag_all_modified,
    is_new,
    missing_row_error,
    pending_changes,
    translate_error,
)


class AsyncEntityStore(CleanupMixin):
    """Async unit-of-work scope. Calls on one store must be sequential."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__()
        self._session = session
        self._deferred = False
        self._on_deferred_commit: t.Callable[[], None] | None = None
        self._deferred_failure: Exception | None = None
        self.register_resource(session)

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def deferring(self) -> bool:
        return self._deferred

    @property
    def deferred_failure(self) -> Exception | None:
        """First error raised by a deferred commit since ``defer_commits``.

        A failed flush rolls back everything flushed before it, so the unit
        of work must not commit once this is set.
        """
        return self._deferred_failure

    def defer_commits(self, on_commit: t.Callable[[], None] | None = None) -> None:
        self._deferred = True
        self._deferred_failure = None
        self._on_deferred_commit = on_commit

    def resume_commits(self) -> None:
        self._deferred = False
        self._on_deferred_commit = None

    def collection_view[EntityType](
        self, entity_type: type[EntityType]
    ) -> Select[t.Any]:
        return collection_view(entity_type)

    async def find[EntityType](
        self, entity_type: type[EntityType], key: t.Any
    ) -> EntityType | None:
        try:
            return await self._session.get(entity_type, key)
        except STORE_ERRORS as e:
            raise translate_error(e, "find") from e

    async def fetch(self, query: Select[t.Any], tracked: bool = True) -> list[t.Any]:
        try:
            if tracked:
                return list((await self._session.scalars(query)).all())
            connection = await self._session.connection()
            async with AsyncSession(
                bind=connection,
                autoflush=False,
                expire_on_commit=False,
            ) as snapshot:
                return list((await snapshot.scalars(query)).all())
        except STORE_ERRORS as e:
            raise translate_error(e, "query") from e

    async def scalar(self, query: Select[t.Any]) -> t.Any:
        try:
            return await self._session.scalar(query)
        except STORE_ERRORS as e:
            raise translate_error(e, "query") from e

    def mark_added(self, entity: t.Any) -> t.Any:
        self._session.add(entity)
        return entity

    async def mark_modified(self, entity: t.Any) -> t.Any:
        merged = await self._merge_existing(entity, "update")
        flag_all_modified(merged)
        return merged

    async def mark_removed(self, entity: t.Any) -> t.Any:
        merged = await self._merge_existing(entity, "delete")
        await self._session.delete(merged)
        return merged

    async def commit(self) -> int:
        affected = pending_changes(self._session)
        try:
            if self._deferred:
                await self._session.flush()
            else:
                await self._session.commit()
        except asyncio.CancelledError:
            await asyncio.shield(self._session.rollback())
            logger.warning("Commit cancelled and rolled back")
            raise
        except Exception as e:
            await self._session.rollback()
            if self._deferred and self._deferred_failure is None:
                self._deferred_failure = e
            logger.warning(f"Commit failed and was rolled back: {e}")
            raise translate_error(e, "commit") from e
        logger.debug(
            f"{'Flushed' if self._deferred else 'Committed'} {affected} change(s)"
        )
        if self._deferred and self._on_deferred_commit is not None:
            self._on_deferred_commit()
        return affected

    async def rollback(self) -> None:
        await self._session.rollback()

    async def close(self) -> None:
        await self.cleanup()

    async def _merge_existing(self, entity: t.Any, operation: str) -> t.Any:
        try:
            merged = await self._session.merge(entity)
        except STORE_ERRORS as e:
            raise translate_error(e, operation) from e
        if is_new(merged):
            self._session.expunge(merged)
            raise missing_row_error(type(entity).__name__, operation)
        return merged


def make_async_session_factory(
    engine: AsyncEngine,
    settings: StoreSettings | None = None,
) -> async_sessionmaker[AsyncSession]:
    settings = settings or StoreSettings()
    return async_sessionmaker(engine, expire_on_commit=settings.expire_on_commit)


@asynccontextmanager
async def async_session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncEntityStore]:
    async with AsyncEntityStore(factory()) as store:
        yield store
