"""Entity store over a synchronous SQLAlchemy ``Session``."""

import typing as t
from collections.abc import Iterator
from contextlib import contextmanager
from sqlalchemy import Select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

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


class EntityStore:
    """One unit-of-work scope: a session plus the operations repositories use.

    Not safe for concurrent use. Create one store per request or job and
    share it only between repositories working on that request.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._deferred = False
        self._on_deferred_commit: t.Callable[[], None] | None = None
        self._deferred_failure: Exception | None = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def deferring(self) -> bool:
        """True while a unit of work holds commits back."""
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

    def find[EntityType](
        self, entity_type: type[EntityType], key: t.Any
    ) -> EntityType | None:
        try:
            return self._session.get(entity_type, key)
        except STORE_ERRORS as e:
            raise translate_error(e, "find") from e

    def fetch(self, query: Select[t.Any], tracked: bool = True) -> list[t.Any]:
        """Materialize ``query``.

        Untracked results are loaded by a sibling session on the same
        connection and come back detached, so the scope's identity map never
        sees them.
        """
        try:
            if tracked:
                return list(self._session.scalars(query).all())
            with Session(
                bind=self._session.connection(),
                autoflush=False,
                expire_on_commit=False,
            ) as snapshot:
                return list(snapshot.scalars(query).all())
        except STORE_ERRORS as e:
            raise translate_error(e, "query") from e

    def scalar(self, query: Select[t.Any]) -> t.Any:
        try:
            return self._session.scalar(query)
        except STORE_ERRORS as e:
            raise translate_error(e, "query") from e

    def mark_added(self, entity: t.Any) -> t.Any:
        self._session.add(entity)
        return entity

    def mark_modified(self, entity: t.Any) -> t.Any:
        """Attach ``entity`` (tracked or not) and flag all its columns changed."""
        merged = self._merge_existing(entity, "update")
        flag_all_modified(merged)
        return merged

    def mark_removed(self, entity: t.Any) -> t.Any:
        merged = self._merge_existing(entity, "delete")
        self._session.delete(merged)
        return merged

    def commit(self) -> int:
        """Persist pending changes and return how many rows they touched.

        While a unit of work defers commits this only flushes, so generated
        keys are populated but nothing is final until the unit of work
        commits.
        """
        affected = pending_changes(self._session)
        try:
            if self._deferred:
                self._session.flush()
            else:
                self._session.commit()
        except Exception as e:
            self._session.rollback()
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

    def rollback(self) -> None:
        self._session.rollback()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> t.Self:
        return self

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        self.close()

    def _merge_existing(self, entity: t.Any, operation: str) -> t.Any:
        try:
            merged = self._session.merge(entity)
        except STORE_ERRORS as e:
            raise translate_error(e, operation) from e
        if is_new(merged):
            self._session.expunge(merged)
            raise missing_row_error(type(entity).__name__, operation)
        return merged


def make_session_factory(
    engine: Engine,
    settings: StoreSettings | None = None,
) -> sessionmaker[Session]:
    settings = settings or StoreSettings()
    return sessionmaker(engine, expire_on_commit=settings.expire_on_commit)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[EntityStore]:
    """Open a store for one unit of work and close it afterwards."""
    with EntityStore(factory()) as store:
        yield store
