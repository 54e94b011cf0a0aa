"""Unit of Work.

Groups several repository calls on one store scope into a single commit:
- Repository commits on the scope only flush while the unit is active
- One commit on clean exit, one rollback on failure
- State machine and metrics per transaction
"""

import uuid
from enum import Enum

import typing as t
from dataclasses import dataclass
from datetime import UTC, datetime

from repokit.logger import logger

from ._base import RepositoryError

if t.TYPE_CHECKING:
    from repokit.store import AsyncEntityStore, EntityStore


class UnitOfWorkState(Enum):
    """Unit of Work state enumeration."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class UnitOfWorkMetrics:
    """Metrics for Unit of Work operations."""

    transaction_id: str
    start_time: datetime
    end_time: datetime | None = None
    state: UnitOfWorkState = UnitOfWorkState.INACTIVE
    operations_count: int = 0
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        """Get transaction duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class UnitOfWorkError(RepositoryError):
    """Exception for Unit of Work operations."""

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        state: UnitOfWorkState | None = None,
    ) -> None:
        super().__init__(message, operation="unit_of_work")
        self.transaction_id = transaction_id
        self.state = state


class _UnitOfWorkBase:
    """State bookkeeping shared by the sync and async units of work."""

    def __init__(self, store: t.Any) -> None:
        self.store = store
        self._state = UnitOfWorkState.INACTIVE
        self._metrics = UnitOfWorkMetrics(
            transaction_id=str(uuid.uuid4()),
            start_time=datetime.now(UTC),
        )

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == UnitOfWorkState.ACTIVE

    @property
    def transaction_id(self) -> str:
        return self._metrics.transaction_id

    @property
    def metrics(self) -> UnitOfWorkMetrics:
        return self._metrics

    def add_operation(self, name: str = "operation") -> None:
        """Record an operation performed inside the unit of work."""
        self._require(UnitOfWorkState.ACTIVE, f"record {name}")
        self._metrics.operations_count += 1

    def _set_state(self, state: UnitOfWorkState) -> None:
        self._state = state
        self._metrics.state = state

    def _require(self, expected: UnitOfWorkState, action: str) -> None:
        if self._state != expected:
            msg = f"Cannot {action} in state {self._state.value}"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)

    def _begin(self) -> None:
        self._require(UnitOfWorkState.INACTIVE, "begin transaction")
        if self.store.deferring:
            msg = "Another unit of work is already active on this store"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)
        self.store.defer_commits(self.add_operation)
        self._metrics.start_time = datetime.now(UTC)
        self._set_state(UnitOfWorkState.ACTIVE)
        logger.debug(f"Unit of work {self.transaction_id} started")

    def _earlier_failure(self) -> UnitOfWorkError | None:
        failure = self.store.deferred_failure
        if failure is None:
            return None
        msg = (
            "Cannot commit: an operation failed earlier in this unit of work "
            f"and its changes were rolled back ({failure})"
        )
        return UnitOfWorkError(msg, self.transaction_id, UnitOfWorkState.FAILED)

    def _finish(self, state: UnitOfWorkState, error: Exception | None = None) -> None:
        self._set_state(state)
        self._metrics.end_time = datetime.now(UTC)
        if error is not None:
            self._metrics.error_message = str(error)
        logger.debug(
            f"Unit of work {self.transaction_id} {state.value} after "
            f"{self._metrics.operations_count} operation(s)"
        )


class UnitOfWork(_UnitOfWorkBase):
    """Commit several repository calls on one ``EntityStore`` together.

    ::

        with UnitOfWork(store):
            authors.add(author)
            posts.add(post)
    """

    def __init__(self, store: "EntityStore") -> None:
        super().__init__(store)

    def begin(self) -> None:
        self._begin()

    def commit(self) -> int:
        """Commit everything flushed since ``begin``.

        Raises:
            UnitOfWorkError: If an operation failed earlier in the unit of work
        """
        self._require(UnitOfWorkState.ACTIVE, "commit transaction")
        if error := self._earlier_failure():
            self.store.resume_commits()
            self.store.rollback()
            self._finish(UnitOfWorkState.FAILED, error)
            raise error from self.store.deferred_failure
        self._set_state(UnitOfWorkState.COMMITTING)
        self.store.resume_commits()
        try:
            affected = self.store.commit()
        except Exception as e:
            self._finish(UnitOfWorkState.FAILED, e)
            raise
        self._finish(UnitOfWorkState.COMMITTED)
        return affected

    def rollback(self) -> None:
        if self._state not in (UnitOfWorkState.ACTIVE, UnitOfWorkState.COMMITTING):
            msg = f"Cannot roll back transaction in state {self._state.value}"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)
        self._set_state(UnitOfWorkState.ROLLING_BACK)
        self.store.resume_commits()
        try:
            self.store.rollback()
        except Exception as e:
            self._finish(UnitOfWorkState.FAILED, e)
            raise
        self._finish(UnitOfWorkState.ROLLED_BACK)

    def __enter__(self) -> t.Self:
        self.begin()
        return self

    def __exit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            self.commit()
        else:
            self._metrics.error_message = str(exc_val)
            self.rollback()


class AsyncUnitOfWork(_UnitOfWorkBase):
    """Async counterpart of ``UnitOfWork`` over an ``AsyncEntityStore``."""

    def __init__(self, store: "AsyncEntityStore") -> None:
        super().__init__(store)

    async def begin(self) -> None:
        self._begin()

    async def commit(self) -> int:
        self._require(UnitOfWorkState.ACTIVE, "commit transaction")
        if error := self._earlier_failure():
            self.store.resume_commits()
            await self.store.rollback()
            self._finish(UnitOfWorkState.FAILED, error)
            raise error from self.store.deferred_failure
        self._set_state(UnitOfWorkState.COMMITTING)
        self.store.resume_commits()
        try:
            affected = await self.store.commit()
        except Exception as e:
            self._finish(UnitOfWorkState.FAILED, e)
            raise
        self._finish(UnitOfWorkState.COMMITTED)
        return affected

    async def rollback(self) -> None:
        if self._state not in (UnitOfWorkState.ACTIVE, UnitOfWorkState.COMMITTING):
            msg = f"Cannot roll back transaction in state {self._state.value}"
            raise UnitOfWorkError(msg, self.transaction_id, self._state)
        self._set_state(UnitOfWorkState.ROLLING_BACK)
        self.store.resume_commits()
        try:
            await self.store.rollback()
        except Exception as e:
            self._finish(UnitOfWorkState.FAILED, e)
            raise
        self._finish(UnitOfWorkState.ROLLED_BACK)

    async def __aenter__(self) -> t.Self:
        await self.begin()
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            await self.commit()
        else:
            self._metrics.error_message = str(exc_val)
            await self.rollback()
