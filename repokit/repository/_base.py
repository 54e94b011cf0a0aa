"""Repository base classes and contracts.

Provides the foundations shared by the synchronous and asynchronous
repositories:
- Error taxonomy for repository operations
- Sort and pagination value objects
- Repository settings
- Protocols describing both repository contracts
- ``RepositoryBase`` with the bookkeeping both implementations share
"""

from enum import Enum

import typing as t
from contextlib import suppress
from dataclasses import dataclass
from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict
from typing import Any, TypeVar

from repokit.config import Settings
from repokit.depends import depends
from repokit.logger import logger

EntityType = TypeVar("EntityType")


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class EntityNotFoundError(RepositoryError):
    """Raised by ``get_or_raise`` when no row matches the key."""

    def __init__(self, entity_type: str, key: Any) -> None:
        super().__init__(
            f"{entity_type} with key {key!r} not found",
            entity_type=entity_type,
            operation="get",
        )
        self.key = key


class SpecificationError(RepositoryError, ValueError):
    """Raised when a specification cannot be applied to a query."""

    def __init__(self, message: str, entity_type: str | None = None) -> None:
        super().__init__(message, entity_type=entity_type, operation="evaluate")


class PersistenceConflictError(RepositoryError):
    """Raised when the store rejects a commit (constraints, duplicate keys)."""


class ConcurrencyConflictError(PersistenceConflictError):
    """Raised when the row a commit expected to touch is gone or changed."""


class TransientConnectivityError(RepositoryError):
    """Raised when the store cannot be reached; safe for callers to retry."""


class SortDirection(Enum):
    """Sort direction enumeration."""

    ASC = "asc"
    DESC = "desc"


@dataclass
class SortCriteria:
    """One ordering key. ``field`` is a column name or a column expression."""

    field: Any
    direction: SortDirection = SortDirection.ASC

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC


@dataclass
class PaginationInfo:
    """Pagination information."""

    page: int = 1
    page_size: int = 50
    total_items: int | None = None
    total_pages: int | None = None

    def __post_init__(self) -> None:
        if self.page < 1:
            msg = f"page must be >= 1, got {self.page}"
            raise SpecificationError(msg)
        if self.page_size < 0:
            msg = f"page_size must be >= 0, got {self.page_size}"
            raise SpecificationError(msg)
        if self.total_items is not None and self.total_pages is None:
            self.total_pages = (
                (self.total_items + self.page_size - 1) // self.page_size
                if self.page_size
                else 0
            )

    @property
    def offset(self) -> int:
        """Calculate offset for database queries."""
        return (self.page - 1) * self.page_size

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        return self.total_pages is not None and self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        """Check if there's a previous page."""
        return self.page > 1


class RepositorySettings(Settings):
    """Repository configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPOKIT_REPOSITORY_",
        extra="ignore",
        validate_default=True,
    )

    default_page_size: int = Field(default=50, ge=1, le=1000)
    max_page_size: int = Field(default=1000, ge=1)
    require_ordering_for_paging: bool = Field(
        default=True,
        description="Reject paged specifications that have no ordering key",
    )

    @field_validator("max_page_size")
    @classmethod
    def validate_page_size(cls, v: int, info: t.Any) -> int:
        values: Any = info.data if hasattr(info, "data") else {}
        if "default_page_size" in values and values["default_page_size"] > v:
            msg = "default_page_size cannot exceed max_page_size"
            raise ValueError(msg)
        return v


def get_repository_settings() -> RepositorySettings:
    """Return the container's ``RepositorySettings``, registering defaults."""
    with suppress(Exception):
        settings = depends.get_sync(RepositorySettings)
        if isinstance(settings, RepositorySettings):
            return settings
    return depends.set(RepositorySettings, RepositorySettings())


@t.runtime_checkable
class RepositoryProtocol(t.Protocol[EntityType]):
    """Synchronous repository contract."""

    def get(self, key: Any) -> EntityType | None: ...

    def get_all(self, as_no_tracking: bool = True) -> list[EntityType]: ...

    def get_by_spec(
        self,
        spec: Any,
        as_no_tracking: bool | None = None,
    ) -> list[EntityType]: ...

    def count(self, spec: Any = None) -> int: ...

    def add(self, entity: EntityType) -> EntityType: ...

    def update(self, entity: EntityType) -> int: ...

    def delete(self, entity: EntityType) -> int: ...


@t.runtime_checkable
class AsyncRepositoryProtocol(t.Protocol[EntityType]):
    """Asynchronous repository contract."""

    async def get(self, key: Any) -> EntityType | None: ...

    async def get_all(self, as_no_tracking: bool = True) -> list[EntityType]: ...

    async def get_by_spec(
        self,
        spec: Any,
        as_no_tracking: bool | None = None,
    ) -> list[EntityType]: ...

    async def count(self, spec: Any = None) -> int: ...

    async def add(self, entity: EntityType) -> EntityType: ...

    async def update(self, entity: EntityType) -> int: ...

    async def delete(self, entity: EntityType) -> int: ...


class RepositoryBase[EntityType]:
    """State and helpers shared by ``Repository`` and ``AsyncRepository``.

    Holds the entity type, settings, evaluator and per-operation counters.
    It never holds entities: those belong to the store scope.
    """

    def __init__(
        self,
        entity_type: type[EntityType],
        settings: RepositorySettings | None = None,
    ) -> None:
        from .evaluator import SpecificationEvaluator

        self.entity_type = entity_type
        self.entity_name = getattr(entity_type, "__name__", str(entity_type))
        self.settings = settings or get_repository_settings()
        self.evaluator = SpecificationEvaluator(
            require_ordering_for_paging=self.settings.require_ordering_for_paging,
        )
        self._metrics: dict[str, int] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.entity_name})"

    def _increment_metric(self, operation: str, success: bool = True) -> None:
        metric_key = f"{operation}_{'success' if success else 'error'}"
        self._metrics[metric_key] = self._metrics.get(metric_key, 0) + 1

    def _handle_error(self, error: Exception, operation: str) -> t.NoReturn:
        """Count the failure and re-raise it as a ``RepositoryError``."""
        self._increment_metric(operation, success=False)
        logger.debug(f"{self.entity_name}.{operation} failed: {error}")
        if isinstance(error, RepositoryError):
            if error.entity_type is None:
                error.entity_type = self.entity_name
            raise error
        msg = f"Repository operation failed: {error}"
        raise RepositoryError(
            msg,
            entity_type=self.entity_name,
            operation=operation,
        ) from error

    def _check_spec(self, spec: Any) -> None:
        spec_type = getattr(spec, "entity_type", None)
        if spec_type is None:
            msg = f"Expected a Specification, got {type(spec).__name__}"
            raise SpecificationError(msg, entity_type=self.entity_name)
        if not issubclass(spec_type, self.entity_type):
            msg = (
                f"Specification for {spec_type.__name__} cannot be evaluated by "
                f"a {self.entity_name} repository"
            )
            raise SpecificationError(msg, entity_type=self.entity_name)

    def _resolve_tracking(self, spec: Any, as_no_tracking: bool | None) -> bool:
        if as_no_tracking is not None:
            return as_no_tracking
        return spec.no_tracking

    def _page_window(
        self,
        page: int,
        page_size: int | None,
    ) -> tuple[int, int]:
        if page_size is None:
            page_size = self.settings.default_page_size
        return page, min(page_size, self.settings.max_page_size)

    def get_metrics(self) -> dict[str, Any]:
        """Get repository operation counters.

        Returns:
            Dictionary of metrics
        """
        return {
            "entity_type": self.entity_name,
            "operations": self._metrics.copy(),
            "settings": {
                "default_page_size": self.settings.default_page_size,
                "max_page_size": self.settings.max_page_size,
                "require_ordering_for_paging": (
                    self.settings.require_ordering_for_paging
                ),
            },
        }
