"""repokit: generic repositories and query specifications for SQLAlchemy."""

from .logger import LIBRARY_NAME, LoggerSettings, configure_logger, logger
from .repository import (
    AsyncRepository,
    AsyncUnitOfWork,
    ConcurrencyConflictError,
    EntityNotFoundError,
    PersistenceConflictError,
    Repository,
    RepositoryError,
    RepositoryRegistry,
    RepositorySettings,
    SortDirection,
    Specification,
    SpecificationError,
    TransientConnectivityError,
    UnitOfWork,
    field,
)
from .store import (
    AsyncEntityStore,
    EntityStore,
    StoreSettings,
    async_session_scope,
    session_scope,
)

logger.disable(LIBRARY_NAME)

__version__ = "0.1.0"

__all__ = [
    "AsyncEntityStore",
    "AsyncRepository",
    "AsyncUnitOfWork",
    "ConcurrencyConflictError",
    "EntityNotFoundError",
    "EntityStore",
    "LoggerSettings",
    "PersistenceConflictError",
    "Repository",
    "RepositoryError",
    "RepositoryRegistry",
    "RepositorySettings",
    "SortDirection",
    "Specification",
    "SpecificationError",
    "StoreSettings",
    "TransientConnectivityError",
    "UnitOfWork",
    "async_session_scope",
    "configure_logger",
    "session_scope",
]
