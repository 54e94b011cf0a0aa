"""Repository layer for repokit.

This module provides a generic repository implementation with:
- Specification builder and evaluator for declarative queries
- Synchronous and asynchronous repositories over a store scope
- Unit of Work wrapper for multi-operation transactions
- Explicit repository registry
"""

from ._base import (
    AsyncRepositoryProtocol,
    ConcurrencyConflictError,
    EntityNotFoundError,
    PaginationInfo,
    PersistenceConflictError,
    RepositoryBase,
    RepositoryError,
    RepositoryProtocol,
    RepositorySettings,
    SortCriteria,
    SortDirection,
    SpecificationError,
    TransientConnectivityError,
)
from .async_repository import AsyncRepository
from .criteria import (
    AndCriterion,
    ComparisonOperator,
    Criterion,
    ExpressionCriterion,
    FieldCriterion,
    NotCriterion,
    OrCriterion,
    field,
)
from .evaluator import SpecificationEvaluator, evaluate
from .registry import (
    RepositoryRegistration,
    RepositoryRegistry,
    RepositoryRegistryError,
    RepositoryScope,
    build_registry,
    get_registry,
    set_registry,
)
from .repository import Repository
from .specifications import Specification
from .unit_of_work import (
    AsyncUnitOfWork,
    UnitOfWork,
    UnitOfWorkError,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)

__all__ = [
    "AndCriterion",
    "AsyncRepository",
    "AsyncRepositoryProtocol",
    "AsyncUnitOfWork",
    "ComparisonOperator",
    "ConcurrencyConflictError",
    "Criterion",
    "EntityNotFoundError",
    "ExpressionCriterion",
    "FieldCriterion",
    "NotCriterion",
    "OrCriterion",
    "PaginationInfo",
    "PersistenceConflictError",
    "Repository",
    "RepositoryBase",
    "RepositoryError",
    "RepositoryProtocol",
    "RepositoryRegistration",
    "RepositoryRegistry",
    "RepositoryRegistryError",
    "RepositoryScope",
    "RepositorySettings",
    "SortCriteria",
    "SortDirection",
    "Specification",
    "SpecificationError",
    "SpecificationEvaluator",
    "TransientConnectivityError",
    "UnitOfWork",
    "UnitOfWorkError",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
    "build_registry",
    "evaluate",
    "field",
    "get_registry",
    "set_registry",
]
