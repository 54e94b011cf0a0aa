"""Specification evaluation.

Turns a base ``Select`` plus a ``Specification`` into a refined ``Select``.
Criteria are applied in a fixed order so that results are reproducible:

1. filter criteria (AND-combined)
2. eager-load paths
3. ordering keys, in priority order
4. paging (offset, then limit)

Nothing is executed here; the returned statement stays lazy so callers can
materialize it, count it, or refine it further.
"""

import typing as t
from sqlalchemy import Select, func, inspect, select
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper, selectinload
from sqlalchemy.sql.elements import ColumnElement
from typing import Any

from repokit.logger import logger

from ._base import SortCriteria, SpecificationError
from .criteria import resolve_column
from .specifications import Specification


def _mapper_for(entity_type: type) -> Mapper[Any]:
    try:
        return inspect(entity_type)
    except NoInspectionAvailable as e:
        msg = f"{getattr(entity_type, '__name__', entity_type)} is not a mapped class"
        raise SpecificationError(msg) from e


class SpecificationEvaluator:
    """Applies specifications to SQLAlchemy ``Select`` statements.

    Args:
        require_ordering_for_paging: When True, a paged specification with
            no ordering key is rejected. When False the primary key columns
            are used as ordering so page boundaries stay deterministic.
    """

    def __init__(self, require_ordering_for_paging: bool = True) -> None:
        self.require_ordering_for_paging = require_ordering_for_paging

    def evaluate(
        self,
        query: Select[t.Any],
        spec: Specification[t.Any],
    ) -> Select[t.Any]:
        """Return ``query`` refined by every part of ``spec``.

        Raises:
            SpecificationError: For unknown fields or paths, negative paging
                values, or paging without ordering when that is required
        """
        entity_type = spec.entity_type
        mapper = _mapper_for(entity_type)
        self._validate_paging(spec)

        query = self.apply_criteria(query, spec)
        query = self.apply_includes(query, spec)
        query = self.apply_ordering(query, spec, mapper)
        if spec.skip_count:
            query = query.offset(spec.skip_count)
        if spec.take_count is not None:
            query = query.limit(spec.take_count)

        logger.debug(f"Evaluated {spec!r}")
        return query

    def count_query(
        self,
        query: Select[t.Any],
        spec: Specification[t.Any] | None,
    ) -> Select[t.Any]:
        """Return a ``SELECT count(*)`` over ``query`` refined by ``spec``.

        Eager loads never change the row count, so they are left out; so is
        ordering unless a paging window depends on it.
        """
        if spec is not None:
            refined = spec.copy()
            refined.includes = []
            if not refined.has_paging:
                refined.orderings = []
            query = self.evaluate(query, refined)
        return select(func.count()).select_from(query.subquery())

    def apply_criteria(
        self,
        query: Select[t.Any],
        spec: Specification[t.Any],
    ) -> Select[t.Any]:
        for criterion in spec.criteria:
            query = query.where(criterion.to_expression(spec.entity_type))
        return query

    def apply_includes(
        self,
        query: Select[t.Any],
        spec: Specification[t.Any],
    ) -> Select[t.Any]:
        options = [self._loader_for(spec.entity_type, path) for path in spec.includes]
        return query.options(*options) if options else query

    def apply_ordering(
        self,
        query: Select[t.Any],
        spec: Specification[t.Any],
        mapper: Mapper[Any] | None = None,
    ) -> Select[t.Any]:
        clauses = [self._order_clause(spec.entity_type, o) for o in spec.orderings]
        if not clauses and spec.has_paging:
            # only reachable when ordering is not required
            mapper = mapper or _mapper_for(spec.entity_type)
            clauses = list(mapper.primary_key)
        return query.order_by(*clauses) if clauses else query

    def _validate_paging(self, spec: Specification[t.Any]) -> None:
        name = spec.entity_type.__name__
        if spec.skip_count is not None and spec.skip_count < 0:
            msg = f"skip must be >= 0, got {spec.skip_count}"
            raise SpecificationError(msg, entity_type=name)
        if spec.take_count is not None and spec.take_count < 0:
            msg = f"take must be >= 0, got {spec.take_count}"
            raise SpecificationError(msg, entity_type=name)
        if (
            spec.has_paging
            and not spec.orderings
            and self.require_ordering_for_paging
        ):
            msg = (
                "Paging requires at least one ordering key; add order_by() "
                "or disable require_ordering_for_paging"
            )
            raise SpecificationError(msg, entity_type=name)

    def _order_clause(self, entity_type: type, ordering: SortCriteria) -> Any:
        column = (
            resolve_column(entity_type, ordering.field)
            if isinstance(ordering.field, str)
            else ordering.field
        )
        if not isinstance(column, ColumnElement) and not hasattr(column, "desc"):
            msg = f"Cannot order by {ordering.field!r}"
            raise SpecificationError(msg, entity_type=entity_type.__name__)
        return column.desc() if ordering.descending else column.asc()

    def _loader_for(self, entity_type: type, path: str) -> Any:
        loader = None
        current = entity_type
        for name in path.split("."):
            relationship = _mapper_for(current).relationships.get(name)
            if relationship is None:
                msg = f"{current.__name__} has no relationship '{name}' (in '{path}')"
                raise SpecificationError(msg, entity_type=entity_type.__name__)
            attribute = getattr(current, name)
            loader = (
                selectinload(attribute)
                if loader is None
                else loader.selectinload(attribute)
            )
            current = relationship.mapper.class_
        return loader


_default_evaluator = SpecificationEvaluator()


def evaluate(query: Select[t.Any], spec: Specification[t.Any]) -> Select[t.Any]:
    """Apply ``spec`` to ``query`` with the default evaluator."""
    return _default_evaluator.evaluate(query, spec)
