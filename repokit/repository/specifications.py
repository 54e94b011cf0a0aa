"""Query specifications.

A ``Specification`` describes which rows of one entity type a caller wants
and in what shape: filter criteria, related data to load eagerly, ordering,
a paging window and whether results stay attached to the store scope.

Builder methods accumulate into the specification and return it, so
specifications read as one chained expression::

    spec = (
        Specification(Post)
        .where(field("published").equals(True))
        .include("author", "tags")
        .order_by_descending("created_at")
        .page(skip=0, take=10)
    )

Building never fails and never touches the store. Invalid paging is
reported by the evaluator, before any query runs.
"""

import copy

import typing as t
from sqlalchemy import inspect
from typing import Any

from ._base import SortCriteria, SortDirection
from .criteria import AndCriterion, Criterion, as_criterion


class Specification[EntityType]:
    """Declarative, reusable description of a query over ``entity_type``.

    Subclass it to give a specification a name::

        class PublishedPosts(Specification[Post]):
            def __init__(self) -> None:
                super().__init__(Post)
                self.where(field("published").equals(True))
    """

    def __init__(self, entity_type: type[EntityType]) -> None:
        self.entity_type = entity_type
        self.criteria: list[Criterion] = []
        self.includes: list[str] = []
        self.orderings: list[SortCriteria] = []
        self.skip_count: int | None = None
        self.take_count: int | None = None
        self.no_tracking = True

    @classmethod
    def ordered_by_key(cls, entity_type: type[EntityType]) -> t.Self:
        """A match-all specification ordered by the primary key columns."""
        spec = cls(entity_type)
        for column in inspect(entity_type).primary_key:
            spec.order_by(column)
        return spec

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.entity_type.__name__}, "
            f"criteria={len(self.criteria)}, includes={self.includes}, "
            f"orderings={len(self.orderings)}, skip={self.skip_count}, "
            f"take={self.take_count}, no_tracking={self.no_tracking})"
        )

    # Filters
    def where(self, *criteria: Any) -> t.Self:
        """Add filter criteria; all criteria of a specification must hold."""
        self.criteria.extend(as_criterion(c) for c in criteria)
        return self

    @property
    def criterion(self) -> Criterion | None:
        """The AND of every criterion, or None when the filter matches all."""
        if not self.criteria:
            return None
        if len(self.criteria) == 1:
            return self.criteria[0]
        return AndCriterion(list(self.criteria))

    def is_satisfied_by(self, candidate: Any) -> bool:
        """Check the filter part of the specification against one entity."""
        return all(c.is_satisfied_by(candidate) for c in self.criteria)

    # Includes
    def include(self, *paths: Any) -> t.Self:
        """Eagerly load related entities.

        Paths are relationship names, dotted for nested relationships
        (``"posts.tags"``), or relationship attributes (``Author.posts``).
        Adding a path twice has no effect.
        """
        for path in paths:
            normalized = path if isinstance(path, str) else path.key
            if normalized not in self.includes:
                self.includes.append(normalized)
        return self

    # Ordering
    def order_by(
        self,
        field: Any,
        direction: SortDirection | str = SortDirection.ASC,
    ) -> t.Self:
        """Append an ordering key; earlier keys take priority."""
        self.orderings.append(SortCriteria(field, SortDirection(direction)))
        return self

    def order_by_descending(self, field: Any) -> t.Self:
        return self.order_by(field, SortDirection.DESC)

    # Paging
    def skip(self, count: int) -> t.Self:
        self.skip_count = count
        return self

    def take(self, count: int) -> t.Self:
        self.take_count = count
        return self

    def page(self, skip: int = 0, take: int | None = None) -> t.Self:
        """Set the paging window: skip ``skip`` rows, then return ``take``."""
        self.skip_count = skip
        self.take_count = take
        return self

    def paginate(self, page: int, page_size: int) -> t.Self:
        """Set the paging window from a 1-based page number.

        A page below 1 yields a negative skip, which evaluation rejects.
        """
        return self.page(skip=(page - 1) * page_size, take=page_size)

    @property
    def has_paging(self) -> bool:
        return self.skip_count is not None or self.take_count is not None

    # Tracking
    def as_tracking(self) -> t.Self:
        """Return results attached to the store scope for later updates."""
        self.no_tracking = False
        return self

    def as_no_tracking(self) -> t.Self:
        """Return results as detached snapshots (the default)."""
        self.no_tracking = True
        return self

    # Copies
    def copy(self) -> t.Self:
        """Return an independent copy that can be refined separately."""
        clone = copy.copy(self)
        clone.criteria = list(self.criteria)
        clone.includes = list(self.includes)
        clone.orderings = list(self.orderings)
        return clone

    def without_paging(self) -> t.Self:
        clone = self.copy()
        clone.skip_count = None
        clone.take_count = None
        return clone

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "entity_type": self.entity_type.__name__,
            "criteria": [c.to_dict() for c in self.criteria],
            "includes": list(self.includes),
            "orderings": [
                {
                    "field": o.field if isinstance(o.field, str) else str(o.field),
                    "direction": o.direction.value,
                }
                for o in self.orderings
            ],
            "skip": self.skip_count,
            "take": self.take_count,
            "no_tracking": self.no_tracking,
        }
