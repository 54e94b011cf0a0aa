"""Filter criteria for specifications.

Criteria are the predicates a specification AND-combines:
- Field criteria comparing one mapped column against a value
- Logical composition with ``&``, ``|`` and ``~``
- Expression criteria wrapping a SQLAlchemy expression or a lambda

Each criterion renders itself as a SQLAlchemy boolean expression for a
mapped class and can also be checked against an in-memory instance.
"""

import re
from abc import ABC, abstractmethod
from enum import Enum

import typing as t
from datetime import date, datetime
from sqlalchemy import and_, inspect, not_, or_
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.sql.elements import ColumnElement
from typing import Any

from ._base import SpecificationError


class ComparisonOperator(Enum):
    """Comparison operators for field criteria."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    ILIKE = "ilike"  # Case-insensitive like
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"


_RANGE_OPERATORS = (ComparisonOperator.BETWEEN,)
_LIST_OPERATORS = (ComparisonOperator.IN, ComparisonOperator.NOT_IN)


def resolve_column(entity_type: type, name: str) -> Any:
    """Return the mapped column attribute ``name`` of ``entity_type``.

    Raises:
        SpecificationError: If the class is not mapped or has no such column
    """
    try:
        mapper = inspect(entity_type)
    except NoInspectionAvailable as e:
        msg = f"{getattr(entity_type, '__name__', entity_type)} is not a mapped class"
        raise SpecificationError(msg) from e
    if name not in mapper.column_attrs:
        msg = f"{mapper.class_.__name__} has no column attribute '{name}'"
        raise SpecificationError(msg, entity_type=mapper.class_.__name__)
    return getattr(entity_type, name)


def _like_to_regex(pattern: str) -> str:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


class Criterion(ABC):
    """Abstract base class for filter criteria."""

    @abstractmethod
    def to_expression(self, entity_type: type) -> ColumnElement[bool]:
        """Render the criterion for ``entity_type``.

        Args:
            entity_type: Mapped class the query selects from

        Returns:
            SQLAlchemy boolean expression
        """

    @abstractmethod
    def evaluate(self, candidate: Any) -> bool | None:
        """Three-valued check against an in-memory entity.

        Returns None when the outcome is unknown, as SQL does for
        comparisons involving NULL.
        """

    def is_satisfied_by(self, candidate: Any) -> bool:
        """Check the criterion against an in-memory entity."""
        return self.evaluate(candidate) is True

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert criterion to dictionary representation."""

    def __and__(self, other: "Criterion") -> "AndCriterion":
        """Combine criteria with AND operator."""
        return AndCriterion([self, other])

    def __or__(self, other: "Criterion") -> "OrCriterion":
        """Combine criteria with OR operator."""
        return OrCriterion([self, other])

    def __invert__(self) -> "NotCriterion":
        """Negate criterion with NOT operator."""
        return NotCriterion(self)


class FieldCriterion(Criterion):
    """Criterion comparing one column against a value."""

    def __init__(self, field: str, operator: ComparisonOperator, value: Any) -> None:
        self.field = field
        self.operator = operator
        self.value = value

    def check_value(self) -> None:
        """Reject values whose shape does not fit the operator."""
        if self.operator in _RANGE_OPERATORS and (
            not isinstance(self.value, list | tuple) or len(self.value) != 2
        ):
            msg = "BETWEEN operator requires a list/tuple of 2 values"
            raise SpecificationError(msg)
        if self.operator in _LIST_OPERATORS and not isinstance(
            self.value, list | tuple | set | frozenset
        ):
            msg = f"{self.operator.name} operator requires a collection of values"
            raise SpecificationError(msg)

    def __repr__(self) -> str:
        return f"FieldCriterion({self.field!r}, {self.operator.value}, {self.value!r})"

    def to_expression(self, entity_type: type) -> ColumnElement[bool]:  # noqa: C901
        self.check_value()
        column = resolve_column(entity_type, self.field)
        value = self.value

        match self.operator:
            case ComparisonOperator.EQUALS:
                return column == value
            case ComparisonOperator.NOT_EQUALS:
                return column != value
            case ComparisonOperator.GREATER_THAN:
                return column > value
            case ComparisonOperator.GREATER_THAN_OR_EQUAL:
                return column >= value
            case ComparisonOperator.LESS_THAN:
                return column < value
            case ComparisonOperator.LESS_THAN_OR_EQUAL:
                return column <= value
            case ComparisonOperator.IN:
                return column.in_(list(value))
            case ComparisonOperator.NOT_IN:
                return column.not_in(list(value))
            case ComparisonOperator.LIKE:
                return column.like(value)
            case ComparisonOperator.ILIKE:
                return column.ilike(value)
            case ComparisonOperator.CONTAINS:
                return column.contains(value, autoescape=True)
            case ComparisonOperator.STARTS_WITH:
                return column.startswith(value, autoescape=True)
            case ComparisonOperator.ENDS_WITH:
                return column.endswith(value, autoescape=True)
            case ComparisonOperator.IS_NULL:
                return column.is_(None)
            case ComparisonOperator.IS_NOT_NULL:
                return column.is_not(None)
            case ComparisonOperator.BETWEEN:
                return column.between(value[0], value[1])

        msg = f"Unsupported operator: {self.operator}"
        raise SpecificationError(msg)

    def evaluate(self, candidate: Any) -> bool | None:
        self.check_value()
        if not hasattr(candidate, self.field):
            return False
        return self._compare(getattr(candidate, self.field))

    def _compare(self, field_value: Any) -> bool | None:  # noqa: C901
        value = self.value

        match self.operator:
            case ComparisonOperator.IS_NULL:
                return field_value is None
            case ComparisonOperator.IS_NOT_NULL:
                return field_value is not None

        # comparisons against NULL are unknown
        if field_value is None:
            return None

        match self.operator:
            case ComparisonOperator.EQUALS:
                return field_value == value
            case ComparisonOperator.NOT_EQUALS:
                return field_value != value
            case ComparisonOperator.GREATER_THAN:
                return field_value > value
            case ComparisonOperator.GREATER_THAN_OR_EQUAL:
                return field_value >= value
            case ComparisonOperator.LESS_THAN:
                return field_value < value
            case ComparisonOperator.LESS_THAN_OR_EQUAL:
                return field_value <= value
            case ComparisonOperator.IN:
                return field_value in value
            case ComparisonOperator.NOT_IN:
                return field_value not in value
            case ComparisonOperator.LIKE:
                return re.fullmatch(_like_to_regex(value), str(field_value)) is not None
            case ComparisonOperator.ILIKE:
                return (
                    re.fullmatch(
                        _like_to_regex(value), str(field_value), flags=re.IGNORECASE
                    )
                    is not None
                )
            case ComparisonOperator.CONTAINS:
                return str(value) in str(field_value)
            case ComparisonOperator.STARTS_WITH:
                return str(field_value).startswith(str(value))
            case ComparisonOperator.ENDS_WITH:
                return str(field_value).endswith(str(value))
            case ComparisonOperator.BETWEEN:
                return value[0] <= field_value <= value[1]

        return False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": "field",
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
        }


class AndCriterion(Criterion):
    """Criterion for AND operations."""

    def __init__(self, criteria: list[Criterion]) -> None:
        self.criteria = criteria

    def to_expression(self, entity_type: type) -> ColumnElement[bool]:
        return and_(*(c.to_expression(entity_type) for c in self.criteria))

    def evaluate(self, candidate: Any) -> bool | None:
        results = [c.evaluate(candidate) for c in self.criteria]
        if False in results:
            return False
        return None if None in results else True

    def to_dict(self) -> dict[str, Any]:
        return {"type": "and", "criteria": [c.to_dict() for c in self.criteria]}


class OrCriterion(Criterion):
    """Criterion for OR operations."""

    def __init__(self, criteria: list[Criterion]) -> None:
        self.criteria = criteria

    def to_expression(self, entity_type: type) -> ColumnElement[bool]:
        return or_(*(c.to_expression(entity_type) for c in self.criteria))

    def evaluate(self, candidate: Any) -> bool | None:
        results = [c.evaluate(candidate) for c in self.criteria]
        if True in results:
            return True
        return None if None in results else False

    def to_dict(self) -> dict[str, Any]:
        return {"type": "or", "criteria": [c.to_dict() for c in self.criteria]}


class NotCriterion(Criterion):
    """Criterion for NOT operations."""

    def __init__(self, criterion: Criterion) -> None:
        self.criterion = criterion

    def to_expression(self, entity_type: type) -> ColumnElement[bool]:
        return not_(self.criterion.to_expression(entity_type))

    def evaluate(self, candidate: Any) -> bool | None:
        result = self.criterion.evaluate(candidate)
        return None if result is None else not result

    def to_dict(self) -> dict[str, Any]:
        return {"type": "not", "criterion": self.criterion.to_dict()}


class ExpressionCriterion(Criterion):
    """Criterion built from a SQLAlchemy expression or a callable.

    A callable receives the mapped class when rendering SQL and the entity
    itself when checked in memory, so ``lambda e: e.name != "b"`` works both
    ways. A bare SQLAlchemy expression can only be rendered. Anything else
    is rejected when the criterion is first used.
    """

    def __init__(
        self,
        expression: t.Callable[[Any], Any] | ColumnElement[bool],
        name: str | None = None,
    ) -> None:
        self.expression = expression
        self.name = name or getattr(expression, "__name__", "expression")

    def __repr__(self) -> str:
        return f"ExpressionCriterion({self.name})"

    def check_value(self) -> None:
        if not isinstance(self.expression, ColumnElement) and not callable(
            self.expression
        ):
            msg = f"Cannot use {type(self.expression).__name__} as a filter criterion"
            raise SpecificationError(msg)

    def to_expression(self, entity_type: type) -> ColumnElement[bool]:
        self.check_value()
        if isinstance(self.expression, ColumnElement):
            return self.expression
        return self.expression(entity_type)

    def evaluate(self, candidate: Any) -> bool | None:
        self.check_value()
        if isinstance(self.expression, ColumnElement):
            msg = f"Criterion '{self.name}' is SQL-only and cannot be checked in memory"
            raise SpecificationError(msg)
        result = self.expression(candidate)
        return None if result is None else bool(result)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "expression", "name": self.name}


def as_criterion(value: Any) -> Criterion:
    """Coerce what ``Specification.where`` accepts into a ``Criterion``.

    Never raises; unusable values fail when the criterion is rendered or
    checked.
    """
    if isinstance(value, Criterion):
        return value
    return ExpressionCriterion(value)


class FieldCriterionBuilder:
    """Fluent builder: ``field("name").not_equals("b")``."""

    def __init__(self, field: str) -> None:
        self.field = field

    def equals(self, value: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.EQUALS, value)

    def not_equals(self, value: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.NOT_EQUALS, value)

    def greater_than(self, value: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.GREATER_THAN, value)

    def greater_than_or_equal(self, value: Any) -> FieldCriterion:
        return FieldCriterion(
            self.field, ComparisonOperator.GREATER_THAN_OR_EQUAL, value
        )

    def less_than(self, value: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.LESS_THAN, value)

    def less_than_or_equal(self, value: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.LESS_THAN_OR_EQUAL, value)

    def in_list(self, values: list[Any]) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.IN, values)

    def not_in_list(self, values: list[Any]) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.NOT_IN, values)

    def like(self, pattern: str) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.LIKE, pattern)

    def ilike(self, pattern: str) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.ILIKE, pattern)

    def contains(self, value: str) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.CONTAINS, value)

    def starts_with(self, value: str) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.STARTS_WITH, value)

    def ends_with(self, value: str) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.ENDS_WITH, value)

    def is_null(self) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.IS_NULL, None)

    def is_not_null(self) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.IS_NOT_NULL, None)

    def between(self, start: Any, end: Any) -> FieldCriterion:
        return FieldCriterion(self.field, ComparisonOperator.BETWEEN, [start, end])


def field(field_name: str) -> FieldCriterionBuilder:
    return FieldCriterionBuilder(field_name)


# Convenience functions for creating criteria
def equals(field: str, value: Any) -> FieldCriterion:
    """Create equals criterion."""
    return FieldCriterion(field, ComparisonOperator.EQUALS, value)


def not_equals(field: str, value: Any) -> FieldCriterion:
    """Create not equals criterion."""
    return FieldCriterion(field, ComparisonOperator.NOT_EQUALS, value)


def greater_than(field: str, value: Any) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.GREATER_THAN, value)


def greater_than_or_equal(field: str, value: Any) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.GREATER_THAN_OR_EQUAL, value)


def less_than(field: str, value: Any) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.LESS_THAN, value)


def less_than_or_equal(field: str, value: Any) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.LESS_THAN_OR_EQUAL, value)


def in_values(field: str, values: list[Any]) -> FieldCriterion:
    """Create IN criterion."""
    return FieldCriterion(field, ComparisonOperator.IN, values)


def not_in_values(field: str, values: list[Any]) -> FieldCriterion:
    """Create NOT IN criterion."""
    return FieldCriterion(field, ComparisonOperator.NOT_IN, values)


def like(field: str, pattern: str) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.LIKE, pattern)


def ilike(field: str, pattern: str) -> FieldCriterion:
    """Create case-insensitive LIKE criterion."""
    return FieldCriterion(field, ComparisonOperator.ILIKE, pattern)


def contains(field: str, value: str) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.CONTAINS, value)


def starts_with(field: str, value: str) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.STARTS_WITH, value)


def ends_with(field: str, value: str) -> FieldCriterion:
    return FieldCriterion(field, ComparisonOperator.ENDS_WITH, value)


def is_null(field: str) -> FieldCriterion:
    """Create IS NULL criterion."""
    return FieldCriterion(field, ComparisonOperator.IS_NULL, None)


def is_not_null(field: str) -> FieldCriterion:
    """Create IS NOT NULL criterion."""
    return FieldCriterion(field, ComparisonOperator.IS_NOT_NULL, None)


def between(field: str, start: Any, end: Any) -> FieldCriterion:
    """Create BETWEEN criterion."""
    return FieldCriterion(field, ComparisonOperator.BETWEEN, [start, end])


def date_range(field: str, start_date: date, end_date: date) -> FieldCriterion:
    return between(field, start_date, end_date)


def datetime_range(
    field: str,
    start_datetime: datetime,
    end_datetime: datetime,
) -> FieldCriterion:
    return between(field, start_datetime, end_datetime)


def and_criteria(*criteria: Criterion) -> AndCriterion:
    return AndCriterion(list(criteria))


def or_criteria(*criteria: Criterion) -> OrCriterion:
    return OrCriterion(list(criteria))


def not_criterion(criterion: Criterion) -> NotCriterion:
    return NotCriterion(criterion)
