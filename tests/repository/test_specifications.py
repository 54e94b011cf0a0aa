"""Tests for the Specification builder."""

import pytest
from dataclasses import dataclass
from sqlalchemy import select

from blog_models import Author, Post
from repokit.repository._base import SortDirection, SpecificationError
from repokit.repository.criteria import AndCriterion, ExpressionCriterion, field
from repokit.repository.evaluator import evaluate
from repokit.repository.specifications import Specification


@dataclass
class SampleEntity:
    id: int
    name: str


class PublishedPosts(Specification[Post]):
    def __init__(self) -> None:
        super().__init__(Post)
        self.where(field("published").equals(True))
        self.order_by_descending("id")


class TestSpecificationBuilder:
    """Test builder methods."""

    def test_defaults(self):
        spec = Specification(Author)

        assert spec.entity_type is Author
        assert spec.criteria == []
        assert spec.includes == []
        assert spec.orderings == []
        assert spec.skip_count is None
        assert spec.take_count is None
        assert spec.no_tracking is True
        assert not spec.has_paging
        assert spec.criterion is None

    def test_builder_methods_chain(self):
        spec = Specification(Author)

        result = (
            spec.where(field("name").equals("a"))
            .include("posts")
            .order_by("name")
            .skip(5)
            .take(10)
            .as_tracking()
        )

        assert result is spec
        assert spec.skip_count == 5
        assert spec.take_count == 10
        assert spec.no_tracking is False

    def test_where_accumulates(self):
        spec = Specification(Author).where(field("id").greater_than(1))
        spec.where(field("name").not_equals("c"), lambda e: e.id < 10)

        assert len(spec.criteria) == 3
        assert isinstance(spec.criteria[2], ExpressionCriterion)
        assert isinstance(spec.criterion, AndCriterion)

    def test_single_criterion_is_not_wrapped(self):
        criterion = field("id").equals(1)
        spec = Specification(Author).where(criterion)

        assert spec.criterion is criterion

    def test_is_satisfied_by(self):
        spec = Specification(SampleEntity).where(
            field("id").greater_than(1), field("name").not_equals("c")
        )

        assert spec.is_satisfied_by(SampleEntity(2, "b"))
        assert not spec.is_satisfied_by(SampleEntity(3, "c"))
        assert not spec.is_satisfied_by(SampleEntity(1, "a"))

    def test_match_all_is_satisfied_by_anything(self):
        assert Specification(SampleEntity).is_satisfied_by(SampleEntity(1, "a"))

    def test_include_deduplicates(self):
        spec = Specification(Author).include("posts", Author.posts, "posts")

        assert spec.includes == ["posts"]

    def test_include_keeps_nested_paths(self):
        spec = Specification(Author).include("posts.tags", "posts")

        assert spec.includes == ["posts.tags", "posts"]

    def test_ordering_keeps_priority(self):
        spec = Specification(Author).order_by("name").order_by_descending("id")

        assert [o.field for o in spec.orderings] == ["name", "id"]
        assert spec.orderings[0].direction == SortDirection.ASC
        assert spec.orderings[1].descending

    def test_order_by_accepts_string_direction(self):
        spec = Specification(Author).order_by("name", "desc")

        assert spec.orderings[0].direction == SortDirection.DESC

    def test_order_by_rejects_unknown_direction(self):
        with pytest.raises(ValueError):
            Specification(Author).order_by("name", "sideways")

    def test_page(self):
        spec = Specification(Author).page(skip=20, take=10)

        assert spec.skip_count == 20
        assert spec.take_count == 10
        assert spec.has_paging

    def test_paginate(self):
        spec = Specification(Author).paginate(page=3, page_size=10)

        assert spec.skip_count == 20
        assert spec.take_count == 10

    def test_paginate_page_zero_is_rejected_at_evaluation(self):
        spec = Specification(Author).order_by("id").paginate(page=0, page_size=10)

        assert spec.skip_count == -10
        with pytest.raises(SpecificationError, match="skip must be >= 0"):
            evaluate(select(Author), spec)

    def test_where_accepts_anything_while_building(self):
        spec = Specification(Author).where(42)

        assert len(spec.criteria) == 1
        with pytest.raises(SpecificationError, match="filter criterion"):
            evaluate(select(Author), spec)

    def test_negative_paging_is_accepted_while_building(self):
        spec = Specification(Author).skip(-1).take(-5)

        assert spec.skip_count == -1
        assert spec.take_count == -5

    def test_tracking_toggles(self):
        spec = Specification(Author).as_tracking()
        assert spec.no_tracking is False

        spec.as_no_tracking()
        assert spec.no_tracking is True

    def test_ordered_by_key(self):
        spec = Specification.ordered_by_key(Author)

        assert len(spec.orderings) == 1
        assert spec.orderings[0].field.name == "id"
        assert not spec.orderings[0].descending


class TestSpecificationCopies:
    """Test copy helpers."""

    def test_copy_is_independent(self):
        spec = Specification(Author).where(field("id").equals(1)).include("posts")
        clone = spec.copy()

        clone.where(field("name").equals("a")).include("posts.tags").order_by("id")

        assert len(spec.criteria) == 1
        assert spec.includes == ["posts"]
        assert spec.orderings == []
        assert type(clone) is Specification

    def test_copy_keeps_subclass(self):
        clone = PublishedPosts().copy()

        assert isinstance(clone, PublishedPosts)
        assert len(clone.criteria) == 1

    def test_without_paging(self):
        spec = Specification(Author).order_by("id").page(skip=2, take=3)
        unpaged = spec.without_paging()

        assert not unpaged.has_paging
        assert spec.has_paging
        assert len(unpaged.orderings) == 1

    def test_to_dict(self):
        data = PublishedPosts().page(skip=0, take=5).to_dict()

        assert data["entity_type"] == "Post"
        assert data["criteria"][0]["field"] == "published"
        assert data["orderings"] == [{"field": "id", "direction": "desc"}]
        assert data["skip"] == 0
        assert data["take"] == 5
        assert data["no_tracking"] is True

    def test_repr(self):
        assert repr(Specification(Author)).startswith("Specification(Author,")
