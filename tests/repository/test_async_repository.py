"""Tests for AsyncRepository against aiosqlite."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import StatementError

from blog_models import Author, Post
from repokit.repository import (
    AsyncRepository,
    AsyncRepositoryProtocol,
    ConcurrencyConflictError,
    EntityNotFoundError,
    PersistenceConflictError,
    RepositoryError,
    Specification,
    SpecificationError,
    field,
)
from repokit.store import async_session_scope


async def seed(repository: AsyncRepository[Author], *names: str) -> None:
    for i, name in enumerate(names, start=1):
        await repository.add(Author(id=i, name=name, email=f"{name}@example.com"))


class TestAsyncRepository:
    """Async counterparts of the repository contract."""

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, async_author_repository):
        assert isinstance(async_author_repository, AsyncRepositoryProtocol)

    @pytest.mark.asyncio
    async def test_add_round_trip(
        self, async_author_repository, async_session_factory, repository_settings
    ):
        author = await async_author_repository.add(
            Author(name="alice", email="alice@example.com")
        )

        assert author.id is not None
        async with async_session_scope(async_session_factory) as other_store:
            other = AsyncRepository(Author, other_store, settings=repository_settings)
            fetched = await other.get(author.id)
        assert (fetched.name, fetched.email) == ("alice", "alice@example.com")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, async_author_repository):
        assert await async_author_repository.get(404) is None
        assert not await async_author_repository.exists(404)
        with pytest.raises(EntityNotFoundError):
            await async_author_repository.get_or_raise(404)

    @pytest.mark.asyncio
    async def test_add_is_visible_to_get_all(self, async_author_repository):
        await seed(async_author_repository, "a", "b")

        authors = await async_author_repository.get_all()

        assert sorted(a.name for a in authors) == ["a", "b"]
        assert all(inspect(a).detached for a in authors)

    @pytest.mark.asyncio
    async def test_get_all_tracked(self, async_author_repository, async_store):
        await seed(async_author_repository, "a")

        authors = await async_author_repository.get_all(as_no_tracking=False)

        assert all(a in async_store.session for a in authors)

    @pytest.mark.asyncio
    async def test_concrete_scenario(self, async_author_repository):
        await seed(async_author_repository, "a", "b", "c")
        spec = (
            Specification(Author)
            .where(field("name").not_equals("b"))
            .order_by_descending("id")
            .page(skip=0, take=1)
        )

        result = await async_author_repository.get_by_spec(spec)

        assert [(a.id, a.name) for a in result] == [(3, "c")]
        assert await async_author_repository.count(spec.without_paging()) == 2
        assert await async_author_repository.count(spec) == 1

    @pytest.mark.asyncio
    async def test_paging_matches_sorted_slices(self, async_author_repository):
        await seed(async_author_repository, "eve", "ann", "dan", "bob", "cal")
        everyone = await async_author_repository.get_all()
        ordered = [a.id for a in sorted(everyone, key=lambda a: a.name)]

        for skip, take in [(0, 2), (3, 2), (0, 0), (6, 1)]:
            spec = Specification(Author).order_by("name").page(skip=skip, take=take)
            result = await async_author_repository.get_by_spec(spec)
            assert [a.id for a in result] == ordered[skip : skip + take]

    @pytest.mark.asyncio
    async def test_invalid_specification_is_rejected(self, async_author_repository):
        with pytest.raises(SpecificationError):
            await async_author_repository.get_by_spec(Specification(Author).take(3))
        with pytest.raises(SpecificationError):
            await async_author_repository.get_by_spec(Specification(Post))

    @pytest.mark.asyncio
    async def test_include(self, async_author_repository, async_store):
        await seed(async_author_repository, "a")
        async_store.mark_added(Post(title="hello", author_id=1))
        await async_store.commit()

        (author,) = await async_author_repository.get_by_spec(
            Specification(Author).include("posts")
        )

        assert [p.title for p in author.posts] == ["hello"]

    @pytest.mark.asyncio
    async def test_no_tracking_isolation(self, async_author_repository, async_store):
        await seed(async_author_repository, "a")
        async_store.session.expunge_all()
        (snapshot,) = await async_author_repository.get_all()

        snapshot.name = "mutated"

        assert not async_store.session.dirty
        tracked = await async_author_repository.get(1)
        assert tracked is not snapshot
        assert tracked.name == "a"

    @pytest.mark.asyncio
    async def test_update_from_detached(
        self, async_author_repository, async_session_factory, repository_settings
    ):
        await seed(async_author_repository, "a", "b")

        affected = await async_author_repository.update(
            Author(id=1, name="renamed", email="a@example.com")
        )

        assert affected == 1
        async with async_session_scope(async_session_factory) as other_store:
            other = AsyncRepository(Author, other_store, settings=repository_settings)
            assert (await other.get(1)).name == "renamed"

    @pytest.mark.asyncio
    async def test_update_missing_row(self, async_author_repository):
        with pytest.raises(ConcurrencyConflictError):
            await async_author_repository.update(Author(id=7, name="ghost"))

    @pytest.mark.asyncio
    async def test_add_duplicate_raises_conflict(self, async_author_repository):
        await seed(async_author_repository, "a")

        with pytest.raises(PersistenceConflictError) as exc_info:
            await async_author_repository.add(
                Author(name="copy", email="a@example.com")
            )

        assert exc_info.value.entity_type == "Author"
        assert await async_author_repository.count() == 1

    @pytest.mark.asyncio
    async def test_store_is_usable_after_rejected_value(
        self, async_author_repository, async_store, repository_settings
    ):
        posts = AsyncRepository(Post, async_store, settings=repository_settings)
        author = await async_author_repository.add(
            Author(name="a", email="a@example.com")
        )
        author_id = author.id

        with pytest.raises(RepositoryError) as exc_info:
            await posts.add(Post(title="bad", published="yes", author_id=author_id))

        assert isinstance(exc_info.value.__cause__, StatementError)
        await posts.add(Post(title="good", author_id=author_id))
        assert [p.title for p in await posts.get_all()] == ["good"]

    @pytest.mark.asyncio
    async def test_delete_then_get(self, async_author_repository):
        await seed(async_author_repository, "a", "b")
        (snapshot,) = await async_author_repository.get_by_spec(
            Specification(Author).where(field("name").equals("a"))
        )

        assert await async_author_repository.delete(snapshot) == 1
        assert await async_author_repository.get(1) is None
        assert await async_author_repository.count() == 1

    @pytest.mark.asyncio
    async def test_list_paginated(self, async_author_repository):
        await seed(async_author_repository, "a", "b", "c")

        entities, info = await async_author_repository.list_paginated(
            page=2, page_size=2
        )

        assert [a.id for a in entities] == [3]
        assert info.total_items == 3
        assert info.total_pages == 2
        assert not info.has_next

    @pytest.mark.asyncio
    async def test_metrics(self, async_author_repository):
        await async_author_repository.get(1)

        assert async_author_repository.get_metrics()["operations"] == {
            "get_success": 1
        }
