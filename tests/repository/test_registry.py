"""Tests for the repository registry."""

import pytest

from blog_models import Author, Post, Tag
from repokit.repository import (
    AsyncRepository,
    Repository,
    RepositoryRegistration,
    RepositoryRegistry,
    RepositoryRegistryError,
    RepositorySettings,
    build_registry,
    get_registry,
    set_registry,
)


class AuthorRepository(Repository[Author]):
    pass


class AsyncAuthorRepository(AsyncRepository[Author]):
    pass


class OtherAuthorRepository(Repository[Author]):
    pass


@pytest.fixture
def registry():
    return RepositoryRegistry()


class TestRepositoryRegistry:
    """Test registration and lookup."""

    def test_register_defaults(self, registry):
        registration = registry.register(Post)

        assert isinstance(registration, RepositoryRegistration)
        assert registration.repository_type is Repository
        assert registration.async_repository_type is AsyncRepository
        assert registry.is_registered(Post)
        assert not registry.is_registered(Tag)

    def test_register_same_types_twice_is_noop(self, registry):
        first = registry.register(Author, AuthorRepository)
        second = registry.register(Author, AuthorRepository)

        assert first is second
        assert len(registry.list_registrations()) == 1

    def test_conflicting_registration_is_rejected(self, registry):
        registry.register(Author, AuthorRepository)

        with pytest.raises(RepositoryRegistryError, match="already registered") as e:
            registry.register(Author, OtherAuthorRepository)

        assert e.value.entity_type == "Author"
        assert e.value.operation == "registry"

    def test_unregister(self, registry):
        registry.register(Author)

        assert registry.unregister(Author)
        assert not registry.unregister(Author)
        assert not registry.is_registered(Author)

    def test_get_by_name(self, registry):
        registry.register(Author, AuthorRepository)

        assert registry.get_by_name("Author").repository_type is AuthorRepository
        assert registry.get_by_name("Missing") is None

    def test_create(self, registry, store):
        registry.register(Author, AuthorRepository)

        repository = registry.create(Author, store)

        assert isinstance(repository, AuthorRepository)
        assert repository.store is store
        assert repository.entity_type is Author

    def test_create_uses_registered_settings(self, registry, store):
        settings = RepositorySettings(default_page_size=5)
        registry.register(Author, settings=settings)

        assert registry.create(Author, store).settings is settings

    def test_create_unregistered_raises(self, registry, store):
        with pytest.raises(RepositoryRegistryError, match="No repository registered"):
            registry.create(Tag, store)

    @pytest.mark.asyncio
    async def test_create_async(self, registry, async_store):
        registry.register(Author, AuthorRepository, AsyncAuthorRepository)

        repository = registry.create_async(Author, async_store)

        assert isinstance(repository, AsyncAuthorRepository)

    def test_get_info(self, registry):
        registry.register(Author, AuthorRepository)

        info = registry.get_info()

        assert info["total_registrations"] == 1
        assert info["registrations"]["Author"]["repository_type"] == "AuthorRepository"


class TestRepositoryScope:
    """Test per-store repository caches."""

    def test_scope_caches_repositories(self, registry, store):
        registry.register(Author, AuthorRepository)
        scope = registry.scope(store)

        first = scope.get(Author)

        assert scope[Author] is first
        assert Author in scope
        assert isinstance(first, AuthorRepository)
        assert registry.scope(store).get(Author) is not first

    @pytest.mark.asyncio
    async def test_scope_over_async_store(self, registry, async_store):
        registry.register(Author)

        assert isinstance(registry.scope(async_store)[Author], AsyncRepository)

    def test_scoped_repositories_share_the_store(self, registry, store):
        registry.register(Author)
        registry.register(Post)
        scope = registry.scope(store)

        author = scope[Author].add(Author(name="a", email="a@example.com"))
        scope[Post].add(Post(title="p", author_id=author.id))

        assert scope[Post].count() == 1
        assert scope[Author].store is scope[Post].store


class TestBuildRegistry:
    """Test startup assembly and the process-wide registry."""

    def test_build_registry_from_entries(self):
        registry = build_registry(
            [
                Post,
                (Author, AuthorRepository, AsyncAuthorRepository),
            ]
        )

        assert registry.is_registered(Post)
        assert registry.get_registration(Author).repository_type is AuthorRepository

    def test_build_registry_detects_conflicts(self):
        with pytest.raises(RepositoryRegistryError):
            build_registry(
                [(Author, AuthorRepository), (Author, OtherAuthorRepository)]
            )

    def test_set_and_get_registry(self):
        registry = build_registry([Author])

        assert set_registry(registry) is registry
        assert get_registry() is registry
