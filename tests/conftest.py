"""Shared fixtures: a small blog model on a throwaway SQLite database."""

import pytest
import pytest_asyncio
from collections.abc import AsyncIterator, Iterator
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from blog_models import Author, Base, Post
from repokit.repository import AsyncRepository, Repository, RepositorySettings
from repokit.store import (
    AsyncEntityStore,
    EntityStore,
    StoreSettings,
    async_session_scope,
    create_async_engine,
    create_engine,
    make_async_session_factory,
    make_session_factory,
    session_scope,
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "quick: mark test as fast-running")


@pytest.fixture
def store_settings(tmp_path) -> StoreSettings:
    db_path = tmp_path / "repokit.db"
    return StoreSettings(
        database_url=f"sqlite+pysqlite:///{db_path}",
        async_database_url=f"sqlite+aiosqlite:///{db_path}",
    )


@pytest.fixture
def repository_settings() -> RepositorySettings:
    return RepositorySettings()


@pytest.fixture
def engine(store_settings: StoreSettings) -> Iterator[Engine]:
    engine = create_engine(store_settings)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine, store_settings: StoreSettings) -> sessionmaker:
    return make_session_factory(engine, store_settings)


@pytest.fixture
def store(session_factory: sessionmaker) -> Iterator[EntityStore]:
    with session_scope(session_factory) as store:
        yield store


@pytest.fixture
def author_repository(
    store: EntityStore, repository_settings: RepositorySettings
) -> Repository[Author]:
    return Repository(Author, store, settings=repository_settings)


@pytest.fixture
def post_repository(
    store: EntityStore, repository_settings: RepositorySettings
) -> Repository[Post]:
    return Repository(Post, store, settings=repository_settings)


@pytest.fixture
def seed_authors(session_factory: sessionmaker):
    """Insert authors with ids 1..n named after ``names`` in a separate scope."""

    def seed(*names: str) -> list[int]:
        with session_factory() as session:
            authors = [
                Author(id=i, name=name, email=f"{name}@example.com")
                for i, name in enumerate(names, start=1)
            ]
            session.add_all(authors)
            session.commit()
            return [a.id for a in authors]

    return seed


@pytest.fixture
def fresh_store(session_factory: sessionmaker) -> Iterator[EntityStore]:
    """A second scope on the same database, for checking what was committed."""
    with session_scope(session_factory) as store:
        yield store


@pytest_asyncio.fixture
async def async_engine(store_settings: StoreSettings) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(store_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def async_session_factory(async_engine: AsyncEngine, store_settings: StoreSettings):
    return make_async_session_factory(async_engine, store_settings)


@pytest_asyncio.fixture
async def async_store(async_session_factory) -> AsyncIterator[AsyncEntityStore]:
    async with async_session_scope(async_session_factory) as store:
        yield store


@pytest.fixture
def async_author_repository(
    async_store: AsyncEntityStore, repository_settings: RepositorySettings
) -> AsyncRepository[Author]:
    return AsyncRepository(Author, async_store, settings=repository_settings)
