"""Repository Registry.

Maps entity types to repository classes, assembled explicitly at startup:
- Registration with conflict detection
- Repository construction for a given store scope
- Per-scope repository caches
- Process-wide registry through the dependency container
"""

import typing as t
from collections.abc import Iterable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from repokit.depends import depends
from repokit.logger import logger

from ._base import RepositoryError, RepositorySettings
from .async_repository import AsyncRepository
from .repository import Repository

if t.TYPE_CHECKING:
    from repokit.store import AsyncEntityStore, EntityStore


@dataclass
class RepositoryRegistration:
    """Repository registration information."""

    entity_type: type[Any]
    repository_type: type[Repository[Any]] = Repository
    async_repository_type: type[AsyncRepository[Any]] = AsyncRepository
    settings: RepositorySettings | None = None

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__


class RepositoryRegistryError(RepositoryError):
    """Exception for repository registry operations."""

    def __init__(self, message: str, entity_type: str | None = None) -> None:
        super().__init__(message, entity_type=entity_type, operation="registry")


class RepositoryRegistry:
    """Explicit map from entity type to repository classes."""

    def __init__(self) -> None:
        self._registrations: dict[type[Any], RepositoryRegistration] = {}

    def register(
        self,
        entity_type: type[Any],
        repository_type: type[Repository[Any]] = Repository,
        async_repository_type: type[AsyncRepository[Any]] = AsyncRepository,
        settings: RepositorySettings | None = None,
    ) -> RepositoryRegistration:
        """Register repository classes for an entity type.

        Registering the same classes twice is a no-op; registering different
        ones for an entity type that is already registered is an error.

        Raises:
            RepositoryRegistryError: On a conflicting registration
        """
        registration = RepositoryRegistration(
            entity_type=entity_type,
            repository_type=repository_type,
            async_repository_type=async_repository_type,
            settings=settings,
        )
        existing = self._registrations.get(entity_type)
        if existing is not None:
            if (
                existing.repository_type is not repository_type
                or existing.async_repository_type is not async_repository_type
            ):
                msg = (
                    f"Repository for {registration.entity_name} already registered "
                    f"with different type: {existing.repository_type.__name__} vs "
                    f"{repository_type.__name__}"
                )
                raise RepositoryRegistryError(
                    msg, entity_type=registration.entity_name
                )
            return existing

        self._registrations[entity_type] = registration
        logger.debug(
            f"Registered {repository_type.__name__} for {registration.entity_name}"
        )
        return registration

    def unregister(self, entity_type: type[Any]) -> bool:
        return self._registrations.pop(entity_type, None) is not None

    def is_registered(self, entity_type: type[Any]) -> bool:
        return entity_type in self._registrations

    def get_registration(self, entity_type: type[Any]) -> RepositoryRegistration:
        registration = self._registrations.get(entity_type)
        if registration is None:
            name = getattr(entity_type, "__name__", str(entity_type))
            msg = f"No repository registered for {name}"
            raise RepositoryRegistryError(msg, entity_type=name)
        return registration

    def get_by_name(self, entity_name: str) -> RepositoryRegistration | None:
        """Find a registration by entity class name."""
        for registration in self._registrations.values():
            if registration.entity_name == entity_name:
                return registration
        return None

    def list_registrations(self) -> list[RepositoryRegistration]:
        return list(self._registrations.values())

    def create[EntityType](
        self,
        entity_type: type[EntityType],
        store: "EntityStore",
    ) -> Repository[EntityType]:
        """Build the registered repository for ``entity_type`` over ``store``."""
        registration = self.get_registration(entity_type)
        return registration.repository_type(
            entity_type, store, settings=registration.settings
        )

    def create_async[EntityType](
        self,
        entity_type: type[EntityType],
        store: "AsyncEntityStore",
    ) -> AsyncRepository[EntityType]:
        registration = self.get_registration(entity_type)
        return registration.async_repository_type(
            entity_type, store, settings=registration.settings
        )

    def scope(self, store: t.Any) -> "RepositoryScope":
        """Return a cache of repositories bound to one store scope."""
        return RepositoryScope(self, store)

    def get_info(self) -> dict[str, Any]:
        return {
            "total_registrations": len(self._registrations),
            "registrations": {
                r.entity_name: {
                    "repository_type": r.repository_type.__name__,
                    "async_repository_type": r.async_repository_type.__name__,
                }
                for r in self._registrations.values()
            },
        }


class RepositoryScope:
    """Repositories for one store scope, created on first use.

    Works with either store kind: an ``AsyncEntityStore`` yields async
    repositories, anything else yields sync ones.
    """

    def __init__(self, registry: RepositoryRegistry, store: t.Any) -> None:
        from repokit.store import AsyncEntityStore

        self.registry = registry
        self.store = store
        self._async = isinstance(store, AsyncEntityStore)
        self._repositories: dict[type[Any], Any] = {}

    def get(self, entity_type: type[Any]) -> Any:
        repository = self._repositories.get(entity_type)
        if repository is None:
            if self._async:
                repository = self.registry.create_async(entity_type, self.store)
            else:
                repository = self.registry.create(entity_type, self.store)
            self._repositories[entity_type] = repository
        return repository

    def __getitem__(self, entity_type: type[Any]) -> Any:
        return self.get(entity_type)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._repositories


def build_registry(
    entries: Iterable[type[Any] | tuple[Any, ...]],
) -> RepositoryRegistry:
    """Assemble a registry from entity types or registration tuples.

    Each entry is an entity type (generic repositories) or a tuple of
    ``(entity_type, repository_type[, async_repository_type])``.
    """
    registry = RepositoryRegistry()
    for entry in entries:
        if isinstance(entry, tuple):
            registry.register(*entry)
        else:
            registry.register(entry)
    return registry


def get_registry() -> RepositoryRegistry:
    """Get the process-wide repository registry."""
    with suppress(Exception):
        registry = depends.get_sync(RepositoryRegistry)
        if isinstance(registry, RepositoryRegistry):
            return registry
    return set_registry(RepositoryRegistry())


def set_registry(registry: RepositoryRegistry) -> RepositoryRegistry:
    """Install ``registry`` as the process-wide registry."""
    depends.set(RepositoryRegistry, registry)
    return registry
