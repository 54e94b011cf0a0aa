"""Synchronous repository.

``Repository`` binds one entity type to one ``EntityStore`` scope. Reads go
through the specification evaluator; every mutating call is its own atomic
commit (wrap several calls in a ``UnitOfWork`` to commit them together).
"""

import typing as t
from typing import Any

from repokit.logger import logger

from ._base import (
    EntityNotFoundError,
    PaginationInfo,
    RepositoryBase,
    RepositorySettings,
)
from .specifications import Specification

if t.TYPE_CHECKING:
    from repokit.store import EntityStore


class Repository[EntityType](RepositoryBase[EntityType]):
    """Generic CRUD repository over a synchronous store scope.

    Subclass it to add entity-specific queries::

        class PostRepository(Repository[Post]):
            def published(self) -> list[Post]:
                return self.get_by_spec(PublishedPosts())
    """

    def __init__(
        self,
        entity_type: type[EntityType],
        store: "EntityStore",
        settings: RepositorySettings | None = None,
    ) -> None:
        super().__init__(entity_type, settings)
        self.store = store

    def get(self, key: Any) -> EntityType | None:
        """Get entity by primary key.

        Args:
            key: Scalar key, or a tuple/dict for composite keys

        Returns:
            Entity if found, None otherwise
        """
        try:
            entity = self.store.find(self.entity_type, key)
        except Exception as e:
            self._handle_error(e, "get")
        self._increment_metric("get")
        return entity

    def get_or_raise(self, key: Any) -> EntityType:
        """Get entity by key, raise ``EntityNotFoundError`` if absent."""
        entity = self.get(key)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, key)
        return entity

    def exists(self, key: Any) -> bool:
        return self.get(key) is not None

    def get_all(self, as_no_tracking: bool = True) -> list[EntityType]:
        """Fetch the whole collection, in no particular order."""
        try:
            entities = self.store.fetch(
                self.store.collection_view(self.entity_type),
                tracked=not as_no_tracking,
            )
        except Exception as e:
            self._handle_error(e, "get_all")
        self._increment_metric("get_all")
        return entities

    def get_by_spec(
        self,
        spec: Specification[EntityType],
        as_no_tracking: bool | None = None,
    ) -> list[EntityType]:
        """Fetch the entities described by ``spec``.

        Args:
            spec: Specification for this repository's entity type
            as_no_tracking: Overrides the specification's tracking flag

        Returns:
            Matching entities in specification order

        Raises:
            SpecificationError: If ``spec`` is invalid or for another type
        """
        try:
            self._check_spec(spec)
            query = self.evaluator.evaluate(
                self.store.collection_view(self.entity_type), spec
            )
            entities = self.store.fetch(
                query, tracked=not self._resolve_tracking(spec, as_no_tracking)
            )
        except Exception as e:
            self._handle_error(e, "get_by_spec")
        self._increment_metric("get_by_spec")
        return entities

    def count(self, spec: Specification[EntityType] | None = None) -> int:
        """Count matching rows without loading entities.

        Uses the same filters as ``get_by_spec``. A paged specification
        counts the rows on that page; pass ``spec.without_paging()`` for the
        total.
        """
        try:
            if spec is not None:
                self._check_spec(spec)
            total = self.store.scalar(
                self.evaluator.count_query(
                    self.store.collection_view(self.entity_type), spec
                )
            )
        except Exception as e:
            self._handle_error(e, "count")
        self._increment_metric("count")
        return int(total or 0)

    def list_paginated(
        self,
        spec: Specification[EntityType] | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> tuple[list[EntityType], PaginationInfo]:
        """Fetch one page of ``spec`` along with pagination information."""
        spec = spec or Specification.ordered_by_key(self.entity_type)
        page, page_size = self._page_window(page, page_size)
        unpaged = spec.without_paging()
        pagination = PaginationInfo(
            page=page,
            page_size=page_size,
            total_items=self.count(unpaged),
        )
        entities = self.get_by_spec(unpaged.paginate(page, page_size))
        return entities, pagination

    def add(self, entity: EntityType) -> EntityType:
        """Insert ``entity`` and commit.

        Returns:
            The same entity, with generated keys populated
        """
        try:
            self.store.mark_added(entity)
            self.store.commit()
        except Exception as e:
            self._handle_error(e, "add")
        self._increment_metric("add")
        logger.debug(f"Added {self.entity_name}")
        return entity

    def update(self, entity: EntityType) -> int:
        """Write every column of ``entity`` and commit.

        The entity does not need to come from this scope: a detached or
        newly built instance with an existing key is accepted.

        Returns:
            Number of rows affected

        Raises:
            ConcurrencyConflictError: If no row has the entity's key
            PersistenceConflictError: If the store rejects the change
        """
        try:
            self.store.mark_modified(entity)
            affected = self.store.commit()
        except Exception as e:
            self._handle_error(e, "update")
        self._increment_metric("update")
        return affected

    def delete(self, entity: EntityType) -> int:
        """Remove ``entity`` and commit. Returns the number of rows affected."""
        try:
            self.store.mark_removed(entity)
            affected = self.store.commit()
        except Exception as e:
            self._handle_error(e, "delete")
        self._increment_metric("delete")
        return affected
