"""Asynchronous repository.

Same contract as ``Repository``; each method suspends only while the store
talks to the database. Specification evaluation is synchronous and happens
before the first await.
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
    from repokit.store import AsyncEntityStore


class AsyncRepository[EntityType](RepositoryBase[EntityType]):
    """Generic CRUD repository over an ``AsyncEntityStore`` scope.

    Calls on one instance must not overlap; give concurrent tasks their own
    store and repositories.
    """

    def __init__(
        self,
        entity_type: type[EntityType],
        store: "AsyncEntityStore",
        settings: RepositorySettings | None = None,
    ) -> None:
        super().__init__(entity_type, settings)
        self.store = store

    async def get(self, key: Any) -> EntityType | None:
        """Get entity by primary key, or None when no row matches."""
        try:
            entity = await self.store.find(self.entity_type, key)
        except Exception as e:
            self._handle_error(e, "get")
        self._increment_metric("get")
        return entity

    async def get_or_raise(self, key: Any) -> EntityType:
        entity = await self.get(key)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, key)
        return entity

    async def exists(self, key: Any) -> bool:
        return await self.get(key) is not None

    async def get_all(self, as_no_tracking: bool = True) -> list[EntityType]:
        try:
            entities = await self.store.fetch(
                self.store.collection_view(self.entity_type),
                tracked=not as_no_tracking,
            )
        except Exception as e:
            self._handle_error(e, "get_all")
        self._increment_metric("get_all")
        return entities

    async def get_by_spec(
        self,
        spec: Specification[EntityType],
        as_no_tracking: bool | None = None,
    ) -> list[EntityType]:
        """Fetch the entities described by ``spec``.

        Invalid specifications are rejected before the store is touched.
        """
        try:
            self._check_spec(spec)
            query = self.evaluator.evaluate(
                self.store.collection_view(self.entity_type), spec
            )
            entities = await self.store.fetch(
                query, tracked=not self._resolve_tracking(spec, as_no_tracking)
            )
        except Exception as e:
            self._handle_error(e, "get_by_spec")
        self._increment_metric("get_by_spec")
        return entities

    async def count(self, spec: Specification[EntityType] | None = None) -> int:
        try:
            if spec is not None:
                self._check_spec(spec)
            total = await self.store.scalar(
                self.evaluator.count_query(
                    self.store.collection_view(self.entity_type), spec
                )
            )
        except Exception as e:
            self._handle_error(e, "count")
        self._increment_metric("count")
        return int(total or 0)

    async def list_paginated(
        self,
        spec: Specification[EntityType] | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> tuple[list[EntityType], PaginationInfo]:
        """Fetch one page of ``spec`` along with pagination information.

        Args:
            spec: Specification to page through; defaults to key order
            page: Page number (1-based)
            page_size: Items per page, clamped to ``max_page_size``

        Returns:
            Tuple of (entities, pagination_info)
        """
        spec = spec or Specification.ordered_by_key(self.entity_type)
        page, page_size = self._page_window(page, page_size)
        unpaged = spec.without_paging()
        pagination = PaginationInfo(
            page=page,
            page_size=page_size,
            total_items=await self.count(unpaged),
        )
        entities = await self.get_by_spec(unpaged.paginate(page, page_size))
        return entities, pagination

    async def add(self, entity: EntityType) -> EntityType:
        try:
            self.store.mark_added(entity)
            await self.store.commit()
        except Exception as e:
            self._handle_error(e, "add")
        self._increment_metric("add")
        logger.debug(f"Added {self.entity_name}")
        return entity

    async def update(self, entity: EntityType) -> int:
        """Write every column of ``entity`` and commit.

        Returns:
            Number of rows affected

        Raises:
            ConcurrencyConflictError: If no row has the entity's key
            PersistenceConflictError: If the store rejects the change
        """
        try:
            await self.store.mark_modified(entity)
            affected = await self.store.commit()
        except Exception as e:
            self._handle_error(e, "update")
        self._increment_metric("update")
        return affected

    async def delete(self, entity: EntityType) -> int:
        try:
            await self.store.mark_removed(entity)
            affected = await self.store.commit()
        except Exception as e:
            self._handle_error(e, "delete")
        self._increment_metric("delete")
        return affected
