"""Entity store adapters over SQLAlchemy sessions."""

from ._async import AsyncEntityStore, async_session_scope, make_async_session_factory
from ._base import StoreSettings, create_async_engine, create_engine, translate_error
from ._sync import EntityStore, make_session_factory, session_scope

__all__ = [
    "AsyncEntityStore",
    "EntityStore",
    "StoreSettings",
    "async_session_scope",
    "create_async_engine",
    "create_engine",
    "make_async_session_factory",
    "make_session_factory",
    "session_scope",
    "translate_error",
]
