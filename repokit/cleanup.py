"""Resource cleanup for objects that own sessions or connections."""

import asyncio
import typing as t

from .logger import logger

_CLOSE_METHODS = ("close", "aclose", "dispose")


class CleanupMixin:
    """Mixin that closes registered resources exactly once."""

    def __init__(self) -> None:
        self._resources: list[t.Any] = []
        self._cleaned_up = False
        self._cleanup_lock: asyncio.Lock | None = None

    @property
    def cleaned_up(self) -> bool:
        return self._cleaned_up

    def register_resource(self, resource: t.Any) -> None:
        if resource not in self._resources:
            self._resources.append(resource)

    async def cleanup_resource(self, resource: t.Any) -> None:
        """Close ``resource`` with the first close-like method it offers."""
        if resource is None:
            return
        for method_name in _CLOSE_METHODS:
            method = getattr(resource, method_name, None)
            if method is None:
                continue
            result = method()
            if asyncio.iscoroutine(result):
                await result
            logger.debug(f"Closed {type(resource).__name__} using {method_name}()")
            return

    async def cleanup(self) -> None:
        """Close all registered resources, newest first."""
        if self._cleanup_lock is None:
            self._cleanup_lock = asyncio.Lock()

        async with self._cleanup_lock:
            if self._cleaned_up:
                return
            errors: list[Exception] = []
            for resource in reversed(self._resources):
                try:
                    await self.cleanup_resource(resource)
                except Exception as e:
                    errors.append(e)
            self._resources.clear()
            self._cleaned_up = True

        if errors:
            logger.warning(
                f"Resource cleanup errors: {'; '.join(str(e) for e in errors)}"
            )
            raise errors[0]

    async def __aenter__(self) -> t.Self:
        return self

    async def __aexit__(self, exc_type: t.Any, exc_val: t.Any, exc_tb: t.Any) -> None:
        await self.cleanup()
