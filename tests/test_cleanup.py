"""Tests for CleanupMixin."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from repokit.cleanup import CleanupMixin


class Holder(CleanupMixin):
    pass


class TestCleanupMixin:
    @pytest.mark.asyncio
    async def test_closes_resources_newest_first(self):
        order: list[str] = []
        first = MagicMock()
        first.close = MagicMock(side_effect=lambda: order.append("first"))
        second = MagicMock()
        second.close = AsyncMock(side_effect=lambda: order.append("second"))
        holder = Holder()
        holder.register_resource(first)
        holder.register_resource(second)

        await holder.cleanup()

        assert order == ["second", "first"]
        assert holder.cleaned_up

    @pytest.mark.asyncio
    async def test_register_is_idempotent(self):
        resource = MagicMock()
        holder = Holder()
        holder.register_resource(resource)
        holder.register_resource(resource)

        await holder.cleanup()

        resource.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_cleanup_runs_once(self):
        resource = MagicMock()
        holder = Holder()
        holder.register_resource(resource)

        await holder.cleanup()
        await holder.cleanup()

        resource.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_falls_back_to_dispose(self):
        resource = MagicMock(spec=["dispose"])
        holder = Holder()
        holder.register_resource(resource)

        await holder.cleanup()

        resource.dispose.assert_called_once()

    @pytest.mark.asyncio
    async def test_errors_are_raised_after_closing_everything(self):
        failing = MagicMock()
        failing.close = MagicMock(side_effect=RuntimeError("close failed"))
        healthy = MagicMock()
        holder = Holder()
        holder.register_resource(healthy)
        holder.register_resource(failing)

        with pytest.raises(RuntimeError, match="close failed"):
            await holder.cleanup()

        healthy.close.assert_called_once()
        assert holder.cleaned_up

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        resource = MagicMock()

        async with Holder() as holder:
            holder.register_resource(resource)

        resource.close.assert_called_once()
