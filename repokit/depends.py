import typing as t
from bevy import Inject, auto_inject, get_container


@t.runtime_checkable
class DependsProtocol(t.Protocol):
    @staticmethod
    def inject(func: t.Callable[..., t.Any]) -> t.Callable[..., t.Any]: ...
    @staticmethod
    def set(class_: t.Any, instance: t.Any = None) -> t.Any: ...
    @staticmethod
    def get_sync(category: t.Any) -> t.Any: ...
    async def get(self, category: t.Any) -> t.Any: ...


class Depends:
    """Thin facade over the process-wide bevy container.

    Registrations are keyed by class. ``get_sync`` is enough for everything
    repokit stores in the container (settings and the repository registry);
    ``get`` exists so async call sites read the same way.
    """

    @staticmethod
    def inject(func: t.Callable[..., t.Any]) -> t.Callable[..., t.Any]:
        """Decorator to inject ``Inject[...]`` annotated parameters."""
        return t.cast("t.Callable[..., t.Any]", auto_inject(func))

    @staticmethod
    def set(class_: t.Any, instance: t.Any = None) -> t.Any:
        """Register ``instance`` (or a fresh ``class_()``) and return it."""
        if instance is None:
            instance = class_()
        get_container().add(class_, instance)
        return instance

    @staticmethod
    def get_sync(category: t.Any) -> t.Any:
        result = get_container().get(category)
        if isinstance(result, tuple):
            if len(result) == 1:
                return result[0]
            msg = f"Dependency {category!r} resolved to {len(result)} values"
            raise RuntimeError(msg)
        return result

    async def get(self, category: t.Any) -> t.Any:
        return Depends.get_sync(category)


depends = Depends()

__all__ = ["Depends", "DependsProtocol", "Inject", "depends", "get_container"]
