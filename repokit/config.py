"""Settings base for repokit.

Every configurable concern subclasses :class:`Settings` and picks its own
environment prefix, so a value can come from keyword arguments, the
environment, or a ``.env`` file, in that order of precedence.
"""

import typing as t
from pydantic_settings import BaseSettings, SettingsConfigDict


def deep_update(*dicts: dict[str, t.Any]) -> dict[str, t.Any]:
    """Merge dictionaries left to right, recursing into nested mappings."""
    result: dict[str, t.Any] = {}
    for d in dicts:
        for key, value in d.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = deep_update(result[key], value)
            else:
                result[key] = value
    return result


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REPOKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        arbitrary_types_allowed=True,
        validate_default=True,
    )

    def merged(self, **overrides: t.Any) -> t.Self:
        """Return a copy of these settings with ``overrides`` applied."""
        values = deep_update(self.model_dump(), overrides)
        return self.__class__.model_validate(values)
