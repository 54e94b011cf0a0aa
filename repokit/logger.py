"""Loguru logging for repokit.

repokit is a library, so its records are disabled on import. Applications
opt in with :func:`configure_logger`, or simply ``logger.enable("repokit")``
when they already own the loguru sinks.
"""

import sys

import typing as t
from loguru import logger
from pydantic_settings import SettingsConfigDict

from .config import Settings

LIBRARY_NAME = "repokit"


class LoggerSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="REPOKIT_LOGGER_", extra="ignore")

    enabled: bool = False
    level: str = "INFO"
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{name:>28}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }
    colorize: bool = True
    backtrace: bool = False
    diagnose: bool = False

    @property
    def format_string(self) -> str:
        return "".join(self.format.values())


def _only_repokit(record: dict[str, t.Any]) -> bool:
    return record["name"].split(".")[0] == LIBRARY_NAME


def configure_logger(
    settings: LoggerSettings | None = None,
    sink: t.Any = None,
) -> int | None:
    """Enable or disable repokit records according to ``settings``.

    Returns the id of the sink that was added, or ``None`` when logging is
    disabled. Existing sinks belonging to the application are left alone.
    """
    settings = settings or LoggerSettings()
    if not settings.enabled:
        logger.disable(LIBRARY_NAME)
        return None
    logger.enable(LIBRARY_NAME)
    return logger.add(
        sink or sys.stderr,
        level=settings.level.upper(),
        format=settings.format_string,
        filter=_only_repokit,
        colorize=settings.colorize,
        backtrace=settings.backtrace,
        diagnose=settings.diagnose,
    )


__all__ = ["LoggerSettings", "configure_logger", "logger"]
