"""Logging configuration using loguru.

Intercepts stdlib logging so that httpx, asyncio and the engine's own
``logging.getLogger`` users all flow through loguru with a unified format.

Engine components can run at their own level, e.g. registry lookups at
DEBUG while everything else stays at INFO::

    SHELLSMITH_LOG_LEVELS='{"shellsmith.engine.registry": "DEBUG"}'
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Mapping

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Third-party loggers that only matter when something goes wrong.
_QUIET = ("httpx", "httpcore", "asyncio")


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the caller of logging, not logging itself
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        # Keep the stdlib logger name so per-component levels apply to it
        bound = logger.patch(lambda r: r.update(name=record.name))
        bound.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def component_filter(level: str, components: Mapping[str, str]) -> dict[str, int]:
    """Build a loguru filter dict: *level* by default, overridden per module prefix."""
    levels = {"": logger.level(level.upper()).no}
    for name, component_level in components.items():
        levels[name] = logger.level(component_level.upper()).no
    return levels


def setup_logging(level: str = "INFO", components: Mapping[str, str] | None = None) -> None:
    """Configure loguru as the sole logging sink, writing to stderr.

    stdout is left alone: it carries command output (``--print-env``,
    ``resolve`` JSON) that callers may pipe.  *components* maps module
    prefixes (``shellsmith.engine.registry``) to their own level.
    """
    levels = component_filter(level, components or {})

    logger.remove()
    logger.add(sys.stderr, level=min(levels.values()), filter=levels, format=_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={}, components={})", level.upper(), dict(components or {}))
