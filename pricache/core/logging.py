"""
loguru sink setup for the CLI and embedding applications.

A single stderr sink carries records at ``level`` and above. Debug scopes name
engine modules (``fetch``, ``core.eviction`` or ``pricache.core.registry``)
whose DEBUG records should still get through when ``level`` is quieter, for
example to trace background refreshes without the rest of the engine's noise.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)

PACKAGE = "pricache"


def qualify_scope(scope: str) -> str:
    """Expand a short scope name to a module prefix under ``pricache.core``."""
    scope = scope.strip().strip(".")
    if scope == PACKAGE or scope.startswith(f"{PACKAGE}."):
        return scope
    if scope.startswith(("core.", "cli.")) or scope in ("core", "cli"):
        return f"{PACKAGE}.{scope}"
    return f"{PACKAGE}.core.{scope}"


def _matches_prefix(name: str, prefix: str) -> bool:
    return name == prefix or name.startswith(f"{prefix}.")


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
) -> int:
    """Replace loguru's sinks with one stderr sink; returns its handler id."""
    level = level.upper()
    prefixes = tuple(qualify_scope(s) for s in debug_scopes if s.strip())
    threshold = logger.level(level).no
    debug_no = logger.level("DEBUG").no

    def _accept(record: dict[str, Any]) -> bool:
        if record["level"].no >= threshold:
            return True
        if record["level"].no < debug_no:
            return False
        name = record["name"] or ""
        return any(_matches_prefix(name, prefix) for prefix in prefixes)

    logger.remove()
    if not prefixes or threshold <= debug_no:
        return logger.add(
            sys.stderr, level=level, format=LOG_FORMAT, colorize=colorize
        )
    return logger.add(
        sys.stderr,
        level="DEBUG",
        format=LOG_FORMAT,
        colorize=colorize,
        filter=_accept,
    )
