"""Central logging configuration for routebridge.

Everything logs through loguru. The CLI calls :func:`configure_logging` once
at startup; reconciler output re-logged by the driver goes through the same
handlers, so one level setting governs both.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TextIO

from loguru import logger

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)

PACKAGE_PREFIX = "routebridge."


def scope_matches(record_name: str, scopes: Iterable[str]) -> bool:
    """Return True if a logger record name falls under one of the scopes.

    Scopes may be given with or without the package prefix, so ``router``
    and ``routebridge.router`` select the same modules.
    """
    for scope in scopes:
        if record_name.startswith(scope):
            return True
        if not scope.startswith(PACKAGE_PREFIX) and record_name.startswith(
            f"{PACKAGE_PREFIX}{scope}"
        ):
            return True
    return False


def debug_scope_filter(scopes: Iterable[str]) -> Callable[[Any], bool]:
    """Build a loguru filter passing only DEBUG records from ``scopes``."""
    selected = tuple(scopes)

    def _filter(record: Any) -> bool:
        if not isinstance(record, Mapping):
            return False
        if getattr(record.get("level"), "name", None) != "DEBUG":
            return False
        return scope_matches(str(record.get("name", "")), selected)

    return _filter


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
    stream: TextIO | None = None,
) -> tuple[int, ...]:
    """Replace every loguru handler with routebridge's own.

    One handler logs at ``level``. When ``debug_scopes`` is set and ``level``
    is above DEBUG, a second handler adds DEBUG records for those modules
    only. Returns the handler ids.
    """
    target = stream if stream is not None else sys.stderr
    logger.remove()

    handler_ids = [
        logger.add(target, level=level, format=DEFAULT_LOG_FORMAT, colorize=colorize)
    ]

    scopes = [scope.strip() for scope in debug_scopes if scope.strip()]
    if scopes and level.upper() != "DEBUG":
        handler_ids.append(
            logger.add(
                target,
                level="DEBUG",
                format=DEFAULT_LOG_FORMAT,
                colorize=colorize,
                filter=debug_scope_filter(scopes),
            )
        )
    return tuple(handler_ids)
