"""
structlog setup shared by the hub and the listener.

Both processes log dotted event names with key-value context; ``fmt``
picks machine-readable JSON lines or the coloured dev console.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

LOG_FORMATS = ("json", "text")


def configure_logging(level: str = "info", fmt: str = "json", **context: Any) -> None:
    """
    Configure structlog and route stdlib logging through the same level.

    Extra keyword arguments are bound as context on every event, e.g.
    ``service="hub"``.
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"unknown log format {fmt!r}, expected one of {LOG_FORMATS}")

    numeric_level = structlog.processors.NAME_TO_LEVEL[level.lower()]
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )
    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)

    # Hub core modules log through the stdlib
    logging.basicConfig(level=numeric_level, format="%(levelname)s %(name)s: %(message)s")
