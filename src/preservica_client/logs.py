"""structlog configuration for applications embedding the client.

The library only emits events through ``structlog.get_logger()``; nothing is
configured on import. Applications call ``setup_logging`` once, or configure
structlog themselves.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from preservica_client.config import LoggingSettings


def build_processors(settings: LoggingSettings) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.format == "json":
        # Cache warnings carry exc_info; render it as structured data.
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def setup_logging(settings: LoggingSettings) -> None:
    """Configure structlog to write to stderr at ``settings.level``."""
    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.level]
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
