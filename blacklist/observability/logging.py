"""
structlog setup for the blacklist cache.

Production emits one JSON object per line; other environments get the
coloured console renderer. Both include bound context such as the CLI
command, the source and the entry type.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from blacklist.config.settings import Settings, get_settings

# Libraries whose INFO output drowns out refresh events
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "asyncio")


def _renderer(settings: Settings) -> list[Processor]:
    if settings.is_production:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the stdlib root logger from settings.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Registered new source", source="feodo tracker")
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            *_renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Attach key/value pairs to every later log event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)
