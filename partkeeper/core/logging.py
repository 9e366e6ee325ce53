"""Structured logging configuration using structlog.

Every log line carries the ``service`` and ``component`` (``api`` or
``worker``). During a maintenance cycle the table being worked on is bound
through :func:`bind_target`, so nested service logs inherit it.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, cast

import structlog

from partkeeper.config import settings
from partkeeper.models.target import LifecycleTarget

SERVICE_NAME = "partkeeper"

# Libraries that log every statement or request at INFO
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "asyncpg")


def _add_service(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(component: str = "api") -> None:
    """Configure structlog and the standard library root logger.

    Args:
        component: Process role added to every event.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(component=component)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def bind_target(target: LifecycleTarget) -> Iterator[None]:
    """Attach the target table to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(table=target.qualified_base):
        yield


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name. If not provided, uses the calling module's name.

    Returns:
        A bound structlog logger instance.
    """
    return cast(structlog.BoundLogger, structlog.get_logger(name))
