"""
Structured logging configuration using structlog.

JSON lines in production, colored console output in development. Every
entry carries the context bound with `log_context()`: the API layer binds
the core operation being run (and its retry attempt logs inherit it), the
maintenance job binds its own name.
"""
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

APP_NAME = "agrimarket"

# Chatty third-party loggers kept at WARNING
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def _add_app_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines for log shipping, else console output for development
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_app_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    processors.append(
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind key-value context (operation, order_id, ...) to every log entry inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
