"""structlog setup for mailcase: console output plus a JSONL file, and mailbox-scoped context."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

import structlog

from mailcase.config import LOG_CONSOLE_FORMAT, LOG_FILE, LOG_LEVEL, VERBOSE_LOGGING

BoundLogger = structlog.stdlib.BoundLogger

# Graph SDK, HTTP and SQL engine log every request at INFO
QUIET_LOGGERS = ("azure", "msal", "msgraph", "kiota_http", "httpx", "httpcore", "sqlalchemy.engine")

MAX_VALUE_LENGTH = 500

_configured = False


def _level() -> int:
    if VERBOSE_LOGGING:
        return logging.DEBUG
    if LOG_LEVEL.isdigit():
        return int(LOG_LEVEL)
    return getattr(logging, LOG_LEVEL, logging.INFO)


def _plain_values(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Enums as their value; long strings (error texts, previews) cut to MAX_VALUE_LENGTH."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, str) and key != "event" and len(value) > MAX_VALUE_LENGTH:
            event_dict[key] = value[:MAX_VALUE_LENGTH] + "..."
    return event_dict


def _handler(handler: logging.Handler, renderer: Any, pre_chain: list, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))
    return handler


def configure_logging() -> None:
    """Route structlog and stdlib logging to stderr and the JSONL file. Runs once."""
    global _configured
    if _configured:
        return

    level = _level()
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _plain_values,
    ]
    console_renderer = (
        structlog.processors.JSONRenderer()
        if LOG_CONSOLE_FORMAT == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(_handler(logging.StreamHandler(), console_renderer, shared, level))
    root.addHandler(
        _handler(logging.FileHandler(LOG_FILE, encoding="utf-8"), structlog.processors.JSONRenderer(), shared, level)
    )
    logging.captureWarnings(True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared
        + [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str = "mailcase", **bindings: Any) -> BoundLogger:
    configure_logging()
    logger = structlog.get_logger(name)
    return logger.bind(**bindings) if bindings else logger


def bind_context(**context: Any) -> None:
    """Attach context (user_id, firm_id, command...) to every following log record."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Bind context for the duration of a block, e.g. one mailbox sync or one reclassify run."""
    with structlog.contextvars.bound_contextvars(**context):
        yield
