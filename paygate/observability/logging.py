"""
Structured logging with structlog.

Every entry carries the service name and version; anything bound with
log_context (idempotency key, payment id) is merged in from contextvars.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from paygate import __version__

SERVICE_NAME = "paygate"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the service name and version on each entry."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__
    return event_dict


def _processors(log_level: str, log_format: str) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        chain.append(structlog.dev.ConsoleRenderer(colors=log_level.upper() == "DEBUG"))
    else:
        chain.append(structlog.processors.JSONRenderer())
    return chain


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Route structlog through the stdlib root logger on stdout.

    A JSON entry looks like:
    {
        "event": "square_payment_created",
        "payment_id": "pay_9",
        "idempotency_key": "payment_lxa1b2c3_9f1c2ab0",
        "level": "info",
        "logger": "paygate.services.square_provider",
        "service": "paygate",
        "version": "0.1.0",
        "timestamp": "2025-03-01T12:00:00.123456Z"
    }

    Safe to call more than once; the last call wins.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )
    structlog.configure(
        processors=_processors(log_level, log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module: logger = get_logger(__name__)."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind key/value pairs to every log entry emitted inside the block.

    Usage:
        with log_context(idempotency_key=body.idempotency_key):
            payment = await payments.create_payment(request)
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
