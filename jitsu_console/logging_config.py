"""Structured logging for the Console client.

The client only emits events through ``get_logger``; it never configures logging on import.
Tools embedding it either configure structlog themselves or call ``setup_logging``, usually
through ``ConsoleClient.from_settings(configure_logging=True)``.

Every renderer runs ``redact_sensitive`` first, so login passwords, CSRF tokens and stream key
material never reach the output even when a caller binds them by accident.
"""

import logging
import sys
from typing import Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

DEFAULT_SERVICE_NAME = "jitsu-console-client"

SENSITIVE_KEYS = frozenset({"password", "csrf_token", "plaintext", "database_url"})

LogFormat = Literal["json", "console"]


def redact_sensitive(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Mask credential-like values before rendering."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def build_processors(log_format: LogFormat) -> list[Processor]:
    """Processor chain ending in a JSON or console renderer."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def setup_logging(
    service_name: str = DEFAULT_SERVICE_NAME,
    log_format: LogFormat = "console",
    log_level: str = "INFO",
) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        service_name: Bound as ``service`` on every event.
        log_format: "json" for log shippers, "console" for terminals.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    structlog.configure(
        processors=build_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
