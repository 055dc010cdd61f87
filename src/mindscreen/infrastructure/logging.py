"""Structured logging configuration using structlog.

This module provides:
- JSON output for production (machine-parseable)
- Console output for development (human-readable)
- Context variable binding so session ids flow into every event
- A redaction processor that keeps answer content out of logs
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, MutableMapping

    from mindscreen.config import LoggingSettings

REDACTED_KEYS: Final[frozenset[str]] = frozenset({"answer", "answers", "value", "text"})
"""Event keys whose values may hold user answers and are never rendered."""


def redact_answers(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace answer-bearing event values with a placeholder."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Configure structured logging for the application.

    Args:
        settings: Logging settings. If None, uses defaults from config.
    """
    if settings is None:
        from mindscreen.config import get_settings  # noqa: PLC0415

        settings = get_settings().logging

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_answers,
    ]

    if settings.include_timestamp:
        shared_processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    shared_processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
        ]
    )

    if settings.include_caller:
        shared_processors.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )

    if settings.format == "json":
        final_processors: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        final_processors = [
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        ]

    structlog.configure(
        processors=shared_processors + final_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stderr keeps stdout free for CLI output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.level),
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (usually __name__).

    Returns:
        Configured structlog logger.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: str | int | float | bool) -> None:
    """Bind context variables for the current execution context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Unbind context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def session_context(session_id: str, **extra: str | int | float | bool) -> Iterator[None]:
    """Bind a session id (plus extras) for the duration of a block.

    Args:
        session_id: Session being operated on.
        **extra: Additional context variables.

    Yields:
        None. Context is unbound on exit, even if an exception is raised.
    """
    bound = {"session_id": session_id, **extra}
    bind_context(**bound)
    try:
        yield
    finally:
        unbind_context(*bound.keys())


def with_context(
    **context_vars: str | int | float | bool,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator to bind context for function execution.

    Context is automatically cleaned up after the function returns,
    even if an exception is raised.

    Args:
        **context_vars: Context variables to bind.

    Returns:
        Decorator function.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        from functools import wraps  # noqa: PLC0415

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bind_context(**context_vars)
            try:
                return func(*args, **kwargs)
            finally:
                unbind_context(*context_vars.keys())

        return wrapper

    return decorator
