"""Structured logging configuration for shellgate.

Uses structlog for structured, context-rich logging that supports
both human-readable console output and machine-readable JSON format.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from shellgate.config import GateSettings


def configure_logging(settings: "GateSettings | None" = None) -> None:
    """Configure structured logging based on settings.

    Args:
        settings: Gate settings. If None, uses defaults.
    """
    log_level = logging.WARNING
    log_format = "console"

    if settings is not None:
        log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
        log_format = settings.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        # One JSON object per line for log aggregation
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Standard library logging for anything that doesn't go through structlog
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in the current context.

    Example:
        bind_context(session_id="abc123", call_id="call_1")
        logger.info("process_spawned")  # Includes session_id and call_id

    Args:
        **kwargs: Key-value pairs to bind to logging context
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context.

    Args:
        *keys: Keys to remove from context
    """
    structlog.contextvars.unbind_contextvars(*keys)


class Loggers:
    """Pre-configured logger instances for gate components."""

    @staticmethod
    def gate() -> structlog.stdlib.BoundLogger:
        """Logger for the execution pipeline."""
        return get_logger("shellgate.gate")

    @staticmethod
    def sanitizer() -> structlog.stdlib.BoundLogger:
        """Logger for obfuscation detection."""
        return get_logger("shellgate.sanitizer")

    @staticmethod
    def policy() -> structlog.stdlib.BoundLogger:
        """Logger for classification and policy matching."""
        return get_logger("shellgate.policy")

    @staticmethod
    def permission() -> structlog.stdlib.BoundLogger:
        """Logger for approval requests."""
        return get_logger("shellgate.permission")

    @staticmethod
    def process() -> structlog.stdlib.BoundLogger:
        """Logger for process lifecycle."""
        return get_logger("shellgate.process")

    @staticmethod
    def sandbox() -> structlog.stdlib.BoundLogger:
        """Logger for sandbox wrapping."""
        return get_logger("shellgate.sandbox")

    @staticmethod
    def audit() -> structlog.stdlib.BoundLogger:
        """Logger for the audit trail."""
        return get_logger("shellgate.audit")

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        """Logger for configuration."""
        return get_logger("shellgate.config")

    @staticmethod
    def tools() -> structlog.stdlib.BoundLogger:
        """Logger for tools."""
        return get_logger("shellgate.tools")
