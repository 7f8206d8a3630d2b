"""
Structured logging configuration for fire-enrich.

Provides consistent, structured logging with session/row context and rich formatting.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler


def new_session_id() -> str:
    """Generate a short identifier for an enrichment session."""
    return f"session_{uuid.uuid4().hex[:12]}"


def bind_session(session_id: str) -> None:
    """Bind the session id into the logging context of the current task."""
    structlog.contextvars.bind_contextvars(session_id=session_id)


def bind_row(row_index: Optional[int]) -> None:
    """Bind the row index for log entries emitted by the current task."""
    if row_index is None:
        structlog.contextvars.unbind_contextvars("row_index")
    else:
        structlog.contextvars.bind_contextvars(row_index=row_index)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug level logging
        rich_output: Use rich formatting for console output
    """
    level = logging.DEBUG if debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.set_exc_info,
    ]

    if rich_output:
        # Rich console output for development
        console = Console(stderr=True)
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True, exception_formatter=structlog.dev.rich_traceback
            )
        )
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, show_path=False)],
        )
        logger_factory = structlog.WriteLoggerFactory(file=sys.stderr)
    else:
        # JSON output for production
        processors.append(structlog.processors.JSONRenderer())
        logging.basicConfig(level=level, format="%(message)s", stream=sys.stdout)
        logger_factory = structlog.WriteLoggerFactory(file=sys.stdout)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
