"""
CodeCollab - Logging Configuration

Structured logging setup using structlog for comprehensive application logging.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from codecollab.core.config import settings


def setup_logging() -> None:
    """Configure structured logging for the application."""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,

            # JSON formatting for production, console for development
            structlog.processors.JSONRenderer() if settings.LOG_FORMAT == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        structlog bound logger
    """
    return structlog.get_logger(name)


def log_execution_event(
    logger,
    connection_id: str,
    language: str,
    exit_code: Optional[int],
    killed: bool,
    duration_ms: float,
    **kwargs: Any
) -> None:
    """
    Log the end of a run with a consistent format.

    Args:
        logger: Logger instance
        connection_id: Owning connection identifier
        language: Language tag of the run
        exit_code: Process exit code (None when killed)
        killed: Whether the run was force-terminated
        duration_ms: Wall time from spawn to exit in milliseconds
        **kwargs: Additional context data
    """
    logger.info(
        "code_execution_completed",
        connection_id=connection_id,
        language=language,
        exit_code=exit_code,
        killed=killed,
        duration_ms=duration_ms,
        **kwargs
    )


def log_room_event(
    logger,
    event_type: str,
    room_id: str,
    connection_id: str,
    username: Optional[str] = None,
    member_count: int = 0,
    **kwargs: Any
) -> None:
    """
    Log room membership changes with a consistent format.

    Args:
        logger: Logger instance
        event_type: "joined" or "left"
        room_id: Room identifier
        connection_id: Connection of the participant
        username: Display name of the participant
        member_count: Room size after the change
        **kwargs: Additional context data
    """
    logger.info(
        "room_membership_changed",
        event_type=event_type,
        room_id=room_id,
        connection_id=connection_id,
        username=username,
        member_count=member_count,
        **kwargs
    )
