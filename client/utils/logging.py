"""
Structured logging setup using structlog.

This module configures structured logging for the client with JSON output
in production and human-readable format in development.
"""

import logging
import sys
from typing import Any, Optional

import structlog

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "socketio", "engineio")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure structured logging for the client.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Configure structlog
    structlog.configure(
        processors=[
            # Add log level and timestamp
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # Use JSON in production, pretty print in development
            structlog.processors.JSONRenderer() if level.upper() == "INFO" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (optional)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


def log_api_request(
    method: str,
    path: str,
    status_code: Optional[int],
    duration: float,
    **kwargs
) -> None:
    """
    Log a REST call made to the chat backend.

    Args:
        method: HTTP method
        path: Request path (relative to the API base URL)
        status_code: Response status code, None when the request never got a response
        duration: Request duration in seconds
        **kwargs: Additional context
    """
    logger = get_logger("api")
    logger.info(
        "API request",
        method=method,
        path=path,
        status_code=status_code,
        duration=duration,
        **kwargs
    )


def log_chat_event(
    event_type: str,
    conversation_id: str = None,
    message_id: str = None,
    **kwargs
) -> None:
    """
    Log a synchronization event with structured data.

    Args:
        event_type: Type of event (e.g. "message_inserted", "duplicate_skipped")
        conversation_id: Conversation the event applies to (optional)
        message_id: Message the event applies to (optional)
        **kwargs: Additional context
    """
    logger = get_logger("chat")
    logger.info(
        f"Chat {event_type}",
        event_type=event_type,
        conversation_id=conversation_id,
        message_id=message_id,
        **kwargs
    )


def log_realtime_event(event: str, success: bool, **kwargs) -> None:
    """
    Log a realtime transport event with structured data.

    Args:
        event: Transport event or emitted event name
        success: Whether the operation succeeded
        **kwargs: Additional context
    """
    logger = get_logger("realtime")
    logger.info(
        f"Realtime {event}",
        realtime_event=event,  # "event" is reserved by structlog
        success=success,
        **kwargs
    )
