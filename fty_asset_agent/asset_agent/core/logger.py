"""
Logger helper module for structured logging with environment-based configuration.
Supports JSON and text formats, with different log levels for dev/uat vs prod.
Automatically includes the actor name and message context (subject, sender,
correlation id) in all logs emitted while a bus message is being handled.
"""
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from asset_agent.core.config import settings

# Context variables for message context (each asyncio task sees its own copy)
_actor_name: ContextVar[Optional[str]] = ContextVar("actor_name", default=None)
_message_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("message_context", default=None)


class MessageContextFilter(logging.Filter):
    """Filter that adds the actor name and message context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = settings.ENVIRONMENT

        actor_name = _actor_name.get()
        if actor_name:
            record.actor = actor_name

        message_context = _message_context.get()
        if message_context:
            for key, value in message_context.items():
                if not hasattr(record, key):
                    setattr(record, key, value)

        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter that adds timestamp, environment info, and message context."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.ENVIRONMENT

        if hasattr(record, "actor"):
            log_record["actor"] = record.actor

        message_context = _message_context.get()
        if message_context:
            for key, value in message_context.items():
                if key not in log_record:  # Don't override existing fields
                    log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class TextFormatter(logging.Formatter):
    """Text formatter that includes the actor and message context."""

    def format(self, record: logging.LogRecord) -> str:
        base_msg = super().format(record)

        if hasattr(record, "actor"):
            base_msg = f"{base_msg} [actor={record.actor}]"

        message_context = _message_context.get()
        if message_context:
            context_parts = [f"{key}={value}" for key, value in message_context.items()]
            if context_parts:
                base_msg = f"{base_msg} [{', '.join(context_parts)}]"

        return base_msg


def setup_logger(name: str = "fty_asset") -> logging.Logger:
    """
    Set up and configure a logger with environment-based settings.

    Args:
        name: Logger name (default: "fty_asset")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if settings.LOG_FILE:
        handler = logging.FileHandler(settings.LOG_FILE)
    else:
        handler = logging.StreamHandler(sys.stdout)

    if settings.LOG_FORMAT == "json":
        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S"
        )
    else:
        formatter = TextFormatter(
            "[%(asctime)s] [%(levelname)s] [%(name)s] [%(environment)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handler.setFormatter(formatter)
    handler.addFilter(MessageContextFilter())

    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def set_actor_name(name: str) -> None:
    """Tag every log emitted by the current task with the actor name."""
    _actor_name.set(name)


def set_request_context(**kwargs) -> None:
    """
    Set message context for logging. This will automatically be included in all subsequent logs.

    Args:
        **kwargs: Context fields (e.g., subject, sender, correlation_id)
    """
    _message_context.set({key: value for key, value in kwargs.items() if value is not None})


def clear_request_context() -> None:
    """Clear message context after the message is processed."""
    _message_context.set(None)


# Lazy logger instance - only created on first access
_app_logger = None


def get_app_logger() -> logging.Logger:
    """Lazy logger loader - logger is only created on first access."""
    global _app_logger
    if _app_logger is None:
        _app_logger = setup_logger("fty_asset")
    return _app_logger


def reset_app_logger() -> None:
    """Re-create the logger on next access (after settings changed)."""
    global _app_logger
    _app_logger = None


class _LoggerProxy:
    """Proxy that lazily loads logger on first method call."""

    def __getattr__(self, name):
        return getattr(get_app_logger(), name)

    def __repr__(self):
        return repr(get_app_logger())


app_logger = _LoggerProxy()
