"""
Shared logging infrastructure for the audio bridge.

This module provides one logging setup for the audio stream, the voice
controller and the optional control API.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Guild ID correlation across all logs
- Component and severity tagging
- Compatible with EventEmitter for structured events
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """Log severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Component(str, Enum):
    """System components for log tagging."""
    VOICE_CONTROLLER = "voice_controller"
    STREAM_PIPELINE = "stream_pipeline"
    AUDIO_SOURCE = "audio_source"
    SESSION_REGISTRY = "session_registry"
    SHUTDOWN = "shutdown"
    DISCORD_CLIENT = "discord_client"
    CONTROL_API = "control_api"
    DEVICE_SELECTION = "device_selection"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "guild_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each record becomes one line with:
    - ISO8601 timestamp
    - Severity level
    - Component identifier
    - Guild ID (if available in extra)
    - Message and additional fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        if hasattr(record, "guild_id"):
            log_data["guild_id"] = record.guild_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with structured JSON output.

    Usage:
        logger = StructuredLogger(Component.VOICE_CONTROLLER, guild_id="123")
        logger.info("Connected", channel_id="456")
        logger.error("Connect failed", error="details")
    """

    def __init__(
        self,
        component: str | Component,
        guild_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.guild_id = guild_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(self, level: int, message: str, **kwargs: Any):
        """Internal logging method with structured data."""
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.guild_id and "guild_id" not in extra:
            extra["guild_id"] = self.guild_id

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """
        Log an error message with exception info.

        Mirrors logging.Logger.exception so library code handed this wrapper
        can call logger.exception(...) on it.
        """
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def with_guild(self, guild_id: str | int) -> "StructuredLogger":
        """Create a new logger instance bound to a guild ID."""
        return StructuredLogger(
            self.component,
            guild_id=str(guild_id),
            logger_name=self.logger.name
        )


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True
) -> None:
    """
    Configure root logger for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or simple text (False)
        include_timestamp: Include timestamps in text logs

    This should be called once at application startup.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter()
    else:
        format_str = "%(levelname)s - %(name)s - %(message)s"
        if include_timestamp:
            format_str = "%(asctime)s - " + format_str
        formatter = logging.Formatter(format_str)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    # discord.py logs every gateway heartbeat at DEBUG
    logging.getLogger("discord").setLevel(max(log_level, logging.INFO))


def get_logger(
    component: str | Component,
    guild_id: Optional[str | int] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Args:
        component: Component name or Component enum
        guild_id: Optional guild ID for correlation

    Returns:
        StructuredLogger instance

    Example:
        logger = get_logger(Component.VOICE_CONTROLLER, guild_id=1234)
        logger.info("Session started")
    """
    return StructuredLogger(
        component,
        guild_id=str(guild_id) if guild_id is not None else None,
    )
