"""
Structured JSON event emission (shared).

Events are written to stdout as one JSON envelope per line and kept in the
in-memory event store for the control API.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .event_store import EventStore, event_store


class Component(str, Enum):
    """Event-producing components."""

    VOICE_CONTROLLER = "voice_controller"
    STREAM_PIPELINE = "stream_pipeline"
    SHUTDOWN = "shutdown"
    CONTROL_API = "control_api"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


# Events not tied to a guild (pipeline, process lifecycle) use this guild_id.
PROCESS_SCOPE = "process"


class EventEmitter:
    """Emits structured JSON events."""

    def __init__(self, component: Component, store: Optional[EventStore] = None):
        self.component = component
        self.store = store if store is not None else event_store

    def emit(
        self,
        event_type: str,
        guild_id: str | int = PROCESS_SCOPE,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Emit a structured event.

        Args:
            event_type: Stable event type string (e.g. "voice.connected")
            guild_id: Guild the event belongs to, or PROCESS_SCOPE
            severity: Event severity level
            correlation_id: Optional correlation ID for a command
            **kwargs: Additional event-specific fields
        """
        guild_id = str(guild_id)
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "guild_id": guild_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or guild_id,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        self.store.store(event)
        return event
