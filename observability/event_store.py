"""
Event store for querying structured events by guild_id.

In-memory and bounded; events are lost on restart.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

ENVELOPE_KEYS = ("ts", "guild_id", "component", "event_type", "severity", "correlation_id")


@dataclass
class StoredEvent:
    """A structured event stored in memory."""

    ts: datetime
    guild_id: str
    component: str
    event_type: str
    severity: str
    correlation_id: str
    payload: Dict[str, Any]  # All other event fields

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the event envelope dict."""
        result = {
            "ts": self.ts.isoformat(),
            "guild_id": self.guild_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
            "correlation_id": self.correlation_id,
        }
        result.update(self.payload)
        return result


class EventStore:
    """
    In-memory event store.

    Stores events in a bounded deque (FIFO) to prevent unbounded memory growth.
    Default max size: 10,000 events.
    Writers may run on the capture thread, so every access holds a lock.
    """

    def __init__(self, max_events: int = 10000):
        self._events: deque[StoredEvent] = deque(maxlen=max_events)
        self._max_events = max_events
        self._lock = threading.Lock()

    def store(self, event: Dict[str, Any]) -> None:
        """Store one event envelope as produced by EventEmitter.emit."""
        ts_str = event.get("ts")
        if isinstance(ts_str, str):
            ts = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
        else:
            ts = datetime.now(timezone.utc)

        guild_id = str(event.get("guild_id", ""))
        stored = StoredEvent(
            ts=ts,
            guild_id=guild_id,
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            correlation_id=event.get("correlation_id", guild_id),
            payload={k: v for k, v in event.items() if k not in ENVELOPE_KEYS},
        )

        with self._lock:
            self._events.append(stored)

    def query(
        self,
        guild_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query events with optional filters.

        Args:
            guild_id: Filter by guild_id
            event_type: Filter by event_type (exact match)
            component: Filter by component
            since: Return events after this timestamp (inclusive)
            until: Return events before this timestamp (inclusive)
            limit: Maximum number of events to return (default: all matching)

        Returns:
            List of event dicts, oldest first
        """
        results: List[StoredEvent] = []
        with self._lock:
            events = list(self._events)

        for event in events:
            if guild_id and event.guild_id != guild_id:
                continue
            if event_type and event.event_type != event_type:
                continue
            if component and event.component != component:
                continue
            if since and event.ts < since:
                continue
            if until and event.ts > until:
                continue

            results.append(event)

            if limit and len(results) >= limit:
                break

        return [e.to_dict() for e in results]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            events = list(self._events)
        return {
            "total_events": len(events),
            "max_events": self._max_events,
            "oldest_event_ts": events[0].ts.isoformat() if events else None,
            "newest_event_ts": events[-1].ts.isoformat() if events else None,
        }


# Process-wide event store; the emitter writes here and the control API reads it.
event_store = EventStore()
