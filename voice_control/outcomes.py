"""
Controller outcomes.

Every play/stop call produces exactly one of these. They carry data only;
turning them into messages is the presentation layer's job.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Optional, Union


@dataclass(frozen=True)
class Connected:
    kind: ClassVar[str] = "connected"
    channel_id: str
    channel_name: Optional[str] = None


@dataclass(frozen=True)
class Disconnected:
    kind: ClassVar[str] = "disconnected"
    channel_id: str


@dataclass(frozen=True)
class NotConnected:
    kind: ClassVar[str] = "not_connected"


@dataclass(frozen=True)
class InvalidTarget:
    kind: ClassVar[str] = "invalid_target"
    channel_ref: str


@dataclass(frozen=True)
class ConnectionFailed:
    kind: ClassVar[str] = "connection_failed"
    channel_ref: str
    reason: str
    category: Optional[str] = None


@dataclass(frozen=True)
class AlreadyConnected:
    kind: ClassVar[str] = "already_connected"
    channel_id: str


Outcome = Union[Connected, Disconnected, NotConnected, InvalidTarget, ConnectionFailed, AlreadyConnected]


def outcome_to_dict(outcome: Outcome) -> dict[str, Any]:
    return {"outcome": outcome.kind, **asdict(outcome)}
