"""
Guild voice sessions and the registry that owns them.

A guild has at most one session. The registry is a plain state store: it
never opens or closes connections, it only hands them out and back.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from logging_setup import get_logger, Component
from .errors import AlreadyConnectedError, NotConnectedError

logger = get_logger(Component.SESSION_REGISTRY)


class SessionState(str, Enum):
    """Per-guild connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class GroupVoiceSession:
    """One live voice connection for a guild."""

    guild_id: str
    channel_id: str
    connection: Any
    channel_name: Optional[str] = None
    attached_player: Any = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.guild_id:
            raise ValueError("guild_id is required")
        if not self.channel_id:
            raise ValueError("channel_id is required")


class SessionRegistry:
    """Map of guild_id to its single GroupVoiceSession."""

    def __init__(self):
        self._sessions: Dict[str, GroupVoiceSession] = {}

    def create(
        self,
        guild_id: str | int,
        channel_id: str | int,
        connection: Any,
        channel_name: Optional[str] = None,
        attached_player: Any = None,
    ) -> GroupVoiceSession:
        """
        Register a new session.

        Raises AlreadyConnectedError if the guild has one; the caller must
        destroy it first.
        """
        guild_id = str(guild_id)
        existing = self._sessions.get(guild_id)
        if existing is not None:
            raise AlreadyConnectedError(guild_id, existing.channel_id)

        session = GroupVoiceSession(
            guild_id=guild_id,
            channel_id=str(channel_id),
            connection=connection,
            channel_name=channel_name,
            attached_player=attached_player,
        )
        self._sessions[guild_id] = session
        logger.debug("Session registered", guild_id=guild_id, channel_id=session.channel_id)
        return session

    def lookup(self, guild_id: str | int) -> Optional[GroupVoiceSession]:
        return self._sessions.get(str(guild_id))

    def destroy(self, guild_id: str | int) -> Optional[GroupVoiceSession]:
        """
        Remove a session and hand it back for teardown.

        Returns None when the guild has no session.
        """
        session = self._sessions.pop(str(guild_id), None)
        if session is None:
            logger.debug("Session not found", guild_id=str(guild_id))
        else:
            logger.debug("Session removed", guild_id=session.guild_id, channel_id=session.channel_id)
        return session

    def remove(self, guild_id: str | int) -> GroupVoiceSession:
        """Like destroy(), but raises NotConnectedError when there is nothing to remove."""
        session = self.destroy(guild_id)
        if session is None:
            raise NotConnectedError(str(guild_id))
        return session

    def all(self) -> list[GroupVoiceSession]:
        """Snapshot of current sessions; later changes are not reflected."""
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, guild_id: object) -> bool:
        return str(guild_id) in self._sessions
