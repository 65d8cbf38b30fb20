"""
Voice connection error taxonomy.

Recoverable errors raised inside the controller are converted to outcomes
at its boundary. Remote connection failures are mapped to stable categories
so the presentation layer and the event stream never depend on discord.py
exception text.
"""
import asyncio
from typing import Optional

import discord


class BridgeError(Exception):
    """Base class for recoverable, reportable controller errors."""


class InvalidTargetError(BridgeError):
    """The requested channel does not exist in the guild or is not a voice channel."""

    def __init__(self, channel_ref: str, reason: str = "not_found"):
        super().__init__(f"The voice channel ({channel_ref}) is invalid or does not exist")
        self.channel_ref = channel_ref
        self.reason = reason


class AlreadyConnectedError(BridgeError):
    """A session already exists for the guild."""

    def __init__(self, guild_id: str, channel_id: str):
        super().__init__(f"Guild {guild_id} is already connected to channel {channel_id}")
        self.guild_id = guild_id
        self.channel_id = channel_id


class NotConnectedError(BridgeError):
    """No session exists for the guild."""

    def __init__(self, guild_id: str):
        super().__init__(f"Guild {guild_id} is not connected to any voice channel")
        self.guild_id = guild_id


class ConnectionFailedError(BridgeError):
    """Opening the voice connection or attaching the player failed."""

    def __init__(self, channel_ref: str, category: str, detail: str):
        super().__init__(f"Cannot connect to voice channel ({channel_ref}): {detail}")
        self.channel_ref = channel_ref
        self.category = category
        self.detail = detail


class ConnectionErrorCategory:
    """Stable connection failure categories."""

    TIMEOUT = "voice.timeout"
    FORBIDDEN = "voice.forbidden"
    ALREADY_CONNECTED = "voice.already_connected"
    OPUS_MISSING = "voice.opus_missing"
    GATEWAY_CLOSED = "voice.gateway_closed"
    PLAYER_UNAVAILABLE = "voice.player_unavailable"
    SHUTTING_DOWN = "voice.shutting_down"
    UNKNOWN_ERROR = "voice.unknown_error"


class ConnectionErrorClassifier:
    """Maps connection failures to ConnectionErrorCategory values."""

    @staticmethod
    def classify(error: BaseException) -> str:
        """
        Classify a connect/attach failure.

        Exception types are checked first; message heuristics cover the
        ClientException/RuntimeError cases discord.py and the player raise.
        """
        if isinstance(error, ConnectionFailedError):
            return error.category
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return ConnectionErrorCategory.TIMEOUT
        if isinstance(error, discord.Forbidden):
            return ConnectionErrorCategory.FORBIDDEN
        if isinstance(error, discord.opus.OpusNotLoaded):
            return ConnectionErrorCategory.OPUS_MISSING
        if isinstance(error, discord.ConnectionClosed):
            return ConnectionErrorCategory.GATEWAY_CLOSED

        error_str = str(error).lower()

        if "already connected" in error_str:
            return ConnectionErrorCategory.ALREADY_CONNECTED
        if "forbidden" in error_str or "missing access" in error_str or "permission" in error_str:
            return ConnectionErrorCategory.FORBIDDEN
        if "timed out" in error_str or "timeout" in error_str:
            return ConnectionErrorCategory.TIMEOUT
        if "opus" in error_str:
            return ConnectionErrorCategory.OPUS_MISSING
        if "player is not running" in error_str:
            return ConnectionErrorCategory.PLAYER_UNAVAILABLE

        return ConnectionErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def detail(error: BaseException) -> str:
        """Error detail safe for logs and events."""
        detail = str(error) or type(error).__name__
        lowered = detail.lower()
        if "token" in lowered or "secret" in lowered or "password" in lowered:
            return "[redacted: potential secret]"
        return detail.rstrip(".")

    @classmethod
    def to_error(cls, channel_ref: str, error: BaseException) -> ConnectionFailedError:
        return ConnectionFailedError(channel_ref, cls.classify(error), cls.detail(error))

    @staticmethod
    def get_user_message(category: Optional[str]) -> str:
        """User-facing hint for a category."""
        messages = {
            ConnectionErrorCategory.TIMEOUT: "Discord did not answer in time. Try again in a moment.",
            ConnectionErrorCategory.FORBIDDEN: "I am not allowed to join that channel.",
            ConnectionErrorCategory.ALREADY_CONNECTED: "Discord still sees me in a voice channel. Use `stop` first.",
            ConnectionErrorCategory.OPUS_MISSING: "Voice support is not installed on the host.",
            ConnectionErrorCategory.PLAYER_UNAVAILABLE: "The audio device is not streaming right now.",
            ConnectionErrorCategory.SHUTTING_DOWN: "The bot is shutting down.",
        }
        return messages.get(category, "Check logs for more details.")
