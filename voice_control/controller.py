"""
Voice controller: the per-guild connection state machine.

    disconnected -> connecting -> connected -> disconnected

play and stop for the same guild are serialized by a per-guild asyncio.Lock,
so a stop that starts after a play returned always sees that play's session.
Different guilds never wait on each other. Remote I/O failures are turned
into outcomes here and never escape handle().
"""
from __future__ import annotations

import asyncio
import re
from typing import Any, Iterable, Optional

import discord

from audio_stream.pipeline import StreamPipeline
from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter, Severity
from .errors import (
    ConnectionErrorCategory,
    ConnectionErrorClassifier,
    ConnectionFailedError,
    InvalidTargetError,
    NotConnectedError,
)
from .outcomes import (
    AlreadyConnected,
    Connected,
    ConnectionFailed,
    Disconnected,
    InvalidTarget,
    NotConnected,
    Outcome,
)
from .session import GroupVoiceSession, SessionRegistry, SessionState

logger = get_logger(Component.VOICE_CONTROLLER)

# Discord snowflakes are 17-20 digits.
SNOWFLAKE_RE = re.compile(r"^\d{17,20}$")

DEFAULT_CONNECT_TIMEOUT = 30.0


def is_voice_channel(channel: Any) -> bool:
    return getattr(channel, "type", None) == discord.ChannelType.voice


def list_voice_channels(guild: Any) -> list[Any]:
    """Voice channels of a guild in the guild's own order."""
    return [channel for channel in guild.channels if is_voice_channel(channel)]


def resolve_target(guild: Any, target: Optional[str]) -> Any:
    """
    Resolve a channel id or exact channel name to a voice channel of the guild.

    Raises InvalidTargetError if nothing matches or the match is not a voice
    channel.
    """
    ref = (target or "").strip()
    if not ref:
        raise InvalidTargetError(ref, reason="missing")

    channel = None
    if SNOWFLAKE_RE.match(ref):
        channel = guild.get_channel(int(ref))
    if channel is None:
        matches: Iterable[Any] = (c for c in guild.channels if c.name == ref)
        channel = next((c for c in matches if is_voice_channel(c)), None)
        if channel is None:
            raise InvalidTargetError(ref, reason="not_found")

    if not is_voice_channel(channel):
        raise InvalidTargetError(ref, reason="not_voice")
    return channel


class VoiceController:
    """Opens, tracks and closes guild voice connections on the shared player."""

    def __init__(
        self,
        registry: SessionRegistry,
        pipeline: StreamPipeline,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        emitter: Optional[EventEmitter] = None,
    ):
        self.registry = registry
        self.pipeline = pipeline
        self.connect_timeout = connect_timeout
        self.emitter = emitter or EventEmitter(EventComponent.VOICE_CONTROLLER)
        self._locks: dict[str, asyncio.Lock] = {}
        self._connecting: set[str] = set()
        self._shutting_down = False
        # Loop that owns the registry; set on the first play.
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        pipeline.add_error_listener(self._on_pipeline_error)

    def lock_for(self, guild_id: str | int) -> asyncio.Lock:
        guild_id = str(guild_id)
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        return lock

    def state(self, guild_id: str | int) -> SessionState:
        guild_id = str(guild_id)
        if guild_id in self._connecting:
            return SessionState.CONNECTING
        if guild_id in self.registry:
            return SessionState.CONNECTED
        return SessionState.DISCONNECTED

    def begin_shutdown(self) -> None:
        """Refuse new connections; in-flight connects are torn down instead of registered."""
        self._shutting_down = True

    async def handle(
        self,
        action: str,
        guild: Any,
        target_channel: Optional[str] = None,
    ) -> Optional[Outcome]:
        """Run one command. Returns None for actions this layer does not own."""
        action = str(getattr(action, "value", action))
        if action == "play":
            return await self.play(guild, target_channel)
        if action == "stop":
            return await self.stop(guild)
        return None

    async def play(self, guild: Any, target_channel: Optional[str]) -> Outcome:
        guild_id = str(guild.id)
        log = logger.with_guild(guild_id)

        try:
            channel = resolve_target(guild, target_channel)
        except InvalidTargetError as e:
            log.warning(str(e), channel_ref=e.channel_ref, reason=e.reason)
            self.emitter.emit(
                "voice.invalid_target",
                guild_id,
                severity=Severity.WARN,
                channel_ref=e.channel_ref,
                reason=e.reason,
            )
            return InvalidTarget(channel_ref=e.channel_ref)

        self._loop = asyncio.get_running_loop()
        async with self.lock_for(guild_id):
            await self._drop_if_stale(guild_id)
            existing = self.registry.lookup(guild_id)
            if existing is not None:
                log.info("Already connected", channel_id=existing.channel_id)
                return AlreadyConnected(channel_id=existing.channel_id)

            self._connecting.add(guild_id)
            try:
                session = await self._connect(guild_id, channel)
            except ConnectionFailedError as e:
                log.error(
                    "Voice connection failed",
                    channel_id=str(channel.id),
                    category=e.category,
                    error=e.detail,
                )
                self.emitter.emit(
                    "voice.connect_failed",
                    guild_id,
                    severity=Severity.ERROR,
                    channel_id=str(channel.id),
                    category=e.category,
                    detail=e.detail,
                )
                return ConnectionFailed(
                    channel_ref=str(channel.id),
                    reason=e.detail,
                    category=e.category,
                )
            finally:
                self._connecting.discard(guild_id)

        log.info("Connected to voice channel", channel_id=session.channel_id, channel_name=session.channel_name)
        self.emitter.emit(
            "voice.connected",
            guild_id,
            channel_id=session.channel_id,
            channel_name=session.channel_name,
        )
        return Connected(channel_id=session.channel_id, channel_name=session.channel_name)

    async def stop(self, guild: Any) -> Outcome:
        guild_id = str(guild.id)
        log = logger.with_guild(guild_id)

        async with self.lock_for(guild_id):
            try:
                session = self.registry.remove(guild_id)
            except NotConnectedError as e:
                log.info(str(e))
                return NotConnected()
            try:
                await self.teardown(session)
            except Exception as e:
                # The session is gone from the registry either way; Discord
                # drops the stale connection on its own timeout.
                log.warning(
                    "Voice disconnect failed",
                    channel_id=session.channel_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        log.info("Disconnected from voice channel", channel_id=session.channel_id)
        self.emitter.emit("voice.disconnected", guild_id, channel_id=session.channel_id)
        return Disconnected(channel_id=session.channel_id)

    async def prune(self, guild_id: str | int) -> bool:
        """Drop the guild's session if Discord has closed its voice connection."""
        async with self.lock_for(guild_id):
            return await self._drop_if_stale(str(guild_id))

    async def _drop_if_stale(self, guild_id: str) -> bool:
        # Caller holds the guild lock.
        session = self.registry.lookup(guild_id)
        if session is None or session.connection.is_connected():
            return False
        self.registry.destroy(guild_id)
        log = logger.with_guild(guild_id)
        log.warning("Voice connection closed remotely", channel_id=session.channel_id)
        try:
            await self.teardown(session)
        except Exception as e:
            log.warning(
                "Cleanup of closed connection raised",
                channel_id=session.channel_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        self.emitter.emit(
            "voice.disconnected",
            guild_id,
            severity=Severity.WARN,
            channel_id=session.channel_id,
            reason="remote",
        )
        return True

    async def teardown(self, session: GroupVoiceSession) -> None:
        """Detach the shared player from the session's connection and disconnect it."""
        self.pipeline.current_player().detach(session.connection)
        await session.connection.disconnect(force=True)

    async def _connect(self, guild_id: str, channel: Any) -> GroupVoiceSession:
        if self._shutting_down:
            raise ConnectionFailedError(
                str(channel.id), ConnectionErrorCategory.SHUTTING_DOWN, "bridge is shutting down"
            )

        player = self.pipeline.current_player()
        connection = None
        try:
            connection = await channel.connect(timeout=self.connect_timeout, reconnect=True)
            player.attach(connection, after=self.pipeline.playback_finished(guild_id))
            if self._shutting_down:
                raise ConnectionFailedError(
                    str(channel.id), ConnectionErrorCategory.SHUTTING_DOWN, "bridge is shutting down"
                )
            return self.registry.create(
                guild_id,
                channel.id,
                connection,
                channel_name=getattr(channel, "name", None),
                attached_player=player,
            )
        except Exception as e:
            if connection is not None:
                await self._abort(guild_id, connection)
            if isinstance(e, ConnectionFailedError):
                raise
            raise ConnectionErrorClassifier.to_error(str(channel.id), e) from e

    async def _abort(self, guild_id: str, connection: Any) -> None:
        """Undo a half-open connection so a failed play leaves nothing behind."""
        self.pipeline.current_player().detach(connection)
        try:
            await connection.disconnect(force=True)
        except Exception as e:
            logger.warning(
                "Cleanup of failed connection raised",
                guild_id=guild_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _on_pipeline_error(self, error: BaseException) -> None:
        # Runs on the capture thread; the registry is only touched on its loop.
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._report_stream_error, error)
        except RuntimeError:
            logger.warning("Event loop closed, stream error not reported", error=str(error))

    def _report_stream_error(self, error: BaseException) -> None:
        # Sessions stay registered until an explicit stop or shutdown.
        for session in self.registry.all():
            logger.error(
                "Audio stream failed while connected",
                guild_id=session.guild_id,
                channel_id=session.channel_id,
                error=str(error),
            )
            self.emitter.emit(
                "voice.stream_degraded",
                session.guild_id,
                severity=Severity.ERROR,
                channel_id=session.channel_id,
                detail=str(error),
            )
