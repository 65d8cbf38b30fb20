"""
The single capture-to-output stream and its shared player.

One StreamPipeline exists per process. It owns the AudioSource and one
SharedPlayer. Connections never get their own pipeline: attaching the player
to a voice connection hands that connection a PlayerTap, a discord.AudioSource
fed from the same capture.
"""

from __future__ import annotations

import threading
from collections import deque
from enum import Enum
from typing import Any, Callable, Optional

import discord

from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter, Severity
from .device import AudioDevice, FRAME_SIZE, validate_device
from .source import AudioSource

logger = get_logger(Component.STREAM_PIPELINE)
emitter = EventEmitter(EventComponent.STREAM_PIPELINE)

SILENCE_FRAME = b"\x00" * FRAME_SIZE

# Frames buffered per tap before the oldest are dropped (1 second).
DEFAULT_TAP_FRAMES = 50

ErrorListener = Callable[[BaseException], None]
AfterCallback = Callable[[Optional[Exception]], Any]


class PipelineStatus(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    ERROR = "error"


class PlayerTap(discord.AudioSource):
    """
    Per-connection read side of the shared player.

    read() is called from discord.py's player thread every 20 ms. It never
    blocks: an empty buffer yields silence, and a closed tap yields b"" which
    ends playback on that connection.
    """

    def __init__(self, player: "SharedPlayer", max_frames: int = DEFAULT_TAP_FRAMES):
        self._player = player
        self._frames: deque[bytes] = deque(maxlen=max_frames)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, frame: bytes) -> None:
        with self._lock:
            if not self._closed:
                self._frames.append(frame)

    def read(self) -> bytes:
        with self._lock:
            if self._closed:
                return b""
            if self._frames:
                return self._frames.popleft()
        return SILENCE_FRAME

    def is_opus(self) -> bool:
        return False

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._frames.clear()

    def cleanup(self) -> None:
        # Called by discord.py when playback on the connection ends.
        # Only this tap goes away; the capture device stays open.
        self.close()
        self._player._release(self)


class SharedPlayer:
    """The one player for the process, attachable to any number of connections."""

    def __init__(self, tap_frames: int = DEFAULT_TAP_FRAMES):
        self.status = PipelineStatus.IDLE
        self._tap_frames = tap_frames
        self._taps: dict[int, PlayerTap] = {}
        self._lock = threading.Lock()
        self._pending = bytearray()

    @property
    def attached_count(self) -> int:
        with self._lock:
            return len(self._taps)

    def is_attached(self, connection: Any) -> bool:
        with self._lock:
            return id(connection) in self._taps

    def play(self) -> None:
        self.status = PipelineStatus.PLAYING

    def feed(self, data: bytes) -> None:
        """Split captured PCM into voice frames and fan them out to every tap."""
        if self.status is not PipelineStatus.PLAYING:
            return
        with self._lock:
            self._pending.extend(data)
            frames = []
            while len(self._pending) >= FRAME_SIZE:
                frames.append(bytes(self._pending[:FRAME_SIZE]))
                del self._pending[:FRAME_SIZE]
            taps = list(self._taps.values())
        for frame in frames:
            for tap in taps:
                tap.push(frame)

    def attach(self, connection: Any, after: Optional[AfterCallback] = None) -> PlayerTap:
        """
        Start playing the shared stream on a voice connection.

        Raises RuntimeError when the player is not running.
        """
        if self.status is not PipelineStatus.PLAYING:
            raise RuntimeError(f"audio player is not running (status={self.status.value})")
        if connection.is_playing():
            connection.stop()
        tap = PlayerTap(self, max_frames=self._tap_frames)
        with self._lock:
            self._taps[id(connection)] = tap
        try:
            connection.play(tap, after=after)
        except Exception:
            self._release(tap)
            raise
        return tap

    def detach(self, connection: Any) -> bool:
        """Stop playing on one connection. Returns False if it was not attached."""
        with self._lock:
            tap = self._taps.pop(id(connection), None)
        if tap is None:
            return False
        tap.close()
        connection.stop()
        return True

    def stop(self) -> None:
        """Go idle and end playback on every attached connection."""
        self.status = PipelineStatus.IDLE
        with self._lock:
            taps = list(self._taps.values())
            self._taps.clear()
            self._pending.clear()
        for tap in taps:
            tap.close()

    def fail(self) -> None:
        self.status = PipelineStatus.ERROR

    def _release(self, tap: PlayerTap) -> None:
        with self._lock:
            for key, candidate in list(self._taps.items()):
                if candidate is tap:
                    del self._taps[key]


class StreamPipeline:
    """
    Process-wide capture pipeline.

    Build it with StreamPipeline.initialize(device); that validates the
    device, starts the player and starts capture in one step.
    """

    def __init__(self, device: AudioDevice, player: Optional[SharedPlayer] = None):
        self.device = device
        self.player = player or SharedPlayer()
        self.source: Optional[AudioSource] = None
        self.last_error: Optional[BaseException] = None
        self._listeners: list[ErrorListener] = []
        self._started = False
        self._stopped = False

    @classmethod
    def initialize(
        cls,
        device: AudioDevice,
        source_factory: Callable[..., AudioSource] = AudioSource.open,
    ) -> "StreamPipeline":
        """
        Validate the device, wrap capture as the shared player and start it.

        Raises UnsupportedDeviceError before any stream or player exists.
        """
        validate_device(device)
        pipeline = cls(device)
        pipeline.source = source_factory(
            device,
            on_frame=pipeline.player.feed,
            on_error=pipeline._on_capture_error,
        )
        pipeline.start()
        return pipeline

    @property
    def status(self) -> PipelineStatus:
        return self.player.status

    def current_player(self) -> SharedPlayer:
        return self.player

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        if self._started:
            raise RuntimeError("stream pipeline already started")
        if self.source is None:
            raise RuntimeError("stream pipeline has no audio source")
        self._started = True
        self.player.play()
        try:
            self.source.start()
        except Exception:
            self.player.stop()
            raise
        logger.info("Stream pipeline started", device=self.device.name)
        emitter.emit("stream.started", device=self.device.name, device_id=self.device.device_id)

    def stop(self) -> None:
        """Go idle, detach every connection and release the device. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self.player.stop()
        if self.source is not None:
            self.source.close()
        logger.info("Stream pipeline stopped", device=self.device.name)
        emitter.emit("stream.stopped", device=self.device.name)

    def _on_capture_error(self, error: BaseException) -> None:
        self.last_error = error
        self.player.fail()
        logger.error(
            "Stream pipeline error",
            device=self.device.name,
            error=str(error),
            error_type=type(error).__name__,
            attached=self.player.attached_count,
        )
        emitter.emit(
            "stream.error",
            severity=Severity.ERROR,
            device=self.device.name,
            error_type=type(error).__name__,
            detail=str(error),
        )
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Stream error listener failed")

    def playback_finished(self, guild_id: str | int) -> AfterCallback:
        """Build the `after` callback for a voice connection's playback."""

        def _after(error: Optional[Exception]) -> None:
            if error is None:
                logger.debug("Playback ended", guild_id=str(guild_id))
                return
            logger.error(
                "Playback failed on attached connection",
                guild_id=str(guild_id),
                error=str(error),
                error_type=type(error).__name__,
            )

        return _after
