"""
Shared fakes for discord.py guilds, channels and voice clients.
"""
import asyncio
from typing import Optional

import discord
import pytest

from audio_stream.device import AudioDevice
from audio_stream.pipeline import StreamPipeline
from observability.event_store import event_store
from voice_control.controller import VoiceController
from voice_control.session import SessionRegistry


class FakeVoiceClient:
    """Mimics the parts of discord.VoiceClient the bridge uses."""

    def __init__(self, channel, disconnect_delay: float = 0.0, disconnect_error: Optional[Exception] = None):
        self.channel = channel
        self.source = None
        self.after = None
        self.connected = True
        self.disconnect_calls = 0
        self.disconnect_delay = disconnect_delay
        self.disconnect_error = disconnect_error

    def is_connected(self) -> bool:
        return self.connected

    def is_playing(self) -> bool:
        return self.source is not None

    def play(self, source, *, after=None):
        if self.source is not None:
            raise discord.ClientException("Already playing audio.")
        self.source = source
        self.after = after

    def stop(self):
        source, self.source = self.source, None
        if source is not None:
            source.cleanup()

    async def disconnect(self, *, force: bool = False):
        self.disconnect_calls += 1
        if self.disconnect_delay:
            await asyncio.sleep(self.disconnect_delay)
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.stop()
        self.connected = False


class FakeVoiceChannel:
    def __init__(self, channel_id: int, name: str, connect_delay: float = 0.0, connect_error: Optional[Exception] = None):
        self.id = channel_id
        self.name = name
        self.type = discord.ChannelType.voice
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.connections: list[FakeVoiceClient] = []

    async def connect(self, *, timeout: float = 60.0, reconnect: bool = True):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        client = FakeVoiceClient(self)
        self.connections.append(client)
        return client


class FakeTextChannel:
    def __init__(self, channel_id: int, name: str):
        self.id = channel_id
        self.name = name
        self.type = discord.ChannelType.text


class FakeGuild:
    def __init__(self, guild_id: int, channels):
        self.id = guild_id
        self.channels = list(channels)

    def get_channel(self, channel_id: int):
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        return None


class FakeReplyTarget:
    def __init__(self):
        self.sent = []

    async def send(self, *, embed=None, content=None):
        self.sent.append(embed if embed is not None else content)


GENERAL_VOICE_ID = 123456789012345678
MUSIC_VOICE_ID = 223456789012345678
TEXT_CHANNEL_ID = 323456789012345678


@pytest.fixture(autouse=True)
def clear_event_store():
    yield
    event_store.clear()


@pytest.fixture
def device():
    return AudioDevice(name="Loopback", device_id=3, sample_rate=48000, channels=2, bit_depth=16)


@pytest.fixture
def pipeline(device):
    """A running pipeline with no capture device behind it."""
    pipeline = StreamPipeline(device)
    pipeline.player.play()
    return pipeline


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def controller(registry, pipeline):
    return VoiceController(registry, pipeline, connect_timeout=1.0)


@pytest.fixture
def guild():
    return FakeGuild(
        1001,
        [
            FakeTextChannel(TEXT_CHANNEL_ID, "general"),
            FakeVoiceChannel(GENERAL_VOICE_ID, "General"),
            FakeVoiceChannel(MUSIC_VOICE_ID, "Music Room"),
        ],
    )


@pytest.fixture
def other_guild():
    return FakeGuild(2002, [FakeVoiceChannel(423456789012345678, "Lounge")])
