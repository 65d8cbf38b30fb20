"""
Device descriptor, enumeration and capture tests.

sounddevice is replaced by a fake module so no PortAudio install is needed.
"""
import types

import pytest

import audio_stream.device as device_module
import audio_stream.source as source_module
from audio_stream.device import (
    AudioDevice,
    FRAMES_PER_BLOCK,
    FRAME_SIZE,
    UnsupportedDeviceError,
    find_device,
    format_mismatches,
    list_input_devices,
    validate_device,
)
from audio_stream.source import AudioSource, CaptureError


class FakeRawInputStream:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = False
        self.stopped = False
        self.closed = False
        FakeRawInputStream.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True
        # PortAudio fires the finished callback when a stream stops
        self.kwargs["finished_callback"]()

    def close(self):
        self.closed = True


PORTAUDIO_DEVICES = [
    {"name": "Built-in Output", "index": 0, "max_input_channels": 0, "default_samplerate": 48000.0},
    {"name": "Loopback", "index": 1, "max_input_channels": 2, "default_samplerate": 48000.0},
    {"name": "USB Mic", "index": 2, "max_input_channels": 1, "default_samplerate": 44100.0},
    {"name": "Interface 8ch", "index": 3, "max_input_channels": 8, "default_samplerate": 48000.0},
]


@pytest.fixture
def fake_sd(monkeypatch):
    FakeRawInputStream.instances = []
    fake = types.SimpleNamespace(
        RawInputStream=FakeRawInputStream,
        query_devices=lambda: PORTAUDIO_DEVICES,
    )
    monkeypatch.setattr(device_module, "_sounddevice", lambda: fake)
    monkeypatch.setattr(source_module, "_sounddevice", lambda: fake)
    return fake


class TestAudioDevice:
    def test_from_portaudio_caps_channels(self):
        device = AudioDevice.from_portaudio(PORTAUDIO_DEVICES[3])
        assert device.channels == 2
        assert device.sample_rate == 48000
        assert device.bit_depth == 16

    def test_from_portaudio_uses_position_without_index(self):
        info = {"name": "Mic", "max_input_channels": 2, "default_samplerate": 48000.0}
        assert AudioDevice.from_portaudio(info, index=7).device_id == 7

    def test_validate_accepts_wire_format(self):
        device = AudioDevice("Loopback", 1, 48000, 2, 16)
        assert validate_device(device) is device

    def test_validate_rejects_44100(self):
        device = AudioDevice("USB Mic", 2, 44100, 2, 16)
        with pytest.raises(UnsupportedDeviceError) as exc:
            validate_device(device)
        assert "USB Mic is not a supported audio device" in str(exc.value)
        assert exc.value.device is device

    def test_mismatches_lists_every_field(self):
        problems = format_mismatches(AudioDevice("Odd", 5, 44100, 1, 24))
        assert len(problems) == 3

    def test_frame_size_is_20ms_stereo_pcm16(self):
        assert FRAMES_PER_BLOCK == 960
        assert FRAME_SIZE == 3840


class TestEnumeration:
    def test_lists_only_input_devices(self, fake_sd):
        names = [d.name for d in list_input_devices()]
        assert names == ["Loopback", "USB Mic", "Interface 8ch"]

    def test_find_by_index_and_name(self, fake_sd):
        devices = list_input_devices()
        assert find_device("3", devices).name == "Interface 8ch"
        assert find_device("USB Mic", devices).device_id == 2
        assert find_device("usb mic", devices) is None


class TestAudioSource:
    def test_open_rejects_unsupported_device(self, fake_sd):
        with pytest.raises(UnsupportedDeviceError):
            AudioSource.open(AudioDevice("USB Mic", 2, 44100, 1), on_frame=lambda b: None)
        assert FakeRawInputStream.instances == []

    def test_start_opens_stream_in_wire_format(self, fake_sd):
        source = AudioSource.open(AudioDevice("Loopback", 1, 48000, 2), on_frame=lambda b: None)
        source.start()

        stream = FakeRawInputStream.instances[0]
        assert stream.started
        assert stream.kwargs["samplerate"] == 48000
        assert stream.kwargs["channels"] == 2
        assert stream.kwargs["dtype"] == "int16"
        assert stream.kwargs["blocksize"] == 960
        assert stream.kwargs["device"] == 1
        assert source.is_active

    def test_callback_forwards_bytes(self, fake_sd):
        frames = []
        source = AudioSource.open(AudioDevice("Loopback", 1, 48000, 2), on_frame=frames.append)
        source.start()

        callback = FakeRawInputStream.instances[0].kwargs["callback"]
        callback(bytearray(b"\x01" * FRAME_SIZE), 960, None, None)

        assert frames == [b"\x01" * FRAME_SIZE]

    def test_overflow_is_counted(self, fake_sd):
        source = AudioSource.open(AudioDevice("Loopback", 1, 48000, 2), on_frame=lambda b: None)
        source.start()

        callback = FakeRawInputStream.instances[0].kwargs["callback"]
        callback(b"", 0, None, types.SimpleNamespace(input_overflow=True))

        assert source.overflow_count == 1

    def test_unexpected_end_is_reported(self, fake_sd):
        errors = []
        source = AudioSource.open(
            AudioDevice("Loopback", 1, 48000, 2), on_frame=lambda b: None, on_error=errors.append
        )
        source.start()

        FakeRawInputStream.instances[0].kwargs["finished_callback"]()

        assert len(errors) == 1
        assert isinstance(errors[0], CaptureError)

    def test_close_is_quiet_and_idempotent(self, fake_sd):
        errors = []
        source = AudioSource.open(
            AudioDevice("Loopback", 1, 48000, 2), on_frame=lambda b: None, on_error=errors.append
        )
        source.start()

        source.close()
        source.close()

        stream = FakeRawInputStream.instances[0]
        assert stream.stopped and stream.closed
        assert errors == []
        assert not source.is_active

    def test_cannot_restart_after_close(self, fake_sd):
        source = AudioSource.open(AudioDevice("Loopback", 1, 48000, 2), on_frame=lambda b: None)
        source.close()
        with pytest.raises(RuntimeError, match="closed"):
            source.start()
