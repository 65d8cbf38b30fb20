"""
Capture device descriptors and wire-format validation.

Discord expects raw audio to be 2-channel, signed 16-bit, 48000 Hz.
A device that cannot deliver exactly that is rejected at startup; the
bridge never resamples or converts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

WIRE_SAMPLE_RATE = 48000
WIRE_CHANNELS = 2
WIRE_BIT_DEPTH = 16
WIRE_DTYPE = "int16"

# One Discord voice frame: 20 ms of stereo 16-bit PCM.
FRAME_DURATION_MS = 20
FRAMES_PER_BLOCK = WIRE_SAMPLE_RATE * FRAME_DURATION_MS // 1000
FRAME_SIZE = FRAMES_PER_BLOCK * WIRE_CHANNELS * (WIRE_BIT_DEPTH // 8)


class UnsupportedDeviceError(Exception):
    """The capture device cannot produce the wire format. Fatal at startup."""

    def __init__(self, message: str, device: Optional["AudioDevice"] = None):
        super().__init__(message)
        self.device = device


def _sounddevice():
    # PortAudio is loaded on first import; keep it out of module import time.
    import sounddevice

    return sounddevice


@dataclass(frozen=True)
class AudioDevice:
    """Identity and capabilities of one capture device."""

    name: str
    device_id: int
    sample_rate: int
    channels: int
    bit_depth: int = WIRE_BIT_DEPTH

    @classmethod
    def from_portaudio(cls, info: Mapping[str, Any], index: Optional[int] = None) -> "AudioDevice":
        """
        Build a descriptor from a sounddevice.query_devices() entry.

        PortAudio reports the maximum channel count; the bridge opens at most
        two channels, so a device with more inputs still qualifies.
        """
        device_id = info.get("index", index)
        if device_id is None:
            raise ValueError("device index is required")
        return cls(
            name=str(info.get("name", "") or "").strip(),
            device_id=int(device_id),
            sample_rate=int(round(float(info.get("default_samplerate", 0) or 0))),
            channels=min(int(info.get("max_input_channels", 0) or 0), WIRE_CHANNELS),
            bit_depth=WIRE_BIT_DEPTH,
        )

    def label(self) -> str:
        return f"{self.name} ({self.sample_rate} Hz, {self.channels} ch)"


def format_mismatches(device: AudioDevice) -> list[str]:
    """Return a human-readable entry for every wire-format field the device violates."""
    problems = []
    if device.sample_rate != WIRE_SAMPLE_RATE:
        problems.append(f"sample rate {device.sample_rate} Hz != {WIRE_SAMPLE_RATE} Hz")
    if device.channels != WIRE_CHANNELS:
        problems.append(f"channels {device.channels} != {WIRE_CHANNELS}")
    if device.bit_depth != WIRE_BIT_DEPTH:
        problems.append(f"bit depth {device.bit_depth} != {WIRE_BIT_DEPTH}")
    return problems


def validate_device(device: AudioDevice) -> AudioDevice:
    """Raise UnsupportedDeviceError unless the device matches the wire format exactly."""
    problems = format_mismatches(device)
    if problems:
        raise UnsupportedDeviceError(
            f"{device.name} is not a supported audio device: {', '.join(problems)}",
            device=device,
        )
    return device


def list_input_devices() -> list[AudioDevice]:
    """Enumerate every PortAudio device with at least one input channel."""
    sd = _sounddevice()
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if int(info.get("max_input_channels", 0) or 0) <= 0:
            continue
        devices.append(AudioDevice.from_portaudio(info, index=index))
    return devices


def find_device(ref: str, devices: Iterable[AudioDevice]) -> Optional[AudioDevice]:
    """
    Find a device by PortAudio index or exact name.

    A numeric ref is tried as an index first, then as a name.
    """
    devices = list(devices)
    ref = ref.strip()
    if ref.isdigit():
        for device in devices:
            if device.device_id == int(ref):
                return device
    for device in devices:
        if device.name == ref:
            return device
    return None
