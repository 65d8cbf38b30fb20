"""
Continuous PCM capture from one input device.

Wraps sounddevice.RawInputStream in the fixed wire format. Captured blocks
are handed to a frame callback on the PortAudio thread; an unexpected end of
the stream is reported through the error callback.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from logging_setup import get_logger, Component
from .device import (
    AudioDevice,
    FRAMES_PER_BLOCK,
    WIRE_CHANNELS,
    WIRE_DTYPE,
    WIRE_SAMPLE_RATE,
    _sounddevice,
    validate_device,
)

logger = get_logger(Component.AUDIO_SOURCE)

FrameCallback = Callable[[bytes], None]
ErrorCallback = Callable[[BaseException], None]


class CaptureError(RuntimeError):
    """The capture stream ended or failed while it was expected to run."""


class AudioSource:
    """
    Exclusive capture handle on one device.

    Use AudioSource.open() rather than the constructor so the format check
    always happens before a stream exists.
    """

    def __init__(
        self,
        device: AudioDevice,
        on_frame: FrameCallback,
        on_error: Optional[ErrorCallback] = None,
        blocksize: int = FRAMES_PER_BLOCK,
    ):
        self.device = device
        self._on_frame = on_frame
        self._on_error = on_error
        self._blocksize = blocksize
        self._stream: Any = None
        self._closing = False
        self._lock = threading.Lock()
        self.overflow_count = 0

    @classmethod
    def open(
        cls,
        device: AudioDevice,
        on_frame: FrameCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> "AudioSource":
        """Validate the device and return an unstarted source. Raises UnsupportedDeviceError."""
        validate_device(device)
        return cls(device, on_frame, on_error)

    @property
    def is_active(self) -> bool:
        return self._stream is not None and not self._closing

    def start(self) -> None:
        """Open the PortAudio stream and begin capture."""
        with self._lock:
            if self._closing:
                raise RuntimeError("capture already closed")
            if self._stream is not None:
                raise RuntimeError("capture already started")
            sd = _sounddevice()
            self._stream = sd.RawInputStream(
                samplerate=WIRE_SAMPLE_RATE,
                channels=WIRE_CHANNELS,
                dtype=WIRE_DTYPE,
                blocksize=self._blocksize,
                device=self.device.device_id,
                callback=self._callback,
                finished_callback=self._finished,
            )
            self._stream.start()
        logger.info(
            "Capture started",
            device=self.device.name,
            device_id=self.device.device_id,
            sample_rate=WIRE_SAMPLE_RATE,
            channels=WIRE_CHANNELS,
        )

    def _callback(self, indata, frames, time_info, status) -> None:
        if status and getattr(status, "input_overflow", False):
            self.overflow_count += 1
            logger.warning("Capture input overflow", overflow_count=self.overflow_count)
        self._on_frame(bytes(indata))

    def _finished(self) -> None:
        if self._closing:
            return
        self._report(CaptureError(f"capture stream on {self.device.name} ended unexpectedly"))

    def _report(self, error: BaseException) -> None:
        logger.error("Capture failed", device=self.device.name, error=str(error))
        if self._on_error is not None:
            self._on_error(error)

    def close(self) -> None:
        """Stop capture and release the device. Idempotent."""
        with self._lock:
            if self._closing:
                return
            self._closing = True
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Capture closed", device=self.device.name)
