"""
One-shot capture device selection at startup.

Lists input devices in a rich table and prompts for one, unless a device was
preconfigured through AUDIO_DEVICE.
"""

from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from logging_setup import get_logger, Component
from .device import (
    AudioDevice,
    UnsupportedDeviceError,
    find_device,
    format_mismatches,
    list_input_devices,
    validate_device,
)

logger = get_logger(Component.DEVICE_SELECTION)


def render_device_table(devices: Sequence[AudioDevice]) -> Table:
    table = Table(title="Audio input devices")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Sample rate", justify="right")
    table.add_column("Channels", justify="right")
    table.add_column("Supported")
    for device in devices:
        problems = format_mismatches(device)
        table.add_row(
            str(device.device_id),
            device.name,
            f"{device.sample_rate} Hz",
            str(device.channels),
            "[green]yes[/]" if not problems else f"[red]{'; '.join(problems)}[/]",
        )
    return table


def choose_device(
    devices: Optional[Sequence[AudioDevice]] = None,
    preferred: Optional[str] = None,
    console: Optional[Console] = None,
) -> AudioDevice:
    """
    Pick the capture device and validate it.

    Args:
        devices: Candidate devices (default: every PortAudio input device)
        preferred: Device index or exact name; skips the prompt
        console: rich Console used for the table and the prompt

    Raises:
        UnsupportedDeviceError: nothing to choose from, the preferred device
            does not exist, or the chosen device fails format validation
    """
    if devices is None:
        devices = list_input_devices()
    if not devices:
        raise UnsupportedDeviceError("No audio input devices found")

    if preferred:
        device = find_device(preferred, devices)
        if device is None:
            raise UnsupportedDeviceError(f"Audio device {preferred!r} not found")
        logger.info("Using preconfigured audio device", device=device.name, device_id=device.device_id)
        return validate_device(device)

    console = console or Console()
    console.print(render_device_table(devices))
    answer = Prompt.ask(
        "Choose the audio device to stream on Discord",
        choices=[str(device.device_id) for device in devices],
        console=console,
    )
    device = find_device(answer, devices)
    logger.info("Audio device selected", device=device.name, device_id=device.device_id)
    return validate_device(device)
