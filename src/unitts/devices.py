"""
Output device catalog backed by sounddevice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import sounddevice as sd

from .errors import DeviceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioDevice:
    id: str
    name: str
    index: int
    is_default: bool
    default_sample_rate: float


def _default_output_index() -> int | None:
    try:
        index = sd.default.device[1]
    except (TypeError, IndexError):
        return None
    return index if isinstance(index, int) and index >= 0 else None


def list_output_devices() -> list[AudioDevice]:
    """Return every device that has at least one output channel."""
    try:
        raw_devices = sd.query_devices()
    except sd.PortAudioError as exc:  # pragma: no cover - hardware dependent
        raise DeviceError(f"Failed to query audio devices: {exc}") from exc

    default_index = _default_output_index()
    devices: list[AudioDevice] = []
    for index, info in enumerate(raw_devices):
        if info.get("max_output_channels", 0) <= 0:
            continue
        devices.append(
            AudioDevice(
                id=str(info["name"]),
                name=str(info["name"]),
                index=index,
                is_default=index == default_index,
                default_sample_rate=float(info.get("default_samplerate", 0.0)),
            )
        )
    logger.debug("Found %s output devices.", len(devices))
    return devices


def find_output_device(device_id: str | int) -> AudioDevice:
    """Look up an output device by id, name or index."""
    wanted = str(device_id)
    for device in list_output_devices():
        if wanted in (device.id, str(device.index)):
            return device
    raise DeviceError(f"Device not found: {device_id}")
