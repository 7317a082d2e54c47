"""
Output device sink implemented with sounddevice.

A sink hands out one `OutputBinding` per playback session. Bindings accept
mono float32 blocks and expose start/stop primitives; exceptions from
PortAudio are mapped to `DeviceError` so the engine can react consistently.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
import sounddevice as sd

from .errors import DeviceError

logger = logging.getLogger(__name__)


class OutputBinding(Protocol):
    """An open output stream owned by exactly one playback session."""

    def start(self) -> None: ...

    def write(self, block: np.ndarray) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


class DeviceSink(Protocol):
    """Factory for output bindings on a (possibly selectable) device."""

    device: int | str | None

    def open(self, sample_rate: float, frames: int) -> OutputBinding: ...

    def release(self) -> None: ...


class SoundDeviceBinding:
    """Blocking sounddevice OutputStream wrapped as an `OutputBinding`."""

    def __init__(self, stream: sd.OutputStream) -> None:
        self._stream = stream
        self._closed = False

    def start(self) -> None:
        try:
            self._stream.start()
        except sd.PortAudioError as exc:  # pragma: no cover - hardware dependent
            logger.error("Failed to start audio stream: %s", exc)
            raise DeviceError(str(exc)) from exc

    def write(self, block: np.ndarray) -> None:
        try:
            self._stream.write(np.ascontiguousarray(block.reshape(-1, 1), dtype=np.float32))
        except sd.PortAudioError as exc:  # pragma: no cover - hardware dependent
            logger.error("Audio stream write failed: %s", exc)
            raise DeviceError(str(exc)) from exc

    def stop(self) -> None:
        try:
            if self._stream.active:
                self._stream.stop()
        except sd.PortAudioError as exc:  # pragma: no cover - hardware dependent
            logger.error("Failed to stop audio stream: %s", exc)
            raise DeviceError(str(exc)) from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._stream.active:
                self._stream.abort()
            self._stream.close()
            logger.debug("Audio stream closed.")
        except sd.PortAudioError as exc:  # pragma: no cover - hardware dependent
            logger.error("Failed to close audio stream: %s", exc)
            raise DeviceError(str(exc)) from exc


class SoundDeviceSink:
    """Opens mono float32 output streams on a sounddevice output device."""

    def __init__(
        self,
        *,
        device: int | str | None = None,
        blocksize: int = 0,
        latency: str | float | None = None,
    ) -> None:
        self.device = device
        self._blocksize = blocksize
        self._latency = latency
        self._released = False

    def open(self, sample_rate: float, frames: int) -> SoundDeviceBinding:
        if self._released:
            raise DeviceError("Audio sink has been released.")

        try:
            stream = sd.OutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._blocksize,
                device=self.device,
                latency=self._latency,
            )
        except (sd.PortAudioError, ValueError) as exc:  # pragma: no cover - hardware dependent
            logger.error("Failed to open audio stream: %s", exc)
            raise DeviceError(str(exc)) from exc

        logger.debug(
            "Opened output stream (sample_rate=%s, frames=%s, device=%s)",
            sample_rate,
            frames,
            stream.device,
        )
        return SoundDeviceBinding(stream)

    def release(self) -> None:
        """Refuse further bindings; PortAudio itself stays owned by sounddevice."""
        if not self._released:
            self._released = True
            logger.debug("Audio sink released.")
