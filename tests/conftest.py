from __future__ import annotations

import math
import threading
import time

import numpy as np
import pytest

from unitts.errors import DeviceError
from unitts.playback import PlaybackEngine
from unitts.provider_base import TTSProvider, Voice
from unitts.wav_saver import encode_wav


def sine_wave(duration_sec: float, sample_rate: int, frequency_hz: float = 440.0) -> np.ndarray:
    n = np.arange(int(duration_sec * sample_rate), dtype=np.float32)
    return 0.2 * np.sin(2 * math.pi * frequency_hz * n / sample_rate)  # prevent clipping


def wav_bytes(duration_sec: float = 0.5, sample_rate: int = 8_000) -> bytes:
    return encode_wav(sine_wave(duration_sec, sample_rate), sample_rate)


class FakeBinding:
    """Paces writes in real time like a blocking output stream."""

    def __init__(self, sample_rate: float, *, fail_start: bool = False) -> None:
        self.sample_rate = sample_rate
        self.fail_start = fail_start
        self.frames_written = 0
        self.writes = 0
        self.starts = 0
        self.stops = 0
        self.closed = False
        self.active = False
        self._lock = threading.Lock()

    def start(self) -> None:
        if self.fail_start:
            raise DeviceError("start failed")
        with self._lock:
            self.starts += 1
            self.active = True

    def write(self, block: np.ndarray) -> None:
        assert not self.closed, "write after close"
        time.sleep(len(block) / self.sample_rate)
        with self._lock:
            self.writes += 1
            self.frames_written += len(block)

    def stop(self) -> None:
        with self._lock:
            self.stops += 1
            self.active = False

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self.active = False


class FakeSink:
    def __init__(self, *, fail_open: bool = False, fail_start: bool = False) -> None:
        self.device = None
        self.fail_open = fail_open
        self.fail_start = fail_start
        self.bindings: list[FakeBinding] = []
        self.opened_devices: list[object] = []
        self.released = False

    def open(self, sample_rate: float, frames: int) -> FakeBinding:
        if self.fail_open:
            raise DeviceError("no such device")
        binding = FakeBinding(sample_rate, fail_start=self.fail_start)
        self.bindings.append(binding)
        self.opened_devices.append(self.device)
        return binding

    def release(self) -> None:
        self.released = True


class StubProvider(TTSProvider):
    name = "stub"
    supports_ssml = True
    supports_device_selection = True

    def __init__(self, config=None, *, audio: bytes | None = None, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self.audio = audio if audio is not None else wav_bytes(0.05)
        self.requests: list[tuple[str, bool]] = []

    def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
        self.requests.append((text, ssml))
        return self.audio

    def get_voices(self) -> list[Voice]:
        return [
            Voice(id="v1", name="Ava", language="en-US", gender="female", provider=self.name),
            Voice(id="v2", name="Liam", language="en-GB", gender="male", provider=self.name),
        ]

    def verify_credentials(self) -> bool:
        return True


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def engine(fake_sink):
    playback_engine = PlaybackEngine(fake_sink, block_frames=80)
    yield playback_engine
    playback_engine.close()


@pytest.fixture
def stub_provider(fake_sink):
    provider = StubProvider(engine=PlaybackEngine(fake_sink, block_frames=80))
    yield provider
    provider.close()
