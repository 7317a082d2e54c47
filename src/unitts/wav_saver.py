"""
Streaming WAV writer for normalized mono audio.

Float samples in [-1.0, 1.0) are clipped and scaled to PCM16 before writing.
The sink writes either to a path or to an already-open binary stream.
"""

from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import BinaryIO

import numpy as np


def to_pcm16(samples: np.ndarray) -> bytes:
    """Scale normalized float samples to little-endian PCM16 bytes."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 32767 / 32768)
    return (clipped * 32768.0).astype("<i2").tobytes()


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Return a complete in-memory WAV file holding `samples`."""
    buffer = io.BytesIO()
    sink = WavSink(buffer)
    sink.start(sample_rate)
    sink.write_samples(samples)
    sink.close()
    return buffer.getvalue()


class WavSink:
    """Incrementally writes PCM16 mono audio to a WAV file or stream."""

    def __init__(self, target: str | Path | BinaryIO) -> None:
        if isinstance(target, (str, Path)):
            self.path: Path | None = Path(target)
            self._target: BinaryIO | None = None
        else:
            self.path = None
            self._target = target
        self._fh: BinaryIO | None = None
        self._owns_handle = False
        self._sample_rate: int | None = None
        self._bytes_written: int = 0
        self._header_offset: int = 0

    def start(self, sample_rate: int) -> None:
        if self._fh is not None:
            raise RuntimeError("WavSink already started.")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive.")
        self._sample_rate = int(sample_rate)
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("wb")
            self._owns_handle = True
        else:
            self._fh = self._target
        self._header_offset = self._fh.tell()
        self._write_header_placeholder(self._sample_rate)

    def write(self, pcm_bytes: bytes) -> None:
        if self._fh is None or self._sample_rate is None:
            raise RuntimeError("WavSink must be started before writing.")
        if not pcm_bytes:
            return
        if len(pcm_bytes) % 2 != 0:
            raise ValueError("PCM16 payload length must be even (2 bytes per sample).")
        self._fh.write(pcm_bytes)
        self._bytes_written += len(pcm_bytes)

    def write_samples(self, samples: np.ndarray) -> None:
        self.write(to_pcm16(samples))

    def close(self) -> None:
        if self._fh is None:
            return
        self._finalise_header()
        if self._owns_handle:
            self._fh.close()
        self._fh = None
        self._owns_handle = False
        self._sample_rate = None
        self._bytes_written = 0

    # ------------------------------------------------------------------ #
    # Internal helpers

    def _write_header_placeholder(self, sample_rate: int) -> None:
        assert self._fh is not None
        # RIFF header
        self._fh.write(b"RIFF")
        self._fh.write(struct.pack("<I", 0))  # Placeholder for chunk size
        self._fh.write(b"WAVE")
        # fmt chunk
        self._fh.write(b"fmt ")
        self._fh.write(struct.pack("<I", 16))
        self._fh.write(struct.pack("<HHIIHH", 1, 1, sample_rate, sample_rate * 2, 2, 16))
        # data chunk header
        self._fh.write(b"data")
        self._fh.write(struct.pack("<I", 0))  # Placeholder for data size

    def _finalise_header(self) -> None:
        assert self._fh is not None
        data_chunk_size = self._bytes_written
        riff_chunk_size = 36 + data_chunk_size

        self._fh.seek(self._header_offset + 4)
        self._fh.write(struct.pack("<I", riff_chunk_size))
        self._fh.seek(self._header_offset + 40)
        self._fh.write(struct.pack("<I", data_chunk_size))
        self._fh.seek(0, 2)
