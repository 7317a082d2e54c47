"""
Decoding of encoded audio byte streams into normalized mono PCM.

libsndfile (through soundfile) sniffs the container from its header, so MPEG
audio, WAV, FLAC and OGG payloads are all accepted. Samples are always read as
signed 16-bit integers and scaled by 1/32768, which keeps the float output
identical to what PCM16-based vendors produce.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass

import numpy as np
import soundfile

from .errors import DecodeError, EmptyAudioError

logger = logging.getLogger(__name__)

PCM16_SCALE = 32768.0

# Placeholder data sizes written by encoders that cannot seek back (pipes).
_STREAMING_DATA_SIZES = (0, 0xFFFFFFFF)
_STREAMING_DATA_FLOOR = 0x7FFF0000


@dataclass(frozen=True)
class DecodedAudio:
    """Mono float32 samples in [-1.0, 1.0) plus their sample rate."""

    samples: np.ndarray
    sample_rate: float

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate


def decode_audio(data: bytes | bytearray | memoryview) -> DecodedAudio:
    """Decode an encoded audio byte stream.

    Raises:
        DecodeError: empty input, unrecognised container, or a decode failure.
        EmptyAudioError: the stream parsed but held no frames.
    """
    if not data:
        raise DecodeError("Audio stream is empty.")

    try:
        with soundfile.SoundFile(io.BytesIO(bytes(data))) as sf:
            sample_rate = float(sf.samplerate)
            channels = sf.channels
            pcm = sf.read(dtype="int16", always_2d=True)
    except (soundfile.SoundFileRuntimeError, RuntimeError, TypeError, ValueError) as exc:
        raise DecodeError(f"Unable to decode audio stream: {exc}") from exc

    if sample_rate <= 0:
        raise DecodeError(f"Decoded stream reports invalid sample rate {sample_rate}.")

    if pcm.shape[0] == 0:
        raise EmptyAudioError("Audio stream decoded to zero samples.")

    _check_truncation(bytes(data), pcm.shape[0])

    samples = pcm.astype(np.float32) / PCM16_SCALE
    if channels > 1:
        logger.debug("Down-mixing %s channels to mono.", channels)
        samples = samples.mean(axis=1, dtype=np.float32)
    else:
        samples = samples[:, 0]

    samples = np.ascontiguousarray(samples, dtype=np.float32)
    logger.debug(
        "Decoded %s frames at %.0f Hz (%.2fs).",
        samples.shape[0],
        sample_rate,
        samples.shape[0] / sample_rate,
    )
    return DecodedAudio(samples=samples, sample_rate=sample_rate)


# ---------------------------------------------------------------------- #
# Truncation checks
#
# libsndfile returns whatever frames it can read from a cut-off stream, so
# the container's own length fields are compared against what arrived.


def _check_truncation(raw: bytes, frames: int) -> None:
    missing = _wav_missing_bytes(raw)
    if missing:
        raise DecodeError(f"WAV stream is truncated ({missing} bytes of sample data missing).")

    declared = _mpeg_declared_samples(raw)
    if declared is not None:
        expected, samples_per_frame = declared
        # Encoder delay and padding trim up to a few frames of the declared length.
        if frames < expected - 3 * samples_per_frame:
            raise DecodeError(
                f"MPEG stream is truncated (decoded {frames} of {expected} frames)."
            )


def _wav_missing_bytes(raw: bytes) -> int:
    """Bytes the RIFF data chunk declares beyond the end of `raw`."""
    if len(raw) < 12 or raw[:4] != b"RIFF" or raw[8:12] != b"WAVE":
        return 0

    offset = 12
    while offset + 8 <= len(raw):
        chunk_id = raw[offset : offset + 4]
        (size,) = struct.unpack_from("<I", raw, offset + 4)
        body = offset + 8
        if chunk_id == b"data":
            if size in _STREAMING_DATA_SIZES or size >= _STREAMING_DATA_FLOOR:
                return 0
            return max(0, size - (len(raw) - body))
        offset = body + size + (size & 1)
    return 0


def _mpeg_declared_samples(raw: bytes) -> tuple[int, int] | None:
    """Return (declared frames, samples per MPEG frame) from a Xing/Info header."""
    offset = 0
    if raw[:3] == b"ID3" and len(raw) >= 10:
        tag_size = (raw[6] << 21) | (raw[7] << 14) | (raw[8] << 7) | raw[9]
        offset = 10 + tag_size + (10 if raw[5] & 0x10 else 0)

    if len(raw) < offset + 4 or raw[offset] != 0xFF or raw[offset + 1] & 0xE0 != 0xE0:
        return None

    version = (raw[offset + 1] >> 3) & 0x03
    layer = (raw[offset + 1] >> 1) & 0x03
    if version == 1 or layer == 0:
        return None
    if layer == 3:
        samples_per_frame = 384
    elif layer == 2 or version == 3:
        samples_per_frame = 1152
    else:
        samples_per_frame = 576

    # The tag sits right after the side info, at most 32 bytes past the header.
    window_start = offset + 4
    window = raw[window_start : window_start + 40]
    for tag in (b"Xing", b"Info"):
        position = window.find(tag)
        if position < 0:
            continue
        start = window_start + position
        if len(raw) < start + 12:
            return None
        (flags,) = struct.unpack_from(">I", raw, start + 4)
        if not flags & 0x01:
            return None
        (frame_count,) = struct.unpack_from(">I", raw, start + 8)
        return frame_count * samples_per_frame, samples_per_frame
    return None
