from __future__ import annotations

import io
import wave

import numpy as np
import pytest

from unitts.decoder import decode_audio
from unitts.wav_saver import WavSink, encode_wav, to_pcm16


def test_wav_header_integrity(tmp_path):
    wav_path = tmp_path / "test.wav"
    sink = WavSink(wav_path)
    sink.start(16000)
    sink.write(b"\x00\x00" * 1600)  # 0.1s of silence at 16kHz
    sink.close()

    with wave.open(str(wav_path), "rb") as wav_file:
        assert wav_file.getnchannels() == 1
        assert wav_file.getsampwidth() == 2
        assert wav_file.getframerate() == 16000
        assert wav_file.getnframes() == 1600


def test_sink_writes_into_open_stream_at_offset():
    buffer = io.BytesIO()
    buffer.write(b"prefix")
    sink = WavSink(buffer)
    sink.start(8000)
    sink.write_samples(np.zeros(80, dtype=np.float32))
    sink.close()

    with wave.open(io.BytesIO(buffer.getvalue()[len(b"prefix"):]), "rb") as wav_file:
        assert wav_file.getnframes() == 80


def test_to_pcm16_clips_out_of_range():
    pcm = np.frombuffer(to_pcm16(np.array([-2.0, -1.0, 0.0, 0.5, 2.0])), dtype="<i2")
    assert pcm.tolist() == [-32768, -32768, 0, 16384, 32767]


def test_encoded_wav_decodes_back():
    samples = np.linspace(-0.5, 0.5, 400, dtype=np.float32)
    decoded = decode_audio(encode_wav(samples, 8000))

    assert decoded.sample_rate == 8000
    np.testing.assert_allclose(decoded.samples, samples, atol=1 / 32768)


def test_write_rejects_odd_payload(tmp_path):
    sink = WavSink(tmp_path / "odd.wav")
    sink.start(8000)
    with pytest.raises(ValueError):
        sink.write(b"\x00")
    sink.close()


def test_start_rejects_invalid_sample_rate(tmp_path):
    with pytest.raises(ValueError):
        WavSink(tmp_path / "bad.wav").start(0)


def test_write_requires_start(tmp_path):
    with pytest.raises(RuntimeError):
        WavSink(tmp_path / "late.wav").write(b"\x00\x00")
