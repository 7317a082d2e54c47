from __future__ import annotations

import io
import logging
import time

import pytest

from unitts import provider_base
from unitts.devices import AudioDevice
from unitts.errors import (
    InvalidMarkupError,
    NotPlayingError,
    TypeMismatchError,
    UnknownPropertyError,
    UnsupportedOperationError,
)
from unitts.playback import PlaybackEngine, PlaybackState
from unitts.provider_base import AudioProperty, ProviderConfig, validate_ssml

from conftest import StubProvider


class PlainProvider(StubProvider):
    name = "plain"
    supports_ssml = False
    supports_device_selection = False


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_set_property_updates_audio_config(stub_provider):
    stub_provider.set_property("rate", 1.5)
    stub_provider.set_property(AudioProperty.PITCH, 2)
    stub_provider.set_property("volume", 0.5)

    config = stub_provider.audio_config
    assert config.rate == 1.5
    assert config.pitch == 2.0
    assert isinstance(config.pitch, float)
    assert config.volume == 0.5


def test_set_property_rejects_unknown_name(stub_provider):
    with pytest.raises(UnknownPropertyError):
        stub_provider.set_property("tempo", 1.0)


@pytest.mark.parametrize("value", ["fast", None, True])
def test_set_property_rejects_non_numbers(stub_provider, value):
    with pytest.raises(TypeMismatchError):
        stub_provider.set_property("rate", value)
    assert stub_provider.audio_config.rate == 1.0


def test_speak_plays_and_emits_events(stub_provider, fake_sink):
    events: list[str] = []
    stub_provider.connect("onStart", events.append)
    stub_provider.connect("onEnd", events.append)

    stub_provider.speak("Hello world")

    assert stub_provider.requests == [("Hello world", False)]
    assert events[0] == "onStart"
    assert stub_provider.wait_for_completion(timeout=2.0)
    assert _wait_for(lambda: events == ["onStart", "onEnd"])
    assert fake_sink.bindings[0].frames_written == 400


def test_stop_emits_on_end(stub_provider):
    ended: list[str] = []
    stub_provider.connect("onEnd", ended.append)
    stub_provider.speak("Hi")
    stub_provider.stop_audio()

    assert _wait_for(lambda: ended == ["onEnd"])
    assert not stub_provider.is_playing()


def test_connect_rejects_unknown_event(stub_provider):
    with pytest.raises(UnsupportedOperationError):
        stub_provider.connect("onBoundary", lambda event: None)
    with pytest.raises(TypeError):
        stub_provider.connect("onEnd", "not callable")


def test_empty_text_is_rejected(stub_provider):
    with pytest.raises(ValueError):
        stub_provider.speak("   ")
    assert stub_provider.requests == []


def test_speak_ssml_validates_markup(stub_provider):
    stub_provider.speak_ssml("<speak>Hello <break time='1s'/> there</speak>")
    stub_provider.stop_audio()

    assert stub_provider.requests[-1][1] is True
    with pytest.raises(InvalidMarkupError):
        stub_provider.speak_ssml("<speak>unclosed")
    with pytest.raises(InvalidMarkupError):
        stub_provider.speak_ssml("<voice>wrong root</voice>")


def test_ssml_unsupported_after_validation():
    provider = PlainProvider(engine=PlaybackEngine(block_frames=80))
    try:
        with pytest.raises(InvalidMarkupError):
            provider.speak_ssml("")
        with pytest.raises(UnsupportedOperationError):
            provider.speak_ssml("<speak>Hello</speak>")
        assert provider.requests == []
    finally:
        provider.close()


def test_validate_ssml_accepts_namespaced_root():
    root = validate_ssml(
        '<speak version="1.1" xmlns="http://www.w3.org/2001/10/synthesis">Hi</speak>'
    )
    assert root.tag.endswith("speak")


def test_synth_to_file_writes_encoded_audio(stub_provider, tmp_path):
    target = stub_provider.synth_to_file("Save me", tmp_path / "out" / "speech.wav")

    assert target.read_bytes() == stub_provider.audio
    assert stub_provider.requests == [("Save me", False)]


def test_synth_ssml_to_file(stub_provider, tmp_path):
    target = stub_provider.synth_ssml_to_file("<speak>Saved</speak>", tmp_path / "s.wav")

    assert target.exists()
    assert stub_provider.requests == [("<speak>Saved</speak>", True)]


def test_speak_streamed_writes_all_bytes(stub_provider):
    stub_provider.audio = bytes(range(256)) * 40
    out = io.BytesIO()

    written = stub_provider.speak_streamed("Stream me", out)

    assert written == len(stub_provider.audio)
    assert out.getvalue() == stub_provider.audio


def test_pause_without_playback_raises(stub_provider):
    with pytest.raises(NotPlayingError):
        stub_provider.pause_audio()
    stub_provider.stop_audio()


def test_set_output_device_resolves_through_catalog(stub_provider, monkeypatch):
    lookups: list[object] = []

    def fake_find(device_id):
        lookups.append(device_id)
        return AudioDevice(
            id="Speakers", name="Speakers", index=5, is_default=False, default_sample_rate=48_000
        )

    monkeypatch.setattr(provider_base, "find_output_device", fake_find)

    stub_provider.set_output_device("Speakers")
    assert lookups == ["Speakers"]
    assert stub_provider.engine.device == 5
    assert stub_provider.audio_config.device_id == "Speakers"

    stub_provider.set_output_device(None)
    assert lookups == ["Speakers"]
    assert stub_provider.engine.device is None


def test_set_output_device_unsupported():
    provider = PlainProvider(engine=PlaybackEngine(block_frames=80))
    with pytest.raises(UnsupportedOperationError):
        provider.set_output_device(1)


def test_check_credentials_absorbs_errors():
    class BrokenProvider(StubProvider):
        def verify_credentials(self) -> bool:
            raise RuntimeError("backend unreachable")

    assert BrokenProvider().check_credentials() is False
    assert StubProvider().check_credentials() is True


def test_context_manager_closes_engine(fake_sink):
    engine = PlaybackEngine(fake_sink, block_frames=80)
    with StubProvider(ProviderConfig(voice_id="v1"), engine=engine) as provider:
        assert provider.config.voice_id == "v1"

    assert engine.state is PlaybackState.STOPPED
    assert fake_sink.released


def test_synthesis_events_are_logged(stub_provider, caplog):
    with caplog.at_level(logging.INFO, logger="unitts"):
        stub_provider.speak_streamed("Logged", io.BytesIO())

    assert "[synthesis_start]" in caplog.text
    assert "[synthesis_complete]" in caplog.text


def test_playback_events_carry_provider_and_device(fake_sink, caplog):
    engine = PlaybackEngine(fake_sink, block_frames=80)
    engine.set_output_device(2)
    with StubProvider(engine=engine) as provider:
        with caplog.at_level(logging.INFO, logger="unitts"):
            provider.speak("Logged playback")
            assert provider.wait_for_completion(timeout=2.0)
            assert _wait_for(lambda: "[playback_end]" in caplog.text)

    start = next(line for line in caplog.messages if line.startswith("[playback_start]"))
    end = next(line for line in caplog.messages if line.startswith("[playback_end]"))
    for line in (start, end):
        assert "provider=stub" in line
        assert "device=2" in line
    synthesis = next(line for line in caplog.messages if line.startswith("[synthesis_start]"))
    assert "provider=stub" in synthesis
