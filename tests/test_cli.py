from __future__ import annotations

import io
import types
from contextlib import redirect_stdout

import pytest

from unitts import cli
from unitts.devices import AudioDevice
from unitts.errors import ProviderAuthError, ProviderError, ProviderRateLimitError
from unitts.playback import PlaybackEngine
from unitts.registry import ProviderRegistry

from conftest import FakeSink, StubProvider


@pytest.fixture
def stub_registry():
    registry = ProviderRegistry()
    registry.created = []
    registry.sinks = []

    def make_stub(config):
        sink = FakeSink()
        provider = StubProvider(config, engine=PlaybackEngine(sink, block_frames=80))
        registry.created.append(provider)
        registry.sinks.append(sink)
        return provider

    registry.register("stub", make_stub)
    return registry


def _raising_registry(exc: Exception) -> ProviderRegistry:
    class FailingProvider(StubProvider):
        def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
            raise exc

    registry = ProviderRegistry()
    registry.register(
        "stub", lambda config: FailingProvider(config, engine=PlaybackEngine(FakeSink()))
    )
    return registry


def test_cli_requires_text(stub_registry):
    dummy_stdout = io.StringIO()
    with redirect_stdout(dummy_stdout):
        exit_code = cli.main(["-p", "stub"], registry=stub_registry)
    assert exit_code == 2


def test_cli_speaks_positional_text(stub_registry):
    exit_code = cli.main(["-p", "stub", "--rate", "1.5", "Hello CLI"], registry=stub_registry)

    assert exit_code == 0
    (provider,) = stub_registry.created
    assert provider.requests == [("Hello CLI", False)]
    assert provider.audio_config.rate == 1.5
    assert stub_registry.sinks[0].bindings[0].frames_written == 400


def test_cli_reads_from_stdin(monkeypatch, stub_registry):
    class FakeStdin(io.StringIO):
        def isatty(self) -> bool:
            return False

    fake_sys = types.SimpleNamespace(stdin=FakeStdin("Hello from stdin"), stderr=io.StringIO())
    monkeypatch.setattr(cli, "sys", fake_sys)

    exit_code = cli.main(["-p", "stub"], registry=stub_registry)

    assert exit_code == 0
    assert stub_registry.created[0].requests == [("Hello from stdin", False)]


def test_cli_reads_from_file(tmp_path, stub_registry):
    text_file = tmp_path / "input.txt"
    text_file.write_text("Hello from a file", encoding="utf-8")

    exit_code = cli.main(["-p", "stub", "--file", str(text_file)], registry=stub_registry)

    assert exit_code == 0
    assert stub_registry.created[0].requests == [("Hello from a file", False)]


def test_cli_writes_output_file(tmp_path, stub_registry):
    target = tmp_path / "speech.wav"

    exit_code = cli.main(
        ["-p", "stub", "--output", str(target), "Save this"], registry=stub_registry
    )

    assert exit_code == 0
    provider = stub_registry.created[0]
    assert target.read_bytes() == provider.audio
    assert stub_registry.sinks[0].bindings == []


def test_cli_streams_to_stdout(monkeypatch, stub_registry):
    out = io.BytesIO()
    fake_sys = types.SimpleNamespace(
        stdout=types.SimpleNamespace(buffer=out), stderr=io.StringIO()
    )
    monkeypatch.setattr(cli, "sys", fake_sys)

    exit_code = cli.main(
        ["-p", "stub", "--ssml", "-o", "-", "<speak>Piped</speak>"], registry=stub_registry
    )

    assert exit_code == 0
    assert out.getvalue() == stub_registry.created[0].audio
    assert stub_registry.created[0].requests == [("<speak>Piped</speak>", True)]


def test_cli_rejects_invalid_ssml(stub_registry, capsys):
    exit_code = cli.main(["-p", "stub", "--ssml", "<speak>broken"], registry=stub_registry)

    assert exit_code == 2
    assert "not well-formed" in capsys.readouterr().err


def test_cli_unknown_provider(stub_registry, capsys):
    exit_code = cli.main(["-p", "polly", "Hello"], registry=stub_registry)

    assert exit_code == 2
    assert "Known providers: stub" in capsys.readouterr().err


def test_cli_invalid_configuration(stub_registry):
    assert cli.main(["-p", "stub", "--rate", "0", "Hello"], registry=stub_registry) == 2


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ProviderAuthError("bad key", provider="stub"), 2),
        (ProviderRateLimitError(provider="stub", retry_after=2.0), 3),
        (ProviderError("boom", provider="stub"), 3),
    ],
)
def test_cli_maps_provider_errors_to_exit_codes(exc, expected):
    assert cli.main(["-p", "stub", "Hello"], registry=_raising_registry(exc)) == expected


def test_cli_playback_failure_exit_code():
    registry = ProviderRegistry()
    registry.register(
        "stub", lambda config: StubProvider(config, engine=PlaybackEngine(FakeSink(fail_open=True)))
    )

    assert cli.main(["-p", "stub", "Hello"], registry=registry) == 4


def test_cli_lists_voices(stub_registry):
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        exit_code = cli.main(["-p", "stub", "--list-voices"], registry=stub_registry)

    assert exit_code == 0
    output = buffer.getvalue()
    assert "- v1: Ava (en-US, female)" in output
    assert "- v2: Liam (en-GB, male)" in output


def test_cli_lists_providers(stub_registry):
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        exit_code = cli.main(["--list-providers"], registry=stub_registry)

    assert exit_code == 0
    assert buffer.getvalue().split() == ["stub"]


def test_cli_lists_devices(monkeypatch):
    monkeypatch.setattr(
        cli,
        "list_output_devices",
        lambda: [
            AudioDevice(id="Speakers", name="Speakers", index=3, is_default=True, default_sample_rate=48000.0)
        ],
    )
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        exit_code = cli.main(["--list-devices"])

    assert exit_code == 0
    assert "- [3] Speakers (default)" in buffer.getvalue()


def test_cli_match_voice_recreates_provider(stub_registry):
    exit_code = cli.main(
        ["-p", "stub", "--voice", "liam", "--match-voice", "Hello"], registry=stub_registry
    )

    assert exit_code == 0
    first, second = stub_registry.created
    assert first.config.voice_id == "liam"
    assert second.config.voice_id == "v2"
    assert first.requests == []
    assert second.requests == [("Hello", False)]


def test_cli_match_voice_without_match(stub_registry):
    exit_code = cli.main(
        ["-p", "stub", "--voice", "zzzzzz", "--match-voice", "Hello"], registry=stub_registry
    )
    assert exit_code == 2
