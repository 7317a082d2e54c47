"""
Provider abstraction for text-to-speech backends.

Every backend subclasses `TTSProvider` and implements three hooks:
`synthesize()`, `get_voices()` and `verify_credentials()`. Everything else
(playback control, file and stream output, SSML validation, the validated
property setter and event callbacks) is shared here so behaviour is the same
across vendors.
"""

from __future__ import annotations

import abc
import enum
import logging
import numbers
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, ClassVar, Mapping

from .devices import find_output_device
from .errors import (
    InvalidMarkupError,
    TypeMismatchError,
    UnknownPropertyError,
    UnsupportedOperationError,
)
from .logging_utils import EventLogger, create_event_logger
from .playback import PlaybackEngine

logger = logging.getLogger(__name__)

SSML_ROOT_TAG = "speak"
STREAM_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class ProviderConfig:
    """Construction parameters for a provider. Never mutated after creation."""

    api_key: str | None = None
    region: str | None = None
    language_code: str | None = None
    voice_id: str | None = None
    output_format: str | None = None
    engine: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def option(self, name: str, default: Any = None) -> Any:
        return self.options.get(name, default)


@dataclass
class AudioConfig:
    """Runtime speech knobs; 1.0 means unmodified."""

    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    device_id: int | str | None = None


@dataclass(frozen=True)
class Voice:
    """Normalized voice descriptor.

    `native` carries the backend's own voice record; only the adapter that
    produced it interprets it.
    """

    id: str
    name: str
    language: str = ""
    gender: str = ""
    provider: str = ""
    native: Any = field(default=None, compare=False, repr=False)


class AudioProperty(str, enum.Enum):
    RATE = "rate"
    PITCH = "pitch"
    VOLUME = "volume"


class ProviderEvent(str, enum.Enum):
    ON_START = "onStart"
    ON_END = "onEnd"


class BaseProviderState:
    """Holds the `AudioConfig` and the only code path allowed to change it."""

    def __init__(self, audio_config: AudioConfig | None = None) -> None:
        self.audio_config = audio_config or AudioConfig()

    def set_property(self, name: str | AudioProperty, value: object) -> None:
        try:
            prop = AudioProperty(name)
        except ValueError:
            raise UnknownPropertyError(f"Unknown audio property: {name!r}") from None

        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise TypeMismatchError(
                f"Property {prop.value!r} expects a number, got {type(value).__name__}."
            )

        setattr(self.audio_config, prop.value, float(value))
        logger.debug("Audio property %s set to %s", prop.value, value)

    def set_output_device(self, device_id: int | str | None) -> None:
        self.audio_config.device_id = device_id


def validate_ssml(markup: str) -> ET.Element:
    """Check that `markup` is well-formed XML wrapped in a <speak> root."""
    if not markup or not markup.strip():
        raise InvalidMarkupError("SSML input is empty.")

    try:
        root = ET.fromstring(markup.strip())
    except ET.ParseError as exc:
        raise InvalidMarkupError(f"SSML is not well-formed: {exc}") from exc

    local_name = root.tag.rsplit("}", 1)[-1]
    if local_name != SSML_ROOT_TAG:
        raise InvalidMarkupError(
            f"SSML must be wrapped in <{SSML_ROOT_TAG}>, found <{local_name}>."
        )
    return root


class TTSProvider(abc.ABC):
    """Abstract base class for synthesis backends."""

    name: ClassVar[str] = "provider"
    supports_ssml: ClassVar[bool] = False
    supports_device_selection: ClassVar[bool] = False

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        engine: PlaybackEngine | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.config = config or ProviderConfig()
        self.state = BaseProviderState()
        self.event_logger = (event_logger or create_event_logger(logger, "human")).bind(
            provider=self.name
        )
        self._callbacks: dict[ProviderEvent, list[Callable[[str], None]]] = {
            event: [] for event in ProviderEvent
        }
        self._engine: PlaybackEngine | None = None
        if engine is not None:
            self._attach_engine(engine)

    # ------------------------------------------------------------------ #
    # Backend hooks

    @abc.abstractmethod
    def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
        """Return an encoded audio byte stream for `text`."""

    @abc.abstractmethod
    def get_voices(self) -> list[Voice]:
        """Return this provider's voices."""

    @abc.abstractmethod
    def verify_credentials(self) -> bool:
        """Probe the backend; may raise, `check_credentials()` absorbs it."""

    # ------------------------------------------------------------------ #
    # Public API

    @property
    def audio_config(self) -> AudioConfig:
        return self.state.audio_config

    @property
    def engine(self) -> PlaybackEngine:
        if self._engine is None:
            self._attach_engine(PlaybackEngine(device=self.audio_config.device_id))
        assert self._engine is not None
        return self._engine

    def speak(self, text: str) -> None:
        audio = self._synthesize(text, ssml=False)
        self._play(audio)

    def speak_ssml(self, markup: str) -> None:
        self._require_ssml(markup)
        audio = self._synthesize(markup, ssml=True)
        self._play(audio)

    def synth_to_file(self, text: str, path: str | Path) -> Path:
        return self._write_file(self._synthesize(text, ssml=False), path)

    def synth_ssml_to_file(self, markup: str, path: str | Path) -> Path:
        self._require_ssml(markup)
        return self._write_file(self._synthesize(markup, ssml=True), path)

    def speak_streamed(self, text: str, out: BinaryIO) -> int:
        return self._write_stream(self._synthesize(text, ssml=False), out)

    def speak_ssml_streamed(self, markup: str, out: BinaryIO) -> int:
        self._require_ssml(markup)
        return self._write_stream(self._synthesize(markup, ssml=True), out)

    def set_property(self, name: str | AudioProperty, value: object) -> None:
        self.state.set_property(name, value)

    def connect(self, event: str | ProviderEvent, callback: Callable[[str], None]) -> None:
        """Register `callback(event_name)` for "onStart" or "onEnd"."""
        try:
            provider_event = ProviderEvent(event)
        except ValueError:
            raise UnsupportedOperationError(f"Unknown provider event: {event!r}") from None
        if not callable(callback):
            raise TypeError("callback must be callable.")
        self._callbacks[provider_event].append(callback)

    def pause_audio(self) -> None:
        self.engine.pause()

    def resume_audio(self) -> None:
        self.engine.resume()

    def stop_audio(self) -> None:
        self.engine.stop()

    def wait_for_completion(self, timeout: float | None = None) -> bool:
        return self.engine.wait_for_completion(timeout)

    def is_playing(self) -> bool:
        return self._engine is not None and self._engine.is_playing()

    def set_output_device(self, device_id: int | str | None) -> None:
        if not self.supports_device_selection:
            raise UnsupportedOperationError(
                f"{self.name} does not support output device selection."
            )
        device = find_output_device(device_id).index if device_id is not None else None
        self.engine.set_output_device(device)
        self.state.set_output_device(device_id)

    def check_credentials(self) -> bool:
        try:
            return bool(self.verify_credentials())
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s credential check failed: %s", self.name, exc)
            return False

    def validate_ssml(self, markup: str) -> None:
        validate_ssml(markup)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.close()

    def __enter__(self) -> TTSProvider:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internal helpers

    def _attach_engine(self, engine: PlaybackEngine) -> None:
        self._engine = engine
        engine.add_completion_listener(self._on_playback_end)

    def _on_playback_end(self) -> None:
        if self._engine is not None:
            self.event_logger.log("playback_end", device=self._engine.device)
        self._emit(ProviderEvent.ON_END)

    def _require_ssml(self, markup: str) -> None:
        self.validate_ssml(markup)
        if not self.supports_ssml:
            raise UnsupportedOperationError(f"SSML is not supported by {self.name}.")

    def _synthesize(self, text: str, *, ssml: bool) -> bytes:
        if not text or not text.strip():
            raise ValueError("Text to synthesize must not be empty.")

        self.event_logger.log("synthesis_start", ssml=ssml, char_len=len(text))
        audio = self.synthesize(text, ssml=ssml)
        self.event_logger.log("synthesis_complete", byte_len=len(audio))
        return audio

    def _play(self, audio: bytes) -> None:
        self.engine.play(audio)
        self.event_logger.log("playback_start", device=self.engine.device)
        self._emit(ProviderEvent.ON_START)

    def _write_file(self, audio: bytes, path: str | Path) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(audio)
        logger.debug("Wrote %s bytes of audio to %s", len(audio), target)
        return target

    def _write_stream(self, audio: bytes, out: BinaryIO) -> int:
        for offset in range(0, len(audio), STREAM_CHUNK_SIZE):
            out.write(audio[offset : offset + STREAM_CHUNK_SIZE])
        out.flush()
        return len(audio)

    def _emit(self, event: ProviderEvent) -> None:
        for callback in list(self._callbacks[event]):
            try:
                callback(event.value)
            except Exception:  # noqa: BLE001
                logger.exception("%s callback for %s failed.", self.name, event.value)
