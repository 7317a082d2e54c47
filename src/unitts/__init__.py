"""
unitts package initialization.

One provider contract over several text-to-speech backends plus a
pausable playback engine. The CLI entry point is exposed via
`unitts.cli:main`.
"""

__version__ = "0.1.0"

from .decoder import DecodedAudio, decode_audio
from .errors import (
    DecodeError,
    DeviceError,
    EmptyAudioError,
    InvalidMarkupError,
    NoActivePlaybackError,
    NotPausedError,
    NotPlayingError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    TypeMismatchError,
    UniTTSError,
    UnknownPropertyError,
    UnknownProviderError,
    UnsupportedOperationError,
)
from .playback import PlaybackEngine, PlaybackState
from .provider_base import (
    AudioConfig,
    AudioProperty,
    ProviderConfig,
    ProviderEvent,
    TTSProvider,
    Voice,
)
from .registry import ProviderRegistry, ProviderType, build_default_registry

__all__ = [
    "AudioConfig",
    "AudioProperty",
    "DecodeError",
    "DecodedAudio",
    "DeviceError",
    "EmptyAudioError",
    "InvalidMarkupError",
    "NoActivePlaybackError",
    "NotPausedError",
    "NotPlayingError",
    "PlaybackEngine",
    "PlaybackState",
    "ProviderAuthError",
    "ProviderConfig",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderEvent",
    "ProviderNetworkError",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderType",
    "TTSProvider",
    "TypeMismatchError",
    "UniTTSError",
    "UnknownPropertyError",
    "UnknownProviderError",
    "UnsupportedOperationError",
    "Voice",
    "build_default_registry",
    "decode_audio",
]
