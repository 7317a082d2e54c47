"""
Provider registry mapping provider-type tags to constructors.

The registry is an ordinary object owned by application start-up code.
`build_default_registry()` returns a fresh one holding the bundled adapters;
tests create their own and register fakes.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

from .elevenlabs_provider import ElevenLabsProvider
from .errors import UnknownProviderError
from .espeak_provider import ESpeakProvider
from .provider_base import ProviderConfig, TTSProvider
from .witai_provider import WitAIProvider

logger = logging.getLogger(__name__)

ProviderConstructor = Callable[[ProviderConfig], TTSProvider]


class ProviderType(str, enum.Enum):
    ELEVENLABS = "elevenlabs"
    WITAI = "witai"
    ESPEAK = "espeak"


def _tag(provider_type: str | ProviderType) -> str:
    if isinstance(provider_type, ProviderType):
        return provider_type.value
    return str(provider_type)


class ProviderRegistry:
    """Thread-safe table of provider constructors."""

    def __init__(self) -> None:
        self._constructors: dict[str, ProviderConstructor] = {}
        self._lock = threading.Lock()

    def register(self, provider_type: str | ProviderType, constructor: ProviderConstructor) -> None:
        """Store `constructor` under `provider_type`, replacing any previous one."""
        if not callable(constructor):
            raise TypeError("constructor must be callable.")
        tag = _tag(provider_type)
        with self._lock:
            replaced = tag in self._constructors
            self._constructors[tag] = constructor
        logger.debug("Registered provider %s (replaced=%s)", tag, replaced)

    def create(self, provider_type: str | ProviderType, config: ProviderConfig) -> TTSProvider:
        tag = _tag(provider_type)
        with self._lock:
            constructor = self._constructors.get(tag)
        if constructor is None:
            raise UnknownProviderError(f"Unsupported provider type: {tag}")
        return constructor(config)

    def is_registered(self, provider_type: str | ProviderType) -> bool:
        with self._lock:
            return _tag(provider_type) in self._constructors

    def provider_types(self) -> list[str]:
        with self._lock:
            return sorted(self._constructors)


def build_default_registry() -> ProviderRegistry:
    """Return a new registry populated with the bundled adapters."""
    registry = ProviderRegistry()
    registry.register(ProviderType.ELEVENLABS, ElevenLabsProvider)
    registry.register(ProviderType.WITAI, WitAIProvider)
    registry.register(ProviderType.ESPEAK, ESpeakProvider)
    return registry
