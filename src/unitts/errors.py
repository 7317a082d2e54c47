"""
Custom exception hierarchy for unitts.
"""

from __future__ import annotations


class UniTTSError(Exception):
    """Base class for unitts exceptions."""


class DecodeError(UniTTSError):
    """Raised when an encoded audio stream cannot be parsed or decoded."""


class EmptyAudioError(DecodeError):
    """Raised when a structurally valid stream decodes to zero samples."""


class DeviceError(UniTTSError):
    """Raised when the output device cannot be opened, started, or stopped."""


class NotPlayingError(UniTTSError):
    """Raised when pausing without an active, playing session."""


class NotPausedError(UniTTSError):
    """Raised when resuming a session that is not paused."""


class NoActivePlaybackError(UniTTSError):
    """Raised when waiting for completion before any session has started."""


class UnknownPropertyError(UniTTSError):
    """Raised when setting an audio property that does not exist."""


class TypeMismatchError(UniTTSError):
    """Raised when an audio property receives a non-numeric value."""


class UnknownProviderError(UniTTSError):
    """Raised when no constructor is registered for a provider type."""


class UnsupportedOperationError(UniTTSError):
    """Raised when a provider does not offer the requested capability."""


class InvalidMarkupError(UniTTSError):
    """Raised when SSML input is empty or not well-formed."""


class ProviderError(UniTTSError):
    """Base class for provider-related failures.

    Carries the backend name so callers can tell which adapter failed.
    """

    def __init__(self, message: str = "", *, provider: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ProviderConnectionError(ProviderError):
    """Raised when connection to the provider cannot be established."""


class ProviderRateLimitError(ProviderError):
    """Raised when the provider throttles requests."""

    def __init__(
        self,
        message: str = "Rate limited.",
        *,
        provider: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class ProviderAuthError(ProviderError):
    """Raised when authentication with the provider fails."""


class ProviderNetworkError(ProviderError):
    """Raised when transient network issues occur."""
