"""
Wit.ai speech synthesis provider.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import requests

from .errors import ProviderAuthError
from .playback import PlaybackEngine
from .provider_base import ProviderConfig, TTSProvider, Voice
from .rest import DEFAULT_TIMEOUT, RestClient

logger = logging.getLogger(__name__)


class WitAIProvider(TTSProvider):
    name = "witai"

    BASE_URL = "https://api.wit.ai"
    API_VERSION = "20240304"
    DEFAULT_VOICE = "wit$Rebecca"
    ACCEPT_TYPES = {"mp3": "audio/mpeg", "wav": "audio/wav", "ogg": "audio/ogg"}

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        engine: PlaybackEngine | None = None,
        session: requests.Session | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, engine=engine, **kwargs)
        if not self.config.api_key:
            raise ProviderAuthError("Wit.ai requires a server access token.", provider=self.name)

        self.voice = self.config.voice_id or self.DEFAULT_VOICE
        self.accept = self.ACCEPT_TYPES.get(
            (self.config.output_format or "mp3").lower(), self.ACCEPT_TYPES["mp3"]
        )
        self.client = RestClient(
            self.name,
            self.config.option("base_url", self.BASE_URL),
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            timeout=float(self.config.option("timeout", DEFAULT_TIMEOUT)),
            session=session,
        )

    def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
        payload = {
            "q": text,
            "voice": self.voice,
            # Wit.ai scales speed and pitch as percentages of normal.
            "speed": int(round(self.audio_config.rate * 100)),
            "pitch": int(round(self.audio_config.pitch * 100)),
        }
        response = self.client.post(
            "/synthesize",
            params={"v": self.API_VERSION},
            json=payload,
            headers={"Accept": self.accept},
        )
        try:
            return response.content
        finally:
            response.close()

    def get_voices(self) -> list[Voice]:
        response = self.client.get("/voices", params={"v": self.API_VERSION})
        payload = response.json()
        return [self._to_voice(item) for item in _iter_voice_records(payload)]

    def verify_credentials(self) -> bool:
        self.client.get("/voices", params={"v": self.API_VERSION}).close()
        return True

    def close(self) -> None:
        super().close()
        self.client.close()

    def _to_voice(self, item: dict[str, Any]) -> Voice:
        return Voice(
            id=str(item.get("id") or item.get("name", "")),
            name=str(item.get("name") or item.get("id", "")),
            language=str(item.get("locale", "")).replace("_", "-"),
            gender=str(item.get("gender", "")),
            provider=self.name,
            native=item,
        )


def _iter_voice_records(payload: Any) -> Iterable[dict[str, Any]]:
    # The endpoint groups voices by locale; older versions returned a flat list.
    if isinstance(payload, dict):
        for records in payload.values():
            if isinstance(records, list):
                yield from (r for r in records if isinstance(r, dict))
    elif isinstance(payload, list):
        yield from (r for r in payload if isinstance(r, dict))
