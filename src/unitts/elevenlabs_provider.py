"""
ElevenLabs provider implementation with optional simulation mode.

The provider supports two operating modes:
- **Simulated** (`options={"simulate": True}`): returns a deterministic WAV
  tone so the wider pipeline can be exercised without hitting the network.
- **Live**: requests MPEG audio from ElevenLabs' text-to-speech endpoint.
"""

from __future__ import annotations

import logging
import math
import zlib
from typing import Any, Sequence

import numpy as np
import requests

from .errors import ProviderAuthError, ProviderError
from .playback import PlaybackEngine
from .provider_base import ProviderConfig, TTSProvider, Voice
from .rest import DEFAULT_TIMEOUT, RestClient
from .wav_saver import encode_wav

logger = logging.getLogger(__name__)


class ElevenLabsProvider(TTSProvider):
    name = "elevenlabs"

    BASE_URL = "https://api.elevenlabs.io"
    DEFAULT_MODEL_ID = "eleven_multilingual_v2"
    DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"
    DEFAULT_STABILITY = 0.75
    DEFAULT_SIMILARITY_BOOST = 0.75
    SIMULATED_SAMPLE_RATE = 16_000
    SIMULATED_DURATION_SEC = 1.0

    _STUB_VOICES: Sequence[tuple[str, str, str, str]] = (
        ("voice_stub_1", "Ava (stub)", "en", "female"),
        ("voice_stub_2", "Liam (stub)", "en", "male"),
    )

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        engine: PlaybackEngine | None = None,
        session: requests.Session | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, engine=engine, **kwargs)
        self.simulate = bool(self.config.option("simulate", False))

        if not self.simulate and not self.config.api_key:
            raise ProviderAuthError(
                "api_key is required unless simulate is enabled.", provider=self.name
            )

        self.model_id = self.config.engine or self.DEFAULT_MODEL_ID
        self.output_format = self.config.output_format or self.DEFAULT_OUTPUT_FORMAT
        self.client = RestClient(
            self.name,
            self.config.option("base_url", self.BASE_URL),
            headers={"xi-api-key": self.config.api_key or ""},
            timeout=float(self.config.option("timeout", DEFAULT_TIMEOUT)),
            session=session,
        )

    # ------------------------------------------------------------------ #
    # Backend hooks

    def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
        if self.simulate:
            return self._simulate_audio(text)

        voice_id = self.config.voice_id
        if not voice_id:
            raise ProviderError(
                "No voice_id configured for ElevenLabs request.", provider=self.name
            )

        response = self.client.post(
            f"/v1/text-to-speech/{voice_id}",
            params={"output_format": self.output_format},
            json=self._build_payload(text),
            headers={"Accept": "audio/mpeg"},
        )
        try:
            return response.content
        finally:
            response.close()

    def get_voices(self) -> list[Voice]:
        if self.simulate:
            return [
                Voice(
                    id=voice_id,
                    name=name,
                    language=language,
                    gender=gender,
                    provider=self.name,
                )
                for voice_id, name, language, gender in self._STUB_VOICES
            ]

        response = self.client.get("/v1/voices")
        payload = response.json()
        voices = payload.get("voices") if isinstance(payload, dict) else None
        if not isinstance(voices, list):
            return []

        result: list[Voice] = []
        for item in voices:
            labels = item.get("labels") or {}
            result.append(
                Voice(
                    id=str(item.get("voice_id", "")),
                    name=str(item.get("name", "")),
                    language=str(labels.get("language", "")),
                    gender=str(labels.get("gender", "")),
                    provider=self.name,
                    native=item,
                )
            )
        return result

    def verify_credentials(self) -> bool:
        if self.simulate:
            return True
        self.client.get("/v1/user/subscription").close()
        return True

    def close(self) -> None:
        super().close()
        self.client.close()

    # ------------------------------------------------------------------ #
    # Live provider helpers

    def _build_payload(self, text: str) -> dict[str, object]:
        voice_settings = {
            "stability": float(self.config.option("stability", self.DEFAULT_STABILITY)),
            "similarity_boost": float(
                self.config.option("similarity_boost", self.DEFAULT_SIMILARITY_BOOST)
            ),
            "speed": self.audio_config.rate,
        }
        payload: dict[str, object] = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": voice_settings,
        }
        if self.config.language_code:
            payload["language_code"] = self.config.language_code
        return payload

    # ------------------------------------------------------------------ #
    # Simulation helpers

    def _simulate_audio(self, text: str) -> bytes:
        sample_count = int(self.SIMULATED_SAMPLE_RATE * self.SIMULATED_DURATION_SEC)
        freq = 220.0 + (zlib.crc32(text.encode("utf-8")) % 220)
        amplitude = 0.25 * min(self.audio_config.volume, 2.0)
        n = np.arange(sample_count, dtype=np.float32)
        samples = amplitude * np.sin(2 * math.pi * freq * n / self.SIMULATED_SAMPLE_RATE)
        logger.debug("Simulated %s samples at %.0f Hz.", sample_count, freq)
        return encode_wav(samples, self.SIMULATED_SAMPLE_RATE)
