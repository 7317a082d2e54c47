"""
eSpeak NG provider driving the local `espeak-ng` binary.

Audio is requested as WAV on stdout, so no network or credentials are
involved; the credential check only confirms the binary is installed.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Any

from .errors import ProviderError
from .playback import PlaybackEngine
from .provider_base import ProviderConfig, TTSProvider, Voice

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "espeak-ng"
DEFAULT_TIMEOUT = 30.0

# espeak-ng's native scales at a multiplier of 1.0.
BASE_WORDS_PER_MINUTE = 175
BASE_PITCH = 50
BASE_AMPLITUDE = 100

_GENDERS = {"M": "male", "F": "female"}


class ESpeakProvider(TTSProvider):
    name = "espeak"
    supports_ssml = True
    supports_device_selection = True

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        engine: PlaybackEngine | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, engine=engine, **kwargs)
        binary = self.config.option("binary", DEFAULT_BINARY)
        resolved = shutil.which(binary)
        if resolved is None:
            raise ProviderError(f"{binary} not found on PATH.", provider=self.name)
        self.binary = resolved
        self.voice = self.config.voice_id or self.config.language_code or "en"
        self.timeout = float(self.config.option("timeout", DEFAULT_TIMEOUT))

    def synthesize(self, text: str, *, ssml: bool = False) -> bytes:
        args = [
            self.binary,
            "--stdout",
            "--stdin",
            "-v",
            self.voice,
            "-s",
            str(int(self.audio_config.rate * BASE_WORDS_PER_MINUTE)),
            "-p",
            str(int(self.audio_config.pitch * BASE_PITCH)),
            "-a",
            str(int(self.audio_config.volume * BASE_AMPLITUDE)),
        ]
        if ssml:
            args.append("-m")

        completed = self._run(args, input=text.encode("utf-8"))
        if not completed.stdout:
            raise ProviderError("espeak-ng produced no audio.", provider=self.name)
        return completed.stdout

    def get_voices(self) -> list[Voice]:
        completed = self._run([self.binary, "--voices"])
        lines = completed.stdout.decode("utf-8", errors="replace").splitlines()

        voices: list[Voice] = []
        # Skip header line
        for line in lines[1:]:
            fields = line.split()
            if len(fields) < 4:
                continue
            _, language, age_gender, voice_name = fields[:4]
            gender_code = age_gender.rsplit("/", 1)[-1]
            voices.append(
                Voice(
                    id=language,
                    name=voice_name.replace("_", " "),
                    language=language,
                    gender=_GENDERS.get(gender_code, ""),
                    provider=self.name,
                    native=fields,
                )
            )
        return voices

    def verify_credentials(self) -> bool:
        return shutil.which(self.binary) is not None

    def _run(self, args: list[str], *, input: bytes | None = None) -> subprocess.CompletedProcess:
        logger.debug("Running %s", " ".join(args[:2]))
        try:
            completed = subprocess.run(
                args,
                input=input,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProviderError(f"{self.binary} not found.", provider=self.name) from exc
        except subprocess.TimeoutExpired as exc:
            raise ProviderError(
                f"espeak-ng timed out after {self.timeout:.0f}s.", provider=self.name
            ) from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise ProviderError(
                f"espeak-ng failed (exit {completed.returncode}): {stderr}", provider=self.name
            )
        return completed
