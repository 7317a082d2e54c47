"""
Configuration loader merging defaults, config files, environment, and CLI args.
"""

from __future__ import annotations

import argparse
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Mapping, MutableMapping, Tuple

from .provider_base import AudioProperty, ProviderConfig, TTSProvider

DEFAULT_CONFIG_FILENAME = "unitts.toml"
LOG_FORMATS = ("human", "json")


@dataclass
class AppConfig:
    """High-level application configuration container."""

    provider: str = "espeak"
    api_key: str | None = None
    region: str | None = None
    language_code: str | None = None
    voice_id: str | None = None
    output_format: str | None = None
    engine: str | None = None
    rate: float | None = None
    pitch: float | None = None
    volume: float | None = None
    device: str | None = None
    timeout_ms: int = 10_000
    log_format: str = "human"
    json_log: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_provider_config(self) -> ProviderConfig:
        options = dict(self.extra)
        options.setdefault("timeout", self.timeout_ms / 1000.0)
        return ProviderConfig(
            api_key=self.api_key,
            region=self.region,
            language_code=self.language_code,
            voice_id=self.voice_id,
            output_format=self.output_format,
            engine=self.engine,
            options=options,
        )


def load_default_config() -> AppConfig:
    """Return default configuration for the CLI."""

    return AppConfig()


def load_config(
    args: argparse.Namespace | None = None,
    *,
    env: Mapping[str, str] | None = None,
    config_file: str | Path | None = None,
) -> AppConfig:
    """
    Load configuration merging defaults, config file, environment, then CLI.

    Precedence: CLI args > environment variables > config file > defaults.
    """

    defaults = load_default_config()
    config_data: dict[str, Any] = {
        key: getattr(defaults, key) for key in _known_fields()
    }
    extras: dict[str, Any] = {}

    resolved_config_path = _resolve_config_path(args, config_file)
    if resolved_config_path is not None:
        file_config, file_extras = _load_from_file(resolved_config_path)
        config_data.update(file_config)
        extras.update(file_extras)

    config_data.update(_load_from_env(env))
    config_data.update(_load_from_cli(args))

    if not config_data.get("api_key"):
        config_data["api_key"] = _vendor_api_key(env, config_data.get("provider"))

    if config_data.get("json_log"):
        config_data["log_format"] = "json"

    validated = _validate_config(config_data)
    if extras:
        validated["extra"] = extras

    return AppConfig(**validated)


def apply_audio_settings(config: AppConfig, provider: TTSProvider) -> None:
    """Push configured rate, pitch and volume into `provider`."""
    for prop in AudioProperty:
        value = getattr(config, prop.value)
        if value is not None:
            provider.set_property(prop, value)


def _known_fields() -> set[str]:
    return {f.name for f in fields(AppConfig) if f.init and f.name != "extra"}


def _resolve_config_path(
    args: argparse.Namespace | None, config_file: str | Path | None
) -> Path | None:
    candidate: str | Path | None = None
    if args is not None and getattr(args, "config", None):
        candidate = getattr(args, "config")
    elif config_file is not None:
        candidate = config_file

    if candidate is None:
        default_path = Path(DEFAULT_CONFIG_FILENAME)
        return default_path if default_path.exists() else None

    path = Path(candidate).expanduser()
    return path if path.exists() else None


def _load_from_file(path: Path) -> Tuple[dict[str, Any], dict[str, Any]]:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError:
        return {}, {}
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid configuration file '{path}': {exc}") from exc

    return _partition_known(data)


def _as_bool(value: Any) -> bool:
    return str(value).lower() in {"1", "true", "yes"}


ENV_KEY_MAP: dict[str, Tuple[str, Callable[[Any], Any]]] = {
    "UNITTS_PROVIDER": ("provider", str),
    "UNITTS_API_KEY": ("api_key", str),
    "UNITTS_REGION": ("region", str),
    "UNITTS_LANGUAGE": ("language_code", str),
    "UNITTS_VOICE_ID": ("voice_id", str),
    "UNITTS_OUTPUT_FORMAT": ("output_format", str),
    "UNITTS_ENGINE": ("engine", str),
    "UNITTS_RATE": ("rate", float),
    "UNITTS_PITCH": ("pitch", float),
    "UNITTS_VOLUME": ("volume", float),
    "UNITTS_DEVICE": ("device", str),
    "UNITTS_TIMEOUT_MS": ("timeout_ms", int),
    "UNITTS_LOG_FORMAT": ("log_format", str),
    "UNITTS_JSON_LOG": ("json_log", _as_bool),
}

# Vendor credential variables, used only when no api_key is configured.
PROVIDER_KEY_ENV: dict[str, str] = {
    "elevenlabs": "ELEVENLABS_API_KEY",
    "witai": "WIT_AI_TOKEN",
}


def _load_from_env(env: Mapping[str, str] | None) -> dict[str, Any]:
    source = env if env is not None else os.environ
    result: dict[str, Any] = {}
    for env_key, (config_key, caster) in ENV_KEY_MAP.items():
        if env_key in source and source[env_key] != "":
            result[config_key] = caster(source[env_key])
    return result


def _vendor_api_key(env: Mapping[str, str] | None, provider: str | None) -> str | None:
    source = env if env is not None else os.environ
    env_key = PROVIDER_KEY_ENV.get(str(provider or "").lower())
    if env_key and source.get(env_key):
        return source[env_key]
    return None


CLI_ATTR_MAP: dict[str, Tuple[str, Callable[[Any], Any]]] = {
    "provider": ("provider", str),
    "api_key": ("api_key", str),
    "region": ("region", str),
    "language": ("language_code", str),
    "voice": ("voice_id", str),
    "output_format": ("output_format", str),
    "engine": ("engine", str),
    "rate": ("rate", float),
    "pitch": ("pitch", float),
    "volume": ("volume", float),
    "device": ("device", str),
    "timeout": ("timeout_ms", int),
    "log_format": ("log_format", str),
    "json_log": ("json_log", bool),
}


def _load_from_cli(args: argparse.Namespace | None) -> dict[str, Any]:
    if args is None:
        return {}

    result: dict[str, Any] = {}
    for attr_name, (config_key, caster) in CLI_ATTR_MAP.items():
        if hasattr(args, attr_name):
            value = getattr(args, attr_name)
            if value is None:
                continue
            if caster is bool:
                # store_true flags only override when set.
                if value:
                    result[config_key] = True
            else:
                result[config_key] = caster(value)
    return result


def _partition_known(data: Mapping[str, Any]) -> Tuple[dict[str, Any], dict[str, Any]]:
    known: dict[str, Any] = {}
    extras: dict[str, Any] = {}
    known_keys = _known_fields()
    for key, value in data.items():
        if key in known_keys:
            known[key] = value
        else:
            extras[key] = value
    return known, extras


def _validate_config(data: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    for name in ("rate", "pitch", "volume"):
        value = data.get(name)
        if value is not None and float(value) <= 0.0:
            raise ValueError(f"{name} must be positive")

    timeout_ms = data.get("timeout_ms")
    if timeout_ms is not None and int(timeout_ms) <= 0:
        raise ValueError("timeout_ms must be positive")

    log_format = data.get("log_format")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    provider = data.get("provider")
    if not provider:
        raise ValueError("provider must not be empty")
    data["provider"] = str(provider).lower()

    return data
