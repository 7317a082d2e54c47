"""
Command-line interface for unitts.

Synthesizes text with any registered provider and either plays it through
the playback engine or writes the encoded audio to a file or stdout.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .config import AppConfig, apply_audio_settings, load_config
from .devices import list_output_devices
from .errors import (
    DecodeError,
    DeviceError,
    InvalidMarkupError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    UnknownProviderError,
    UnsupportedOperationError,
)
from .logging_utils import configure_logging, create_event_logger
from .provider_base import TTSProvider
from .registry import ProviderRegistry, build_default_registry
from .voice_catalog import find_voice

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the top-level argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="unitts",
        description="Speak text through any registered text-to-speech provider.",
    )
    text_group = parser.add_mutually_exclusive_group()
    text_group.add_argument(
        "text",
        nargs="?",
        help="Text to synthesize. When omitted, use --file or pipe via STDIN.",
    )
    text_group.add_argument(
        "--file",
        metavar="PATH",
        help="Read input text from a UTF-8 encoded file.",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to an optional configuration file (unitts.toml).",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Provider type (elevenlabs, witai, espeak).",
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="Provider API key or token (overrides environment and config file).",
    )
    parser.add_argument("--region", help="Provider region, where applicable.")
    parser.add_argument("--language", help="Language code, e.g. en-US.")
    parser.add_argument(
        "--voice",
        help="Voice identifier (or a name when combined with --match-voice).",
    )
    parser.add_argument(
        "--match-voice",
        dest="match_voice",
        action="store_true",
        help="Resolve --voice against the provider's voice list by name.",
    )
    parser.add_argument(
        "--output-format",
        dest="output_format",
        help="Provider-specific audio output format.",
    )
    parser.add_argument("--engine", help="Provider-specific engine or model.")
    parser.add_argument("--rate", type=float, help="Speaking rate multiplier.")
    parser.add_argument("--pitch", type=float, help="Pitch multiplier.")
    parser.add_argument("--volume", type=float, help="Volume multiplier.")
    parser.add_argument(
        "--device",
        help="Output device name or index (see --list-devices).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        metavar="MS",
        help="Provider timeout in milliseconds (default 10000).",
    )
    parser.add_argument(
        "--ssml",
        action="store_true",
        help="Treat the input as SSML markup.",
    )
    parser.add_argument(
        "-o",
        "--output",
        metavar="PATH",
        help="Write the encoded audio to PATH ('-' for stdout) instead of playing it.",
    )
    parser.add_argument(
        "--json-log",
        dest="json_log",
        action="store_true",
        help="Emit logs as JSON lines.",
    )
    parser.add_argument(
        "--list-voices",
        action="store_true",
        help="List available voices and exit.",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio output devices and exit.",
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="List registered providers and exit.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"unitts {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential log output.",
    )
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    registry: ProviderRegistry | None = None,
) -> int:
    """Entry point invoked by `python -m unitts` or console scripts."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose, args.quiet)
    registry = registry or build_default_registry()

    if args.list_providers:
        for provider_type in registry.provider_types():
            print(provider_type)
        return 0

    if args.list_devices:
        return _render_device_list()

    try:
        config = load_config(args)
    except ValueError as exc:
        _fail(f"invalid configuration - {exc}")
        return 2
    logger.debug("Loaded configuration: %s", config)

    text = ""
    if not args.list_voices:
        text = _resolve_input_text(args)
        if not text:
            parser.print_help()
            return 2

    provider: TTSProvider | None = None
    try:
        provider = _create_provider(registry, config)
        if args.match_voice and config.voice_id:
            provider = _rematch_voice(registry, config, provider)

        if args.list_voices:
            _render_voice_list(provider)
            return 0

        apply_audio_settings(config, provider)
        if config.device is not None:
            provider.set_output_device(_device_arg(config.device))

        if args.output:
            _write_output(provider, text, args.output, ssml=args.ssml)
        else:
            _speak(provider, text, ssml=args.ssml)
    except UnknownProviderError as exc:
        _fail(f"{exc}. Known providers: {', '.join(registry.provider_types())}")
        return 2
    except ProviderAuthError as exc:
        logger.error("Authentication error: %s", exc)
        _fail(f"authentication failed - {exc}")
        return 2
    except (InvalidMarkupError, UnsupportedOperationError, ValueError) as exc:
        _fail(str(exc))
        return 2
    except ProviderRateLimitError as exc:
        logger.error("Rate limited (retry_after=%s)", exc.retry_after)
        _fail("rate limited by provider. Please wait and try again.")
        return 3
    except (ProviderConnectionError, ProviderNetworkError) as exc:
        logger.error("Network error: %s", exc)
        _fail(f"network error - {exc}")
        return 3
    except ProviderError as exc:
        logger.error("Provider error: %s", exc)
        _fail(f"provider error - {exc}")
        return 3
    except (DecodeError, DeviceError) as exc:
        logger.error("Playback failure: %s", exc)
        _fail(f"playback failed - {exc}")
        return 4
    except KeyboardInterrupt:
        if provider is not None:
            provider.stop_audio()
        return 130
    finally:
        if provider is not None:
            provider.close()

    return 0


# ---------------------------------------------------------------------- #
# Internal helpers


def _fail(message: str) -> None:
    print(f"unitts: {message}", file=sys.stderr)


def _resolve_input_text(args: argparse.Namespace) -> str:
    if args.text:
        return args.text

    if args.file:
        path = Path(args.file)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SystemExit(f"Failed to read file '{path}': {exc}") from exc

    if not sys.stdin.isatty():
        try:
            data = sys.stdin.read().strip()
        except OSError:
            logger.debug("stdin read failed; returning empty input.")
            return ""
        if data:
            return data

    return ""


def _create_provider(registry: ProviderRegistry, config: AppConfig) -> TTSProvider:
    provider = registry.create(config.provider, config.to_provider_config())
    provider.event_logger = create_event_logger(
        logging.getLogger(f"unitts.{provider.name}"),
        config.log_format,
        provider=provider.name,
    )
    return provider


def _rematch_voice(
    registry: ProviderRegistry, config: AppConfig, provider: TTSProvider
) -> TTSProvider:
    assert config.voice_id is not None
    voice = find_voice(config.voice_id, provider.get_voices())
    if voice is None:
        raise ValueError(f"No voice matches '{config.voice_id}'.")
    if voice.id == config.voice_id:
        return provider

    logger.info("Resolved voice '%s' to %s (%s)", config.voice_id, voice.id, voice.name)
    provider.close()
    return _create_provider(registry, dataclasses.replace(config, voice_id=voice.id))


def _device_arg(device: str) -> int | str:
    return int(device) if device.isdigit() else device


def _render_voice_list(provider: TTSProvider) -> None:
    voices = provider.get_voices()
    if not voices:
        print("No voices available.")
        return

    print("Available voices:")
    for voice in voices:
        details = ", ".join(part for part in (voice.language, voice.gender) if part)
        suffix = f" ({details})" if details else ""
        print(f"- {voice.id}: {voice.name}{suffix}")


def _render_device_list() -> int:
    try:
        devices = list_output_devices()
    except DeviceError as exc:
        _fail(str(exc))
        return 4

    if not devices:
        print("No output devices found.")
        return 0

    print("Output devices:")
    for device in devices:
        marker = " (default)" if device.is_default else ""
        print(f"- [{device.index}] {device.name}{marker}")
    return 0


def _write_output(provider: TTSProvider, text: str, output: str, *, ssml: bool) -> None:
    if output == "-":
        if ssml:
            provider.speak_ssml_streamed(text, sys.stdout.buffer)
        else:
            provider.speak_streamed(text, sys.stdout.buffer)
        return

    if ssml:
        path = provider.synth_ssml_to_file(text, output)
    else:
        path = provider.synth_to_file(text, output)
    logger.info("Audio written to %s", path)


def _speak(provider: TTSProvider, text: str, *, ssml: bool) -> None:
    if ssml:
        provider.speak_ssml(text)
    else:
        provider.speak(text)
    provider.wait_for_completion()
    logger.info("Playback finished.")


if __name__ == "__main__":  # pragma: no cover - allows `python cli.py`
    raise SystemExit(main())
