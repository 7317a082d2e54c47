"""
Structured logging helpers for unitts.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

LOG_LINE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_SECRET_MARKERS = ("key", "token", "secret", "password")


class LogFormat(str, Enum):
    HUMAN = "human"
    JSON = "json"


def _redact_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    lowered = key.lower()
    if any(marker in lowered for marker in _SECRET_MARKERS):
        if len(value) <= 4:
            return "****"
        return f"****{value[-4:]}"
    return value


class EventLogger:
    """Wrapper that emits structured events in human or JSON format.

    `context` fields are merged into every event; per-call fields win.
    """

    def __init__(
        self,
        logger: logging.Logger,
        log_format: LogFormat = LogFormat.HUMAN,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.logger = logger
        self.log_format = log_format
        self.context: dict[str, Any] = dict(context or {})

    def bind(self, **fields: Any) -> EventLogger:
        """Return a logger sharing this one's output with extra context fields."""
        return EventLogger(self.logger, self.log_format, {**self.context, **fields})

    def log(self, event_type: str, *, level: str = "info", **fields: Any) -> None:
        log_method = getattr(self.logger, level, self.logger.info)
        timestamp = datetime.now(timezone.utc).isoformat()
        merged = {**self.context, **fields}
        redacted = {key: _redact_value(key, value) for key, value in merged.items()}

        if self.log_format == LogFormat.JSON:
            payload = {
                "timestamp": timestamp,
                "event": event_type,
                "fields": redacted,
            }
            log_method(json.dumps(payload, separators=(",", ":"), default=str))
            return

        field_blob = " ".join(f"{key}={redacted[key]}" for key in sorted(redacted))
        message = f"[{event_type}] {timestamp}"
        if field_blob:
            message = f"{message} | {field_blob}"
        log_method(message)


def create_event_logger(
    logger: logging.Logger, fmt: str | LogFormat, **context: Any
) -> EventLogger:
    try:
        log_format = LogFormat(fmt)
    except ValueError:
        log_format = LogFormat.HUMAN
    return EventLogger(logger, log_format, context)


def resolve_log_level(verbosity: int, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbosity == 1:
        return logging.INFO
    if verbosity >= 2:
        return logging.DEBUG
    return logging.WARNING


def configure_logging(verbosity: int = 0, quiet: bool = False) -> int:
    """Configure the root logger from CLI verbosity flags and return the level."""
    level = resolve_log_level(verbosity, quiet)
    logging.basicConfig(level=level, format=LOG_LINE_FORMAT)
    logging.getLogger().setLevel(level)
    return level
