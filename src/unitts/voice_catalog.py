"""
Voice lookup helpers over a provider's normalized voice list.
"""

from __future__ import annotations

from difflib import SequenceMatcher
from typing import Iterable

from .provider_base import Voice

MATCH_THRESHOLD = 0.5


def find_voice(query: str, voices: Iterable[Voice]) -> Voice | None:
    """Resolve `query` to a voice by id, name, or fuzzy name match."""
    query = query.strip()
    if not query:
        return None

    query_lower = query.lower()
    candidates = list(voices)

    # Direct ID or name match
    for voice in candidates:
        if voice.id.lower() == query_lower or voice.name.lower() == query_lower:
            return voice

    # Names containing the query beat any fuzzy match
    contained = [voice for voice in candidates if query_lower in voice.name.lower()]
    if contained:
        return max(contained, key=lambda voice: len(query_lower) / len(voice.name))

    best: Voice | None = None
    best_score = 0.0
    for voice in candidates:
        if not voice.name:
            continue
        score = SequenceMatcher(None, query_lower, voice.name.lower()).ratio()
        if score > best_score:
            best_score = score
            best = voice

    return best if best_score >= MATCH_THRESHOLD else None


def voices_for_language(language: str, voices: Iterable[Voice]) -> list[Voice]:
    """Return voices whose language tag starts with `language` (case-insensitive)."""
    prefix = language.lower().replace("_", "-")
    return [
        voice for voice in voices if voice.language.lower().replace("_", "-").startswith(prefix)
    ]
