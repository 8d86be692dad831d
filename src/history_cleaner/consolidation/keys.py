"""Grouping keys for consolidation and snapshot lookups.

All keys are case and surrounding-whitespace insensitive.
"""

from collections.abc import Iterable

from history_cleaner.constants import UNKNOWN_ARTIST

KEY_SEPARATOR = "|"


def normalize_text(value: str | None) -> str:
    return (value or "").strip().lower()


def artist_or_unknown(artist: str | None) -> str:
    """Return the trimmed artist name, or the Unknown Artist placeholder when blank."""
    name = (artist or "").strip()
    return name or UNKNOWN_ARTIST


def pair_key(name: str | None, artist: str | None) -> str:
    return f"{normalize_text(name)}{KEY_SEPARATOR}{normalize_text(artist)}"


def song_key(name: str | None, artist: str | None) -> str:
    return pair_key(name, artist_or_unknown(artist))


def artist_key(name: str | None) -> str:
    return normalize_text(artist_or_unknown(name))


def album_song_key(name: str | None, artists: Iterable[str]) -> str:
    """Key for a song inside an album breakdown: name plus the joined artist list."""
    return f"{normalize_text(name)}{KEY_SEPARATOR}{normalize_text(', '.join(artists))}"
