"""Centralized constants for the history cleaner."""

import enum

# --- Service identity ---

SERVICE_NAME = "history-cleaner"

# --- Leaderboard sizes ---

TOP_SONGS_LIMIT = 500
TOP_ALBUMS_LIMIT = 500
TOP_ARTISTS_LIMIT = 500
TOP_ALBUMS_WITH_SONGS_LIMIT = 100

# --- Statistics ---

DEFAULT_STATS_TOP_N = 5
DEFAULT_RECENT_WINDOW_DAYS = 30
ARTIST_TOP_ITEMS = 5
HOURS_PER_DAY = 24
MS_PER_HOUR = 1000 * 60 * 60

# --- Placeholders for missing names ---

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class EntityKind(enum.StrEnum):
    """Kinds of ranked collections produced by the pipeline."""

    SONGS = "songs"
    ALBUMS = "albums"
    ARTISTS = "artists"
    ALBUMS_WITH_SONGS = "albums-with-songs"
