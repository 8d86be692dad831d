"""Cleaner configuration loaded from environment variables."""

from pydantic_settings import BaseSettings

from history_cleaner.constants import (
    DEFAULT_RECENT_WINDOW_DAYS,
    DEFAULT_STATS_TOP_N,
    TOP_ALBUMS_LIMIT,
    TOP_ALBUMS_WITH_SONGS_LIMIT,
    TOP_ARTISTS_LIMIT,
    TOP_SONGS_LIMIT,
)
from history_cleaner.spotify.constants import (
    DEFAULT_BATCH_PACING,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_RETRY_BASE_DELAY,
)


class CleanerSettings(BaseSettings):
    """History cleaner configuration."""

    # Spotify credentials (enrichment is skipped when these are missing)
    SPOTIFY_CLIENT_ID: str = ""
    SPOTIFY_CLIENT_SECRET: str = ""
    SPOTIFY_REFRESH_TOKEN: str = ""
    TOKEN_EXPIRY_BUFFER_SECONDS: int = 60

    # Files
    HISTORY_DIR: str = "data"
    OUTPUT_DIR: str = "data/cleaned-data"
    RULES_PATH: str = "album-consolidation-rules.json"

    # Leaderboard sizes
    TOP_SONGS_LIMIT: int = TOP_SONGS_LIMIT
    TOP_ALBUMS_LIMIT: int = TOP_ALBUMS_LIMIT
    TOP_ARTISTS_LIMIT: int = TOP_ARTISTS_LIMIT
    TOP_ALBUMS_WITH_SONGS_LIMIT: int = TOP_ALBUMS_WITH_SONGS_LIMIT

    # Enrichment
    ENRICHMENT_ENABLED: bool = True
    SPOTIFY_MAX_RETRIES: int = DEFAULT_MAX_RETRIES
    SPOTIFY_RETRY_BASE_DELAY: float = DEFAULT_RETRY_BASE_DELAY
    SPOTIFY_MAX_RETRY_DELAY: float = DEFAULT_MAX_RETRY_DELAY
    BATCH_PACING_SECONDS: float = DEFAULT_BATCH_PACING

    # Statistics
    STATS_TOP_N: int = DEFAULT_STATS_TOP_N
    RECENT_WINDOW_DAYS: int = DEFAULT_RECENT_WINDOW_DAYS

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" or "text"

    model_config = {"env_prefix": ""}

    @property
    def has_spotify_credentials(self) -> bool:
        return bool(self.SPOTIFY_CLIENT_ID and self.SPOTIFY_CLIENT_SECRET and self.SPOTIFY_REFRESH_TOKEN)
