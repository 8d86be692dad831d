"""Spotify catalog client and models."""

from history_cleaner.spotify.client import SpotifyClient
from history_cleaner.spotify.exceptions import (
    SpotifyAuthError,
    SpotifyClientError,
    SpotifyRateLimitError,
    SpotifyRequestError,
    SpotifyServerError,
    SpotifyTokenError,
)

__all__ = [
    "SpotifyClient",
    "SpotifyAuthError",
    "SpotifyClientError",
    "SpotifyRateLimitError",
    "SpotifyRequestError",
    "SpotifyServerError",
    "SpotifyTokenError",
]
