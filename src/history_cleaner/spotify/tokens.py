"""Spotify access-token lifecycle: refresh-token grant and token verification."""

import logging
from datetime import UTC, datetime, timedelta

import httpx
from pydantic import ValidationError

from history_cleaner.settings import CleanerSettings
from history_cleaner.spotify.client import SpotifyClient
from history_cleaner.spotify.constants import SPOTIFY_TOKEN_URL
from history_cleaner.spotify.exceptions import SpotifyClientError, SpotifyTokenError

logger = logging.getLogger(__name__)


class SpotifyTokenManager:
    """Obtains and caches a Spotify access token from a long-lived refresh token.

    The cached token is reused until it is within TOKEN_EXPIRY_BUFFER_SECONDS of
    expiring.
    """

    def __init__(self, settings: CleanerSettings) -> None:
        self._settings = settings
        self._access_token: str | None = None
        self._expires_at: datetime | None = None

    async def get_valid_token(self) -> str:
        """Return a valid access token, refreshing if needed.

        Raises:
            SpotifyTokenError: If credentials are missing or the refresh fails.
        """
        buffer = timedelta(seconds=self._settings.TOKEN_EXPIRY_BUFFER_SECONDS)
        if self._access_token and self._expires_at and self._expires_at > datetime.now(UTC) + buffer:
            return self._access_token

        return await self.refresh_access_token()

    async def refresh_access_token(self) -> str:
        """Force-refresh the access token with the refresh-token grant."""
        if not self._settings.has_spotify_credentials:
            raise SpotifyTokenError(
                "Spotify credentials not configured "
                "(SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTIFY_REFRESH_TOKEN)"
            )

        async with httpx.AsyncClient() as client:
            response = await client.post(
                SPOTIFY_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._settings.SPOTIFY_REFRESH_TOKEN,
                    "client_id": self._settings.SPOTIFY_CLIENT_ID,
                    "client_secret": self._settings.SPOTIFY_CLIENT_SECRET,
                },
            )
            if response.status_code != 200:
                raise SpotifyTokenError(f"Token refresh failed: HTTP {response.status_code}")

        try:
            data = response.json()
            access_token: str = data["access_token"]
            expires_at = datetime.now(UTC) + timedelta(seconds=data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise SpotifyTokenError(f"Token refresh returned an unusable response: {exc!r}") from exc

        self._access_token = access_token
        self._expires_at = expires_at
        logger.debug("Refreshed Spotify access token (expires at %s)", self._expires_at.isoformat())
        return access_token

    async def test_token(self, token: str) -> bool:
        """Return True if the token is accepted by GET /me."""
        client = SpotifyClient(token, max_retries=0)
        try:
            await client.get_current_user()
        except (SpotifyClientError, httpx.HTTPError, ValidationError) as exc:
            logger.info("Spotify token check failed: %s", exc)
            return False
        return True
