"""Spotify Web API async catalog client with rate-limit handling."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from history_cleaner.spotify.constants import (
    ALBUMS_BATCH_LIMIT,
    ALBUMS_URL,
    ARTISTS_BATCH_LIMIT,
    ARTISTS_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BASE_DELAY,
    ME_URL,
    TRACKS_BATCH_LIMIT,
    TRACKS_URL,
)
from history_cleaner.spotify.exceptions import (
    SpotifyAuthError,
    SpotifyRateLimitError,
    SpotifyRequestError,
    SpotifyServerError,
)
from history_cleaner.spotify.models import (
    BatchAlbumsResponse,
    BatchArtistsResponse,
    BatchTracksResponse,
    SpotifyAlbumFull,
    SpotifyArtistFull,
    SpotifyTrack,
    SpotifyUserProfile,
)

logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, max_retry_after: float = DEFAULT_MAX_RETRY_AFTER) -> float | None:
    """Parse a Retry-After header given in seconds.

    Returns None when the header is absent, not numeric, negative, or larger
    than ``max_retry_after``; callers then fall back to exponential backoff.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds < 0 or seconds > max_retry_after:
        return None
    return seconds


def backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_RETRY_DELAY,
) -> float:
    """Exponential backoff: base * 2**attempt, capped at max_delay."""
    return min(base_delay * (2**attempt), max_delay)


class SpotifyClient:
    """Async Spotify Web API catalog client.

    Takes an access_token per-instance (stateless re: auth). Handles 429 backoff
    internally with a bounded retry loop. Supports an optional on_token_expired
    async callback for a single 401 retry.
    """

    def __init__(
        self,
        access_token: str,
        *,
        on_token_expired: Callable[[], Awaitable[str]] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
        max_retry_after: float = DEFAULT_MAX_RETRY_AFTER,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._access_token = access_token
        self._on_token_expired = on_token_expired
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._max_retry_delay = max_retry_delay
        self._max_retry_after = max_retry_after
        self._request_timeout = request_timeout

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str | int] | None = None,
    ) -> httpx.Response:
        """Send an HTTP request with retry logic for 429 and a 401 callback.

        Retry loop:
        1. Send request with Bearer token
        2. If 2xx: return response
        3. If 401 and callback and not already retried: get new token, retry once
        4. If 429: sleep(Retry-After header or exponential backoff), retry the
           identical request until max_retries is exhausted
        5. If 5xx: raise SpotifyServerError
        6. If other 4xx: raise SpotifyRequestError
        """
        already_retried_401 = False
        attempt = 0

        while True:
            async with httpx.AsyncClient(timeout=self._request_timeout) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {self._access_token}"},
                )

            if 200 <= response.status_code < 300:
                return response

            # 401 Unauthorized: try token refresh once
            if response.status_code == 401:
                if self._on_token_expired and not already_retried_401:
                    already_retried_401 = True
                    logger.info("Spotify returned 401, attempting token refresh")
                    self._access_token = await self._on_token_expired()
                    continue
                raise SpotifyAuthError("Spotify returned 401 Unauthorized")

            # 429 Rate Limited
            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"), self._max_retry_after)
                if retry_after is not None:
                    delay = retry_after
                else:
                    delay = backoff_delay(attempt, self._retry_base_delay, self._max_retry_delay)
                if attempt >= self._max_retries:
                    raise SpotifyRateLimitError(retry_after=delay, attempts=attempt + 1)
                attempt += 1
                logger.warning(
                    "Spotify rate limited (429), sleeping %.1fs (retry %d/%d)",
                    delay,
                    attempt,
                    self._max_retries,
                )
                await asyncio.sleep(delay)
                continue

            detail = _error_detail(response)
            if response.status_code >= 500:
                raise SpotifyServerError(status_code=response.status_code, detail=detail)
            raise SpotifyRequestError(status_code=response.status_code, detail=detail)

    # -------------------------------------------------------------------
    # Catalog batch methods
    # -------------------------------------------------------------------

    async def get_tracks(self, track_ids: list[str]) -> list[SpotifyTrack]:
        """GET /tracks?ids=... (max 50 per request).

        Unavailable ids come back as null and are dropped from the result.
        """
        if not track_ids:
            return []
        _check_batch_size("tracks", track_ids, TRACKS_BATCH_LIMIT)
        response = await self._request("GET", TRACKS_URL, params={"ids": ",".join(track_ids)})
        batch = BatchTracksResponse.model_validate(_json_body(response))
        return [track for track in batch.tracks if track is not None]

    async def get_albums(self, album_ids: list[str]) -> dict[str, SpotifyAlbumFull]:
        """GET /albums?ids=... (max 20 per request), keyed by album id."""
        if not album_ids:
            return {}
        _check_batch_size("albums", album_ids, ALBUMS_BATCH_LIMIT)
        response = await self._request("GET", ALBUMS_URL, params={"ids": ",".join(album_ids)})
        batch = BatchAlbumsResponse.model_validate(_json_body(response))
        return {album.id: album for album in batch.albums if album is not None and album.id}

    async def get_artists(self, artist_ids: list[str]) -> dict[str, SpotifyArtistFull]:
        """GET /artists?ids=... (max 50 per request), keyed by artist id."""
        if not artist_ids:
            return {}
        _check_batch_size("artists", artist_ids, ARTISTS_BATCH_LIMIT)
        response = await self._request("GET", ARTISTS_URL, params={"ids": ",".join(artist_ids)})
        batch = BatchArtistsResponse.model_validate(_json_body(response))
        return {artist.id: artist for artist in batch.artists if artist is not None and artist.id}

    async def get_current_user(self) -> SpotifyUserProfile:
        """GET /me."""
        response = await self._request("GET", ME_URL)
        return SpotifyUserProfile.model_validate(_json_body(response))


def _check_batch_size(kind: str, ids: list[str], limit: int) -> None:
    if len(ids) > limit:
        raise ValueError(f"Spotify accepts at most {limit} {kind} per request, got {len(ids)}")


def _json_body(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise SpotifyRequestError(
            status_code=response.status_code, detail=f"undecodable response body: {response.text[:200]!r}"
        ) from exc


def _error_detail(response: httpx.Response) -> str:
    detail = f"HTTP {response.status_code}"
    try:
        error_body = response.json()
        detail = error_body.get("error", {}).get("message", detail)
    except (ValueError, AttributeError):
        if response.text:
            detail = response.text[:200]
    return detail
