"""Catalog enrichment for consolidated collections.

Per kind the enricher carries metadata forward from the previous snapshot,
skips entities that are already complete, fetches the rest from the Spotify
catalog in sequential batches and merges the results back. Enrichment is best
effort: without a usable token every collection is returned unchanged, and a
failed batch only leaves its own entities untouched.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Protocol

import httpx
from pydantic import ValidationError

from history_cleaner.consolidation.rules import RuleTable
from history_cleaner.enrichment.merge import (
    album_needs_enrichment,
    album_song_needs_enrichment,
    apply_album,
    apply_artist,
    apply_track_to_album_song,
    apply_track_to_song,
    artist_needs_enrichment,
    carry_forward_album,
    carry_forward_album_songs,
    carry_forward_artist,
    carry_forward_song,
    fill_top_item_images,
    order_album_songs,
    song_needs_enrichment,
)
from history_cleaner.models import AlbumWithSongs, CleanedAlbum, CleanedArtist, CleanedSong
from history_cleaner.snapshots import PriorSnapshot
from history_cleaner.spotify.client import SpotifyClient
from history_cleaner.spotify.constants import (
    ALBUMS_BATCH_LIMIT,
    ARTISTS_BATCH_LIMIT,
    DEFAULT_BATCH_PACING,
    TRACKS_BATCH_LIMIT,
)
from history_cleaner.spotify.exceptions import SpotifyClientError
from history_cleaner.spotify.models import SpotifyAlbumFull, SpotifyAlbumSimplified, SpotifyArtistFull, SpotifyTrack

logger = logging.getLogger(__name__)

# Base-62 catalog ids; local files and malformed ids would fail a whole batch.
_CATALOG_ID = re.compile(r"^[0-9A-Za-z]{22}$")

_BATCH_ERRORS = (SpotifyClientError, httpx.HTTPError, ValidationError)


class TokenProvider(Protocol):
    async def get_valid_token(self) -> str: ...

    async def refresh_access_token(self) -> str: ...

    async def test_token(self, token: str) -> bool: ...


class CatalogClient(Protocol):
    async def get_tracks(self, track_ids: list[str]) -> list[SpotifyTrack]: ...

    async def get_albums(self, album_ids: list[str]) -> dict[str, SpotifyAlbumFull]: ...

    async def get_artists(self, artist_ids: list[str]) -> dict[str, SpotifyArtistFull]: ...


class ClientFactory(Protocol):
    def __call__(
        self, access_token: str, *, on_token_expired: Callable[[], Awaitable[str]] | None = None
    ) -> CatalogClient: ...


def is_catalog_id(value: str | None) -> bool:
    return bool(value) and _CATALOG_ID.match(value) is not None


def chunked(ids: Sequence[str], size: int) -> list[list[str]]:
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]


class MetadataEnricher:
    """Fills catalog metadata into ranked collections.

    One instance serves a single run: the token is obtained and verified once,
    and fetched tracks, albums and artists are cached so later kinds reuse
    earlier lookups.
    """

    def __init__(
        self,
        token_provider: TokenProvider | None,
        *,
        rules: RuleTable | None = None,
        client_factory: ClientFactory | None = None,
        batch_pacing: float = DEFAULT_BATCH_PACING,
    ) -> None:
        self._token_provider = token_provider
        self._rules = rules or RuleTable.from_rules([])
        self._client_factory: ClientFactory = client_factory or SpotifyClient
        self._batch_pacing = batch_pacing

        self._client: CatalogClient | None = None
        self._connect_attempted = False
        self._tracks: dict[str, SpotifyTrack] = {}
        self._albums: dict[str, SpotifyAlbumSimplified] = {}
        self._artists: dict[str, SpotifyArtistFull] = {}

    async def connect(self) -> bool:
        """Obtain and verify a token once per run. Returns True when enrichment can proceed."""
        if self._client is not None:
            return True
        if self._connect_attempted or self._token_provider is None:
            return False
        self._connect_attempted = True

        try:
            token = await self._token_provider.get_valid_token()
        except (SpotifyClientError, httpx.HTTPError) as exc:
            logger.warning("Enrichment disabled, no Spotify token available: %s", exc)
            return False

        if not await self._token_provider.test_token(token):
            logger.warning("Enrichment disabled, Spotify rejected the access token")
            return False

        self._client = self._client_factory(token, on_token_expired=self._token_provider.refresh_access_token)
        logger.info("Spotify token verified, enrichment enabled")
        return True

    # -------------------------------------------------------------------
    # Per-kind enrichment
    # -------------------------------------------------------------------

    async def enrich_songs(self, songs: list[CleanedSong], prior: PriorSnapshot | None = None) -> list[CleanedSong]:
        if not await self.connect():
            return songs
        prior = prior or PriorSnapshot.empty()

        songs = [carry_forward_song(song, prior.song_for(song)) for song in songs]
        needing = [song for song in songs if song_needs_enrichment(song)]
        logger.info("Songs: %d of %d need enrichment", len(needing), len(songs))
        tracks = await self._fetch_tracks(song.lookup_id for song in needing)

        enriched = 0
        result = []
        for song in songs:
            track = tracks.get(song.lookup_id)
            if track is not None and song_needs_enrichment(song):
                song = apply_track_to_song(song, track)
                enriched += 1
            result.append(song)
        logger.info("Songs: enriched %d", enriched)
        return result

    async def enrich_artists(
        self, artists: list[CleanedArtist], prior: PriorSnapshot | None = None
    ) -> list[CleanedArtist]:
        """Enrich artists through their representative track's primary artist.

        Top songs and top albums without artwork take the album art of their
        own track.
        """
        if not await self.connect():
            return artists
        prior = prior or PriorSnapshot.empty()

        artists = [carry_forward_artist(artist, prior.artist_for(artist)) for artist in artists]
        needing = [artist for artist in artists if artist_needs_enrichment(artist)]
        logger.info("Artists: %d of %d need enrichment", len(needing), len(artists))

        top_item_ids = [
            *(s.song_id for a in artists for s in a.top_songs if not s.album.images),
            *(t.primary_album_id for a in artists for t in a.top_albums if not t.images),
        ]
        tracks = await self._fetch_tracks([*(a.lookup_id for a in needing), *top_item_ids])

        artist_ids = {
            artist.lookup_id: track.artists[0].id
            for artist in needing
            if (track := tracks.get(artist.lookup_id)) is not None and track.artists and track.artists[0].id
        }
        catalog = await self._fetch_artists(artist_ids.values())

        enriched = 0
        result = []
        for artist in artists:
            artist_id = artist_ids.get(artist.lookup_id)
            if artist_id in catalog and artist_needs_enrichment(artist):
                artist = apply_artist(artist, catalog[artist_id])
                enriched += 1
            result.append(fill_top_item_images(artist, tracks))
        logger.info("Artists: enriched %d", enriched)
        return result

    async def enrich_albums(self, albums: list[CleanedAlbum], prior: PriorSnapshot | None = None) -> list[CleanedAlbum]:
        if not await self.connect():
            return albums
        prior = prior or PriorSnapshot.empty()

        albums = [carry_forward_album(album, prior.album_for(album)) for album in albums]
        return await self._enrich_album_details(albums, "Albums")

    async def enrich_albums_with_songs(
        self, albums: list[AlbumWithSongs], prior: PriorSnapshot | None = None
    ) -> list[AlbumWithSongs]:
        """Enrich album details plus the track details of every song in the breakdown.

        Songs are reordered by disc, track number and play count; the
        played/unplayed counts are recomputed.
        """
        if not await self.connect():
            return albums
        prior = prior or PriorSnapshot.empty()

        carried = []
        for album in albums:
            match = prior.album_with_songs_for(album)
            carried.append(carry_forward_album_songs(carry_forward_album(album, match), match))

        albums = await self._enrich_album_details(carried, "Albums with songs")

        song_ids = [s.song_id for album in albums for s in album.songs if album_song_needs_enrichment(s)]
        tracks = await self._fetch_tracks(song_ids)

        result = []
        for album in albums:
            songs = [
                apply_track_to_album_song(s, tracks[s.song_id])
                if s.song_id in tracks and album_song_needs_enrichment(s)
                else s
                for s in album.songs
            ]
            result.append(album.with_songs(order_album_songs(songs)))
        return result

    # -------------------------------------------------------------------
    # Album details shared by both album collections
    # -------------------------------------------------------------------

    async def _enrich_album_details[A: CleanedAlbum](self, albums: list[A], label: str) -> list[A]:
        needing = [album for album in albums if album_needs_enrichment(album)]
        logger.info("%s: %d of %d need enrichment", label, len(needing), len(albums))

        tracks = await self._fetch_tracks(album.lookup_id for album in needing)
        album_ids = {
            album.lookup_id: track.album.id
            for album in needing
            if (track := tracks.get(album.lookup_id)) is not None and track.album is not None and track.album.id
        }
        catalog = await self._fetch_albums(album_ids.values())

        enriched = 0
        result = []
        for album in albums:
            track = tracks.get(album.lookup_id)
            album_id = album_ids.get(album.lookup_id)
            # The track's embedded album stands in when the album batch failed.
            source = catalog.get(album_id) if album_id else None
            if source is None and track is not None:
                source = track.album
            if source is not None and album_needs_enrichment(album):
                album = self._with_canonical_name(album, apply_album(album, source))
                enriched += 1
            result.append(album)
        logger.info("%s: enriched %d", label, enriched)
        return result

    def _with_canonical_name[A: CleanedAlbum](self, before: A, after: A) -> A:
        canonical = self._rules.canonical_name(before.album.name, before.first_artist) or self._rules.canonical_name(
            after.album.name, after.first_artist
        )
        if not canonical:
            return after
        return after.model_copy(update={"album": after.album.model_copy(update={"name": canonical})})

    # -------------------------------------------------------------------
    # Cached, batched catalog lookups
    # -------------------------------------------------------------------

    async def _fetch_tracks(self, track_ids: Iterable[str]) -> dict[str, SpotifyTrack]:
        async def fetch(batch: list[str]) -> dict[str, SpotifyTrack]:
            return {track.id: track for track in await self._require_client().get_tracks(batch) if track.id}

        return await self._fetch_cached("tracks", track_ids, TRACKS_BATCH_LIMIT, self._tracks, fetch)

    async def _fetch_albums(self, album_ids: Iterable[str]) -> dict[str, SpotifyAlbumSimplified]:
        async def fetch(batch: list[str]) -> dict[str, SpotifyAlbumSimplified]:
            return dict(await self._require_client().get_albums(batch))

        return await self._fetch_cached("albums", album_ids, ALBUMS_BATCH_LIMIT, self._albums, fetch)

    async def _fetch_artists(self, artist_ids: Iterable[str]) -> dict[str, SpotifyArtistFull]:
        return await self._fetch_cached(
            "artists", artist_ids, ARTISTS_BATCH_LIMIT, self._artists, self._require_client().get_artists
        )

    async def _fetch_cached[T](
        self,
        kind: str,
        ids: Iterable[str],
        batch_size: int,
        cache: dict[str, T],
        fetch: Callable[[list[str]], Awaitable[dict[str, T]]],
    ) -> dict[str, T]:
        wanted = list(dict.fromkeys(i for i in ids if is_catalog_id(i)))
        missing = [i for i in wanted if i not in cache]
        if missing:
            cache.update(await self._fetch_in_batches(kind, missing, batch_size, fetch))
        return {i: cache[i] for i in wanted if i in cache}

    async def _fetch_in_batches[T](
        self,
        kind: str,
        ids: list[str],
        batch_size: int,
        fetch: Callable[[list[str]], Awaitable[dict[str, T]]],
    ) -> dict[str, T]:
        """Fetch ids in sequential batches with a pacing delay in between.

        A failed batch is logged and skipped; earlier results are kept.
        """
        batches = chunked(ids, batch_size)
        results: dict[str, T] = {}
        failed = 0

        for index, batch in enumerate(batches):
            if index:
                await asyncio.sleep(self._batch_pacing)
            try:
                results.update(await fetch(batch))
            except _BATCH_ERRORS as exc:
                failed += 1
                logger.warning(
                    "Spotify %s batch %d/%d failed, skipping %d ids: %s",
                    kind,
                    index + 1,
                    len(batches),
                    len(batch),
                    exc,
                )

        logger.info(
            "Fetched %d/%d %s in %d batches (%d failed)",
            len(results),
            len(ids),
            kind,
            len(batches),
            failed,
        )
        return results

    def _require_client(self) -> CatalogClient:
        if self._client is None:
            raise RuntimeError("MetadataEnricher.connect() must succeed before fetching")
        return self._client
