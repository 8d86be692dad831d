"""Yearly and hourly listening statistics computed from raw play events."""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from history_cleaner.constants import DEFAULT_STATS_TOP_N, HOURS_PER_DAY, MS_PER_HOUR, UNKNOWN_ALBUM
from history_cleaner.consolidation.keys import artist_key, pair_key
from history_cleaner.history.models import Image, RawPlayEvent
from history_cleaner.models import (
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    DetailedStats,
    HourBucket,
    TopAlbum,
    TopArtist,
    TopSong,
    YearBucket,
    YearlyTopItems,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Tally:
    play_count: int = 0
    total_ms: int = 0
    track_ids: set[str] = field(default_factory=set)
    images: list[Image] = field(default_factory=list)

    def add(self, event: RawPlayEvent) -> None:
        self.play_count += 1
        self.total_ms += event.ms_played
        self.track_ids.add(event.track_id)


def to_hours(ms: int) -> float:
    return round(ms / MS_PER_HOUR, 2)


def max_height(images: Sequence[Image]) -> int:
    return max((img.height or 0 for img in images), default=0)


def prefer_higher_resolution(current: list[Image], candidate: Sequence[Image]) -> list[Image]:
    """Keep the image set with the greatest max height; the first non-empty set wins ties."""
    if not candidate:
        return current
    if not current or max_height(candidate) > max_height(current):
        return list(candidate)
    return current


def compute_stats(
    events: Iterable[RawPlayEvent],
    *,
    top_n: int = DEFAULT_STATS_TOP_N,
    total_listening_events: int | None = None,
) -> DetailedStats:
    """Fold play events into yearly totals, per-year leaderboards and an hourly histogram.

    Years and hours come from ``played_at`` as recorded. Each year's top
    songs, artists and albums are sorted by play count (stable) and truncated
    to ``top_n``. All 24 hourly buckets are always present.

    Args:
        events: Raw play events.
        top_n: Leaderboard size per year.
        total_listening_events: Event total declared by the history metadata;
            defaults to the number of events folded.
    """
    years: dict[str, _Tally] = {}
    hours = {hour: _Tally() for hour in range(HOURS_PER_DAY)}
    songs: dict[str, dict[str, tuple[_Tally, str, str]]] = {}
    artists: dict[str, dict[str, _Tally]] = {}
    albums: dict[str, dict[tuple[str, str], _Tally]] = {}
    folded = 0

    for event in events:
        folded += 1
        track = event.track
        year = str(event.played_at.year)
        artist = track.display_artist
        album_images = list(track.album.images)

        hours[event.played_at.hour].add(event)
        years.setdefault(year, _Tally()).add(event)

        song_tally, _, _ = songs.setdefault(year, {}).setdefault(event.track_id, (_Tally(), track.name, artist))
        song_tally.add(event)
        if not song_tally.images and album_images:
            song_tally.images = album_images

        artist_tally = artists.setdefault(year, {}).setdefault(artist, _Tally())
        artist_tally.add(event)
        artist_tally.images = prefer_higher_resolution(artist_tally.images, album_images)

        album_name = track.album.name or UNKNOWN_ALBUM
        album_tally = albums.setdefault(year, {}).setdefault((album_name, artist), _Tally())
        album_tally.add(event)
        album_tally.images = prefer_higher_resolution(album_tally.images, album_images)

    yearly_listening_time = [
        YearBucket(
            year=year,
            total_listening_time_ms=tally.total_ms,
            total_listening_hours=to_hours(tally.total_ms),
            play_count=tally.play_count,
        )
        for year, tally in sorted(years.items())
    ]

    yearly_top_items = [
        YearlyTopItems(
            year=year,
            top_songs=[
                TopSong(
                    song_id=song_id,
                    name=name,
                    artist=artist,
                    play_count=tally.play_count,
                    total_listening_time_ms=tally.total_ms,
                    images=tally.images,
                )
                for song_id, (tally, name, artist) in _top(songs[year].items(), top_n, lambda item: item[1][0])
            ],
            top_artists=[
                TopArtist(
                    artist_name=name,
                    play_count=tally.play_count,
                    total_listening_time_ms=tally.total_ms,
                    unique_songs=len(tally.track_ids),
                    images=tally.images,
                )
                for name, tally in _top(artists[year].items(), top_n, lambda item: item[1])
            ],
            top_albums=[
                TopAlbum(
                    album_name=album_name,
                    artist=artist,
                    play_count=tally.play_count,
                    total_listening_time_ms=tally.total_ms,
                    unique_songs=len(tally.track_ids),
                    images=tally.images,
                )
                for (album_name, artist), tally in _top(albums[year].items(), top_n, lambda item: item[1])
            ],
        )
        for year in sorted(songs)
    ]

    hourly = [
        HourBucket(
            hour=hour,
            total_listening_time_ms=tally.total_ms,
            total_listening_hours=to_hours(tally.total_ms),
            play_count=tally.play_count,
        )
        for hour, tally in sorted(hours.items())
    ]

    total_hours = to_hours(sum(tally.total_ms for tally in years.values()))
    stats = DetailedStats(
        yearly_listening_time=yearly_listening_time,
        yearly_top_items=yearly_top_items,
        total_listening_hours=total_hours,
        total_listening_days=round(total_hours / HOURS_PER_DAY, 2),
        total_listening_events=total_listening_events if total_listening_events is not None else folded,
        hourly_listening_distribution=hourly,
    )
    logger.info("Computed stats over %d events across %d years", folded, len(yearly_listening_time))
    return stats


def _top[T](items: Iterable[T], limit: int, tally_of: Callable[[T], _Tally]) -> list[T]:
    return sorted(items, key=lambda item: tally_of(item).play_count, reverse=True)[:limit]


def backfill_stat_images(
    stats: DetailedStats,
    songs: Iterable[CleanedSong],
    artists: Iterable[CleanedArtist],
    albums: Iterable[CleanedAlbum],
) -> DetailedStats:
    """Copy images from enriched collections into the per-year leaderboards.

    Artist entries take the catalog artist photo when one is known (the
    album-art fallback is only a proxy); song and album entries are filled
    only when they have no images yet. No network calls are made.
    """
    song_images: dict[str, list[Image]] = {}
    for song in songs:
        if song.album.images:
            for song_id in (song.song_id, *song.original_song_ids):
                song_images.setdefault(song_id, song.album.images)
    artist_images = {artist_key(a.artist.name): a.artist.images for a in artists if a.artist.images}
    album_images = {pair_key(a.album.name, a.first_artist): a.album.images for a in albums if a.album.images}

    filled = 0
    items: list[YearlyTopItems] = []
    for year_items in stats.yearly_top_items:
        top_songs = []
        for song in year_items.top_songs:
            if not song.images and song.song_id in song_images:
                song = song.model_copy(update={"images": list(song_images[song.song_id])})
                filled += 1
            top_songs.append(song)

        top_artists = []
        for artist in year_items.top_artists:
            images = artist_images.get(artist_key(artist.artist_name))
            if images:
                artist = artist.model_copy(update={"images": list(images)})
                filled += 1
            top_artists.append(artist)

        top_albums = []
        for album in year_items.top_albums:
            images = album_images.get(pair_key(album.album_name, album.artist))
            if not album.images and images:
                album = album.model_copy(update={"images": list(images)})
                filled += 1
            top_albums.append(album)

        items.append(
            year_items.model_copy(
                update={"top_songs": top_songs, "top_artists": top_artists, "top_albums": top_albums}
            )
        )

    logger.info("Back-filled %d stats images from enriched collections", filled)
    return stats.model_copy(update={"yearly_top_items": items})
