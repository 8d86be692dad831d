"""Build raw per-kind collection records from track summaries.

Records come out sorted by descending play count, ready for consolidation.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import datetime

from history_cleaner.aggregation import TrackSummary
from history_cleaner.constants import UNKNOWN_ALBUM
from history_cleaner.consolidation.consolidator import Consolidator, merge_top_songs
from history_cleaner.consolidation.keys import normalize_text
from history_cleaner.history.models import RawPlayEvent
from history_cleaner.models import (
    AlbumDetails,
    AlbumSong,
    AlbumWithSongs,
    ArtistDetails,
    ArtistTopAlbum,
    ArtistTopSong,
    CleanedArtist,
    CleanedSong,
    SongAlbum,
    SongArtist,
    SongDetails,
    YearlyPlayTime,
)

logger = logging.getLogger(__name__)


def yearly_play_time(events: Iterable[RawPlayEvent]) -> list[YearlyPlayTime]:
    """Listening time per calendar year, ascending by year."""
    totals: dict[str, int] = {}
    for event in events:
        year = str(event.played_at.year)
        totals[year] = totals.get(year, 0) + event.ms_played
    return [YearlyPlayTime(year=year, total_listening_time_ms=ms) for year, ms in sorted(totals.items())]


def sort_by_play_count(summaries: Iterable[TrackSummary]) -> list[TrackSummary]:
    return sorted(summaries, key=lambda s: s.play_count, reverse=True)


class CollectionBuilder:
    """Derives song, artist and album records from track summaries.

    ``recent_cutoff`` marks the start of the recent window: plays strictly
    before it feed the ``count_30_days_ago`` fields.
    """

    def __init__(self, consolidator: Consolidator, recent_cutoff: datetime) -> None:
        self._consolidator = consolidator
        self._rules = consolidator.rules
        self._cutoff = recent_cutoff

    # --- Songs ---

    def build_songs(self, summaries: Iterable[TrackSummary]) -> list[CleanedSong]:
        songs = [self._song(summary) for summary in sort_by_play_count(summaries)]
        logger.debug("Built %d song records", len(songs))
        return songs

    def _song(self, summary: TrackSummary) -> CleanedSong:
        track = summary.track
        return CleanedSong(
            duration_ms=summary.total_listening_ms,
            count=summary.play_count,
            consolidated_count=summary.play_count,
            count_30_days_ago=summary.plays_before(self._cutoff),
            yearly_play_time=yearly_play_time(summary.events),
            song_id=summary.track_id,
            song=SongDetails(name=track.name, preview_url=track.preview_url, external_urls=dict(track.external_urls)),
            album=SongAlbum(name=track.album.name, images=list(track.album.images)),
            artist=SongArtist(name=track.display_artist, genres=list(track.artist.genres)),
            original_song_ids=[summary.track_id],
        )

    # --- Artists ---

    def build_artists(self, summaries: Iterable[TrackSummary]) -> list[CleanedArtist]:
        groups: dict[str, list[TrackSummary]] = {}
        for summary in sort_by_play_count(summaries):
            groups.setdefault(summary.track.display_artist, []).append(summary)

        artists = sort_by_count([self._artist(name, members) for name, members in groups.items()])
        logger.debug("Built %d artist records", len(artists))
        return artists

    def _artist(self, name: str, members: list[TrackSummary]) -> CleanedArtist:
        # The most recently played track is the representative; old tracks may
        # carry stale catalog metadata.
        representative = members[0]
        latest: datetime | None = None
        for summary in members:
            played = summary.last_played_at
            if played is not None and (latest is None or played > latest):
                latest, representative = played, summary

        plays = sum(s.play_count for s in members)
        listening = sum(s.total_listening_ms for s in members)
        top_songs = merge_top_songs(
            [
                ArtistTopSong(
                    song_id=s.track_id,
                    name=s.name,
                    play_count=s.play_count,
                    total_listening_time_ms=s.total_listening_ms,
                    album=SongAlbum(name=s.album_name, images=s.album_images),
                )
                for s in members
            ]
        )
        top_albums = self._consolidator.merge_top_albums(
            [
                ArtistTopAlbum(
                    primary_album_id=s.track_id,
                    name=s.album_name.strip(),
                    play_count=s.play_count,
                    total_listening_time_ms=s.total_listening_ms,
                    images=s.album_images,
                    artists=list(s.track.artists) or [name],
                )
                for s in members
                if s.album_name.strip()
            ],
            artist_name=name,
        )

        return CleanedArtist(
            duration_ms=sum(s.duration_ms for s in members),
            count=plays,
            consolidated_count=plays,
            count_30_days_ago=sum(s.plays_before(self._cutoff) for s in members),
            yearly_play_time=yearly_play_time(e for s in members for e in s.events),
            differents=len(members),
            primary_artist_id=representative.track_id,
            total_count=plays,
            total_duration_ms=listening,
            artist=ArtistDetails(name=name, genres=list(representative.track.artist.genres)),
            original_artist_ids=[representative.track_id],
            top_songs=top_songs,
            top_albums=top_albums,
        )

    # --- Albums ---

    def build_albums_with_songs(self, summaries: Iterable[TrackSummary]) -> list[AlbumWithSongs]:
        """Group tracks by source album; every track is kept in its album's song list."""
        groups: dict[str, list[TrackSummary]] = {}
        for summary in sort_by_play_count(summaries):
            groups.setdefault(self._album_group(summary), []).append(summary)

        albums = sort_by_count([self._album(members) for members in groups.values()])
        logger.debug("Built %d album records", len(albums))
        return albums

    def _album_group(self, summary: TrackSummary) -> str:
        album = summary.track.album
        if album.id:
            return f"id:{album.id}"
        name = self._rules.normalize_name(album.name or UNKNOWN_ALBUM, summary.track.first_artist)
        return f"name:{name}|{normalize_text(summary.track.first_artist)}"

    def _album(self, members: list[TrackSummary]) -> AlbumWithSongs:
        artist = _most_common(s.track.first_artist for s in members) or members[0].track.display_artist
        name = self._album_name(members, artist)
        representative = next(
            (s for s in members if normalize_text(s.album_name) == normalize_text(name) and s.album_images),
            next((s for s in members if s.album_images), members[0]),
        )

        songs = self._consolidator.consolidate_album_songs(
            AlbumSong(
                song_id=s.track_id,
                name=s.name,
                duration_ms=s.duration_ms,
                preview_url=s.track.preview_url,
                external_urls=dict(s.track.external_urls),
                play_count=s.play_count,
                total_listening_time_ms=s.total_listening_ms,
                artists=list(s.track.artists),
            )
            for s in members
        )
        songs.sort(key=lambda s: s.play_count, reverse=True)

        plays = sum(s.play_count for s in members)
        listening = sum(s.total_listening_ms for s in members)
        events = [e for s in members for e in s.events]
        first_play = min((e.played_at for e in events), default=None)

        return AlbumWithSongs(
            duration_ms=listening,
            count=plays,
            consolidated_count=plays,
            count_30_days_ago=sum(s.plays_before(self._cutoff) for s in members),
            yearly_play_time=yearly_play_time(events),
            differents=len(members),
            primary_album_id=representative.track_id,
            total_count=plays,
            total_duration_ms=listening,
            album=AlbumDetails(
                name=name,
                artists=[artist],
                images=representative.album_images,
                genres=list(representative.track.artist.genres),
            ),
            original_album_ids=_unique(s.track.album.id for s in members if s.track.album.id),
            earliest_played_at=first_play.isoformat() if first_play else None,
        ).with_songs(songs)

    def _album_name(self, members: Sequence[TrackSummary], artist: str) -> str:
        """Rule base name if any member matches a rule, otherwise the most common spelling."""
        for summary in members:
            canonical = self._rules.canonical_name(summary.album_name, artist)
            if canonical:
                return canonical
        return _most_common(s.album_name for s in members) or UNKNOWN_ALBUM


def sort_by_count[T: (CleanedArtist, AlbumWithSongs)](records: list[T]) -> list[T]:
    return sorted(records, key=lambda r: r.count, reverse=True)


def _most_common(values: Iterable[str]) -> str:
    """Most frequent non-blank value, compared case-insensitively; first spelling seen wins."""
    counts: Counter[str] = Counter()
    spelling: dict[str, str] = {}
    for value in values:
        stripped = value.strip()
        if not stripped:
            continue
        key = stripped.lower()
        counts[key] += 1
        spelling.setdefault(key, stripped)
    if not counts:
        return ""
    return spelling[counts.most_common(1)[0][0]]


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))
