"""Merge records that describe the same song, album or artist.

Every kind shares one fold: records arrive pre-sorted by descending play
count, the first record seen for a key becomes its canonical entry, and later
records are folded in by a per-kind reducer that returns a new entry. Counts
and lineage accumulate; display metadata is swapped only when the incoming
record is more played or supplies images the canonical entry lacks.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from history_cleaner.constants import ARTIST_TOP_ITEMS
from history_cleaner.consolidation.keys import album_song_key, artist_key, normalize_text, song_key
from history_cleaner.consolidation.rules import RuleTable
from history_cleaner.models import (
    AlbumSong,
    AlbumWithSongs,
    ArtistTopAlbum,
    ArtistTopSong,
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    ConsolidatedEntity,
    YearlyPlayTime,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Fold[E: ConsolidatedEntity]:
    """Canonical entry for one key plus the own count of its display-metadata source."""

    entity: E
    display_count: int


def should_swap_display(
    existing_has_images: bool,
    incoming_has_images: bool,
    incoming_count: int,
    display_count: int,
) -> bool:
    """More-played wins; otherwise a record with images replaces one without."""
    return incoming_count > display_count or (not existing_has_images and incoming_has_images)


def merge_yearly_play_time(*series: Iterable[YearlyPlayTime]) -> list[YearlyPlayTime]:
    totals: dict[str, int] = {}
    for entries in series:
        for entry in entries:
            totals[entry.year] = totals.get(entry.year, 0) + entry.total_listening_time_ms
    return [YearlyPlayTime(year=year, total_listening_time_ms=ms) for year, ms in sorted(totals.items())]


def extend_lineage(existing: Sequence[str], incoming: Sequence[str], fallback_id: str) -> list[str]:
    """Append the incoming record's lineage (or its own id) in first-seen order."""
    added = list(incoming) if incoming else ([fallback_id] if fallback_id else [])
    return [*existing, *added]


def earliest(a: str | None, b: str | None) -> str | None:
    if a and b:
        return min(a, b)
    return a or b


class Consolidator:
    """Consolidates ranked collections using a RuleTable for album aliasing."""

    def __init__(self, rules: RuleTable) -> None:
        self._rules = rules

    @property
    def rules(self) -> RuleTable:
        return self._rules

    # --- Public API ---

    def consolidate_songs(self, songs: Iterable[CleanedSong]) -> list[CleanedSong]:
        """Merge songs by (name, album artist)."""
        return self._consolidate(
            songs,
            key=lambda s: song_key(s.song.name, s.artist.name),
            seed=self._seed_song,
            merge=self._merge_song,
            label="Songs",
        )

    def consolidate_albums(self, albums: Iterable[CleanedAlbum]) -> list[CleanedAlbum]:
        """Merge albums by alias-resolved (name, first artist)."""
        return self._consolidate(
            albums,
            key=self._album_key,
            seed=self._seed_album,
            merge=self._merge_album,
            label="Albums",
        )

    def consolidate_albums_with_songs(self, albums: Iterable[AlbumWithSongs]) -> list[AlbumWithSongs]:
        """Merge albums by alias-resolved (name, first artist), also merging their song lists."""
        return self._consolidate(
            albums,
            key=self._album_key,
            seed=self._seed_album_with_songs,
            merge=self._merge_album_with_songs,
            label="Albums with songs",
        )

    def consolidate_artists(self, artists: Iterable[CleanedArtist]) -> list[CleanedArtist]:
        """Merge artists by name."""
        return self._consolidate(
            artists,
            key=lambda a: artist_key(a.artist.name),
            seed=self._seed_artist,
            merge=self._merge_artist,
            label="Artists",
        )

    def consolidate_album_songs(self, songs: Iterable[AlbumSong]) -> list[AlbumSong]:
        """Merge duplicate songs inside one album by (name, joined artists).

        The more-played duplicate provides the song id and links.
        """
        merged: dict[str, tuple[AlbumSong, int]] = {}
        for song in songs:
            key = album_song_key(song.name, song.artists)
            current = merged.get(key)
            if current is None:
                merged[key] = (song, song.play_count)
                continue

            existing, own_plays = current
            update: dict[str, object] = {
                "play_count": existing.play_count + song.play_count,
                "total_listening_time_ms": existing.total_listening_time_ms + song.total_listening_time_ms,
            }
            if song.play_count > own_plays:
                update.update(
                    song_id=song.song_id,
                    external_urls=song.external_urls or existing.external_urls,
                    preview_url=song.preview_url or existing.preview_url,
                )
                own_plays = song.play_count
            merged[key] = (existing.model_copy(update=update), own_plays)

        return [song for song, _ in merged.values()]

    # --- Shared fold ---

    def _consolidate[E: ConsolidatedEntity](
        self,
        records: Iterable[E],
        *,
        key: Callable[[E], str],
        seed: Callable[[E], E],
        merge: Callable[[Fold[E], E], Fold[E]],
        label: str,
    ) -> list[E]:
        folds: dict[str, Fold[E]] = {}
        total = 0

        for record in records:
            total += 1
            record_key = key(record)
            current = folds.get(record_key)
            if current is None:
                folds[record_key] = Fold(entity=seed(record), display_count=record.count)
            else:
                folds[record_key] = merge(current, record)

        result = sorted((fold.entity for fold in folds.values()), key=lambda e: e.count, reverse=True)
        logger.info("%s: %d -> %d (%d duplicates removed)", label, total, len(result), total - len(result))
        return result

    @staticmethod
    def _accumulate(existing: ConsolidatedEntity, incoming: ConsolidatedEntity) -> dict[str, object]:
        return {
            "count": existing.count + incoming.count,
            "consolidated_count": existing.consolidated_count + (incoming.consolidated_count or incoming.count),
            "duration_ms": existing.duration_ms + incoming.duration_ms,
            "count_30_days_ago": existing.count_30_days_ago + incoming.count_30_days_ago,
            "yearly_play_time": merge_yearly_play_time(existing.yearly_play_time, incoming.yearly_play_time),
        }

    # --- Songs ---

    def _seed_song(self, song: CleanedSong) -> CleanedSong:
        canonical = self._rules.canonical_name(song.album.name, song.artist.name)
        return song.model_copy(
            update={
                "consolidated_count": song.consolidated_count or song.count,
                "original_song_ids": list(song.original_song_ids) or [song.song_id],
                "album": song.album.model_copy(update={"name": canonical}) if canonical else song.album,
            }
        )

    def _merge_song(self, fold: Fold[CleanedSong], incoming: CleanedSong) -> Fold[CleanedSong]:
        existing = fold.entity
        update = self._accumulate(existing, incoming)
        update["original_song_ids"] = extend_lineage(
            existing.original_song_ids, incoming.original_song_ids, incoming.song_id
        )

        display_count = fold.display_count
        if should_swap_display(bool(existing.album.images), bool(incoming.album.images), incoming.count, display_count):
            update["album"] = existing.album.model_copy(
                update={"images": list(incoming.album.images or existing.album.images)}
            )
            update["song"] = existing.song.model_copy(
                update={
                    "external_urls": dict(incoming.song.external_urls or existing.song.external_urls),
                    "preview_url": incoming.song.preview_url or existing.song.preview_url,
                }
            )
            display_count = max(display_count, incoming.count)

        return Fold(entity=existing.model_copy(update=update), display_count=display_count)

    # --- Albums ---

    def _album_key(self, album: CleanedAlbum) -> str:
        return self._rules.normalize(album.album.name, album.first_artist)

    def _album_name(self, album: CleanedAlbum) -> str | None:
        return self._rules.canonical_name(album.album.name, album.first_artist)

    def _seed_album[A: CleanedAlbum](self, album: A) -> A:
        canonical = self._album_name(album)
        return album.model_copy(
            update={
                "consolidated_count": album.consolidated_count or album.count,
                "original_album_ids": list(album.original_album_ids) or [album.primary_album_id],
                "album": album.album.model_copy(update={"name": canonical}) if canonical else album.album,
            }
        )

    def _merge_album_fields[A: CleanedAlbum](
        self, fold: Fold[A], incoming: CleanedAlbum
    ) -> tuple[dict[str, object], int]:
        existing = fold.entity
        update = self._accumulate(existing, incoming)
        update.update(
            total_count=existing.total_count + incoming.total_count,
            total_duration_ms=existing.total_duration_ms + incoming.total_duration_ms,
            differents=existing.differents + incoming.differents,
            original_album_ids=extend_lineage(
                existing.original_album_ids, incoming.original_album_ids, incoming.primary_album_id
            ),
            earliest_played_at=earliest(existing.earliest_played_at, incoming.earliest_played_at),
        )

        details = existing.album
        canonical = self._album_name(existing) or self._album_name(incoming)
        if canonical:
            details = details.model_copy(update={"name": canonical})

        display_count = fold.display_count
        if should_swap_display(bool(details.images), bool(incoming.album.images), incoming.count, display_count):
            details = details.model_copy(
                update={
                    "images": list(incoming.album.images or details.images),
                    "external_urls": dict(incoming.album.external_urls or details.external_urls),
                }
            )
            if not canonical and incoming.count > display_count:
                details = details.model_copy(update={"name": incoming.album.name})
            display_count = max(display_count, incoming.count)

        update["album"] = details
        return update, display_count

    def _merge_album(self, fold: Fold[CleanedAlbum], incoming: CleanedAlbum) -> Fold[CleanedAlbum]:
        update, display_count = self._merge_album_fields(fold, incoming)
        return Fold(entity=fold.entity.model_copy(update=update), display_count=display_count)

    def _seed_album_with_songs(self, album: AlbumWithSongs) -> AlbumWithSongs:
        seeded = self._seed_album(album)
        songs = sorted(seeded.songs, key=lambda s: s.play_count, reverse=True)
        return seeded.with_songs(songs)

    def _merge_album_with_songs(self, fold: Fold[AlbumWithSongs], incoming: AlbumWithSongs) -> Fold[AlbumWithSongs]:
        update, display_count = self._merge_album_fields(fold, incoming)

        songs: dict[str, AlbumSong] = {album_song_key(s.name, s.artists): s for s in fold.entity.songs}
        for song in incoming.songs:
            key = album_song_key(song.name, song.artists)
            current = songs.get(key)
            if current is None:
                songs[key] = song
            else:
                songs[key] = current.model_copy(
                    update={
                        "play_count": current.play_count + song.play_count,
                        "total_listening_time_ms": current.total_listening_time_ms + song.total_listening_time_ms,
                    }
                )

        merged_songs = sorted(songs.values(), key=lambda s: s.play_count, reverse=True)
        # Song counts are recomputed from the merged list, not summed.
        merged = fold.entity.model_copy(update=update).with_songs(merged_songs)
        return Fold(entity=merged, display_count=display_count)

    # --- Artists ---

    def _seed_artist(self, artist: CleanedArtist) -> CleanedArtist:
        return artist.model_copy(
            update={
                "consolidated_count": artist.consolidated_count or artist.count,
                "original_artist_ids": list(artist.original_artist_ids) or [artist.primary_artist_id],
            }
        )

    def _merge_artist(self, fold: Fold[CleanedArtist], incoming: CleanedArtist) -> Fold[CleanedArtist]:
        existing = fold.entity
        update = self._accumulate(existing, incoming)
        update.update(
            total_count=existing.total_count + incoming.total_count,
            total_duration_ms=existing.total_duration_ms + incoming.total_duration_ms,
            differents=existing.differents + incoming.differents,
            original_artist_ids=extend_lineage(
                existing.original_artist_ids, incoming.original_artist_ids, incoming.primary_artist_id
            ),
            top_songs=merge_top_songs(existing.top_songs, incoming.top_songs),
            top_albums=self.merge_top_albums(
                existing.top_albums, incoming.top_albums, artist_name=existing.artist.name
            ),
        )

        display_count = fold.display_count
        details = existing.artist
        if should_swap_display(bool(details.images), bool(incoming.artist.images), incoming.count, display_count):
            details = details.model_copy(
                update={
                    "images": list(incoming.artist.images or details.images),
                    "external_urls": dict(incoming.artist.external_urls or details.external_urls),
                }
            )
            if incoming.count > display_count:
                details = details.model_copy(update={"name": incoming.artist.name})
            display_count = max(display_count, incoming.count)
        update["artist"] = details

        return Fold(entity=existing.model_copy(update=update), display_count=display_count)

    def merge_top_albums(
        self,
        *groups: Iterable[ArtistTopAlbum],
        artist_name: str = "",
    ) -> list[ArtistTopAlbum]:
        """Merge per-artist album leaderboards by alias-resolved name; keep the top five by listening time."""
        merged: dict[str, tuple[ArtistTopAlbum, int]] = {}
        for albums in groups:
            for album in albums:
                key = self._rules.normalize_name(album.name, artist_name)
                current = merged.get(key)
                if current is None:
                    canonical = self._rules.canonical_name(album.name, artist_name)
                    seeded = album.model_copy(update={"name": canonical}) if canonical else album
                    merged[key] = (seeded, album.play_count)
                    continue
                existing, own_plays = current
                update: dict[str, object] = {
                    "play_count": existing.play_count + album.play_count,
                    "total_listening_time_ms": existing.total_listening_time_ms + album.total_listening_time_ms,
                }
                if should_swap_display(bool(existing.images), bool(album.images), album.play_count, own_plays):
                    update["primary_album_id"] = album.primary_album_id
                    update["images"] = list(album.images or existing.images)
                    own_plays = max(own_plays, album.play_count)
                merged[key] = (existing.model_copy(update=update), own_plays)

        return _top_by_listening_time([album for album, _ in merged.values()])


def merge_top_songs(*groups: Iterable[ArtistTopSong]) -> list[ArtistTopSong]:
    """Merge per-artist song leaderboards by song name; keep the top five by listening time."""
    merged: dict[str, tuple[ArtistTopSong, int]] = {}
    for songs in groups:
        for song in songs:
            key = normalize_text(song.name)
            current = merged.get(key)
            if current is None:
                merged[key] = (song, song.play_count)
                continue
            existing, own_plays = current
            update: dict[str, object] = {
                "play_count": existing.play_count + song.play_count,
                "total_listening_time_ms": existing.total_listening_time_ms + song.total_listening_time_ms,
            }
            if should_swap_display(bool(existing.album.images), bool(song.album.images), song.play_count, own_plays):
                update["song_id"] = song.song_id
                update["album"] = existing.album.model_copy(
                    update={"images": list(song.album.images or existing.album.images)}
                )
                own_plays = max(own_plays, song.play_count)
            merged[key] = (existing.model_copy(update=update), own_plays)

    return _top_by_listening_time([song for song, _ in merged.values()])


def _top_by_listening_time[T: (ArtistTopSong, ArtistTopAlbum)](items: list[T]) -> list[T]:
    return sorted(items, key=lambda i: i.total_listening_time_ms, reverse=True)[:ARTIST_TOP_ITEMS]

