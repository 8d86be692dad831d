"""Leaderboard truncation and ranking."""

from collections.abc import Callable, Sequence

from history_cleaner.consolidation.keys import artist_key, pair_key
from history_cleaner.models import CleanedAlbum, CleanedArtist, CleanedSong, ConsolidatedEntity


def rank_collection[E: ConsolidatedEntity](entities: Sequence[E], limit: int) -> list[E]:
    """Truncate an already-sorted collection to ``limit`` and assign 1-based ranks."""
    return [entity.model_copy(update={"rank": index}) for index, entity in enumerate(entities[:limit], start=1)]


def song_identities(song: CleanedSong) -> list[str]:
    return [song.song_id, *song.original_song_ids]


def album_identities(album: CleanedAlbum) -> list[str]:
    ids = [pair_key(album.album.name, album.first_artist)]
    if album.primary_album_id:
        ids.append(album.primary_album_id)
    return ids


def artist_identities(artist: CleanedArtist) -> list[str]:
    ids = [artist_key(artist.artist.name)]
    if artist.primary_artist_id:
        ids.append(artist.primary_artist_id)
    return ids


def rank_with_previous[E: ConsolidatedEntity](
    entities: Sequence[E],
    limit: int,
    identities: Callable[[E], list[str]],
) -> list[E]:
    """Rank a collection and attach the rank each entry held at the start of the recent window.

    The previous ranking orders the same entries by ``count_30_days_ago``
    (stable, top ``limit``); entries with no plays before the window get
    no previous rank. Entries are matched to it through any of their
    identities: lineage ids, display key or representative id.
    """
    previous = sorted(
        (e for e in entities if e.count_30_days_ago > 0),
        key=lambda e: e.count_30_days_ago,
        reverse=True,
    )[:limit]
    previous_ranks: dict[str, int] = {}
    for index, entity in enumerate(previous, start=1):
        for identity in identities(entity):
            previous_ranks.setdefault(identity, index)

    def previous_rank(entity: E) -> int | None:
        return next((previous_ranks[i] for i in identities(entity) if i in previous_ranks), None)

    return [
        entity.model_copy(update={"rank_30_days_ago": previous_rank(entity)})
        for entity in rank_collection(entities, limit)
    ]
