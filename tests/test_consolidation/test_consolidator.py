"""Tests for the Consolidator fold."""

from history_cleaner.consolidation.consolidator import Consolidator, merge_top_songs, merge_yearly_play_time
from history_cleaner.consolidation.rules import ConsolidationRule, RuleTable
from history_cleaner.history.models import Image
from history_cleaner.models import (
    AlbumDetails,
    AlbumSong,
    AlbumWithSongs,
    ArtistDetails,
    ArtistTopSong,
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    SongAlbum,
    SongArtist,
    SongDetails,
    YearlyPlayTime,
)

ABBEY_ROAD = ConsolidationRule(
    artist_name="The Beatles",
    base_album_name="Abbey Road",
    variations=("Abbey Road (2019 Remaster)",),
)
COVER = Image(url="https://i.scdn.co/image/cover", height=640, width=640)


def _consolidator(*rules: ConsolidationRule) -> Consolidator:
    return Consolidator(RuleTable.from_rules(list(rules)))


def _song(
    song_id: str,
    count: int,
    name: str = "Let It Be",
    artist: str = "The Beatles",
    images: list[Image] | None = None,
) -> CleanedSong:
    return CleanedSong(
        song_id=song_id,
        count=count,
        consolidated_count=count,
        duration_ms=count * 1000,
        song=SongDetails(name=name),
        album=SongAlbum(name="Let It Be", images=images or []),
        artist=SongArtist(name=artist),
        original_song_ids=[song_id],
    )


def _album(album_id: str, name: str, count: int, artist: str = "The Beatles") -> CleanedAlbum:
    return CleanedAlbum(
        count=count,
        consolidated_count=count,
        total_count=count,
        differents=1,
        primary_album_id=album_id,
        album=AlbumDetails(name=name, artists=[artist]),
        original_album_ids=[album_id],
    )


def _album_song(song_id: str, name: str, plays: int) -> AlbumSong:
    return AlbumSong(song_id=song_id, name=name, play_count=plays, total_listening_time_ms=plays * 100, artists=["X"])


def _album_with_songs(album_id: str, count: int, songs: list[AlbumSong]) -> AlbumWithSongs:
    return AlbumWithSongs(
        count=count,
        consolidated_count=count,
        total_count=count,
        primary_album_id=album_id,
        album=AlbumDetails(name="Album", artists=["X"]),
        original_album_ids=[album_id],
    ).with_songs(songs)


# --- Songs ---


def test_duplicate_songs_merge_counts_and_lineage() -> None:
    """Two records of the same song fold into one with summed count and first-seen lineage."""
    result = _consolidator().consolidate_songs([_song("id-a", 5), _song("id-b", 3)])

    assert len(result) == 1
    merged = result[0]
    assert merged.count == 8
    assert merged.consolidated_count == 8
    assert merged.original_song_ids == ["id-a", "id-b"]
    assert merged.song_id == "id-a"


def test_song_keys_ignore_case_and_whitespace() -> None:
    """Case and whitespace variants of a name consolidate."""
    result = _consolidator().consolidate_songs(
        [_song("a", 2, name="Let It Be"), _song("b", 1, name=" let it be ", artist="THE BEATLES ")]
    )
    assert len(result) == 1
    assert result[0].song.name == "Let It Be"


def test_consolidation_conserves_counts() -> None:
    """Total count is the same before and after consolidation."""
    songs = [_song("a", 5), _song("b", 3, name="Help!"), _song("c", 2), _song("d", 1, name="help!")]

    result = _consolidator().consolidate_songs(songs)

    assert sum(s.count for s in result) == sum(s.count for s in songs)
    assert [s.count for s in result] == [7, 4]


def test_consolidation_is_idempotent() -> None:
    """Consolidating an already consolidated collection changes nothing."""
    consolidator = _consolidator()
    once = consolidator.consolidate_songs([_song("a", 5), _song("b", 3), _song("c", 1, name="Help!")])
    twice = consolidator.consolidate_songs(once)

    assert [s.model_dump() for s in twice] == [s.model_dump() for s in once]


def test_images_from_less_played_duplicate_fill_gap() -> None:
    """A less-played duplicate with images supplies them when the canonical entry has none."""
    result = _consolidator().consolidate_songs([_song("a", 5), _song("b", 3, images=[COVER])])

    assert result[0].album.images == [COVER]
    assert result[0].song_id == "a"


def test_existing_images_are_not_regressed() -> None:
    """A duplicate without images never clears the canonical entry's images."""
    result = _consolidator().consolidate_songs([_song("a", 5, images=[COVER]), _song("b", 3)])
    assert result[0].album.images == [COVER]


def test_blank_artist_songs_consolidate_under_unknown() -> None:
    """Songs with a blank artist are grouped, not dropped."""
    result = _consolidator().consolidate_songs([_song("a", 2, artist=""), _song("b", 1, artist="  ")])
    assert len(result) == 1
    assert result[0].count == 3


def test_yearly_play_time_is_merged() -> None:
    """Yearly listening time sums per year, ascending."""
    merged = merge_yearly_play_time(
        [YearlyPlayTime(year="2021", total_listening_time_ms=5)],
        [
            YearlyPlayTime(year="2020", total_listening_time_ms=1),
            YearlyPlayTime(year="2021", total_listening_time_ms=2),
        ],
    )
    assert [(y.year, y.total_listening_time_ms) for y in merged] == [("2020", 1), ("2021", 7)]


# --- Albums ---


def test_album_variation_merges_under_canonical_name() -> None:
    """A rule variation and the plain album merge under the rule's casing."""
    albums = [_album("al-1", "Abbey Road (2019 Remaster)", 6), _album("al-2", "abbey road", 4)]

    result = _consolidator(ABBEY_ROAD).consolidate_albums(albums)

    assert len(result) == 1
    assert result[0].album.name == "Abbey Road"
    assert result[0].count == 10
    assert result[0].original_album_ids == ["al-1", "al-2"]


def test_albums_without_rule_stay_apart() -> None:
    """Without a rule, differently named albums are not merged."""
    albums = [_album("al-1", "Abbey Road (2019 Remaster)", 6), _album("al-2", "Abbey Road", 4)]
    assert len(_consolidator().consolidate_albums(albums)) == 2


def test_albums_with_songs_merge_overlapping_tracks() -> None:
    """Overlapping songs sum their plays; the others appear once, unmodified."""
    left = _album_with_songs("al-1", 5, [_album_song("s1", "Shared", 3), _album_song("s2", "Left Only", 2)])
    right = _album_with_songs("al-2", 4, [_album_song("s3", "shared", 1), _album_song("s4", "Right Only", 3)])

    result = _consolidator().consolidate_albums_with_songs([left, right])

    assert len(result) == 1
    songs = {s.name: s for s in result[0].songs}
    assert songs["Shared"].play_count == 4
    assert songs["Left Only"] == _album_song("s2", "Left Only", 2)
    assert songs["Right Only"] == _album_song("s4", "Right Only", 3)
    assert result[0].total_songs == 3
    assert result[0].played_songs == 3
    assert result[0].unplayed_songs == 0


def test_album_song_duplicates_take_more_played_id() -> None:
    """Within one album, duplicate songs merge and the more-played copy provides the id."""
    songs = _consolidator().consolidate_album_songs(
        [_album_song("s1", "Song", 1), _album_song("s2", "song", 5)]
    )
    assert len(songs) == 1
    assert songs[0].song_id == "s2"
    assert songs[0].play_count == 6


# --- Artists ---


def test_artists_merge_by_name_and_top_songs() -> None:
    """Artist records merge case-insensitively and merge their top songs."""
    first = CleanedArtist(
        count=4,
        primary_artist_id="t1",
        artist=ArtistDetails(name="Queen"),
        top_songs=[ArtistTopSong(song_id="t1", name="Bohemian Rhapsody", play_count=4, total_listening_time_ms=400)],
    )
    second = CleanedArtist(
        count=2,
        primary_artist_id="t2",
        artist=ArtistDetails(name="queen"),
        top_songs=[ArtistTopSong(song_id="t2", name="bohemian rhapsody", play_count=2, total_listening_time_ms=200)],
    )

    result = _consolidator().consolidate_artists([first, second])

    assert len(result) == 1
    assert result[0].artist.name == "Queen"
    assert result[0].original_artist_ids == ["t1", "t2"]
    assert result[0].top_songs[0].play_count == 6


def test_top_songs_keep_five_by_listening_time() -> None:
    """Merged top songs are trimmed to five by listening time."""
    songs = [ArtistTopSong(song_id=str(i), name=f"Song {i}", total_listening_time_ms=i) for i in range(8)]
    merged = merge_top_songs(songs)
    assert [s.song_id for s in merged] == ["7", "6", "5", "4", "3"]
