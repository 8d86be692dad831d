"""Tests for building raw collection records from track summaries."""

from datetime import UTC, datetime

from history_cleaner.aggregation import aggregate
from history_cleaner.builders import CollectionBuilder
from history_cleaner.consolidation.consolidator import Consolidator
from history_cleaner.consolidation.rules import ConsolidationRule, RuleTable
from history_cleaner.history.models import Image, RawPlayEvent, TrackAlbum, TrackArtist, TrackInfo

CUTOFF = datetime(2024, 6, 1, tzinfo=UTC)
COVER = Image(url="https://i.scdn.co/image/cover", height=300, width=300)


def _track(
    song_id: str,
    name: str,
    album: str,
    artist: str = "The Beatles",
    album_id: str = "",
    images: tuple[Image, ...] = (),
) -> TrackInfo:
    return TrackInfo(
        song_id=song_id,
        name=name,
        duration_ms=180000,
        artists=(artist,),
        album=TrackAlbum(id=album_id, name=album, images=images),
        artist=TrackArtist(name=artist),
    )


def _plays(track: TrackInfo, *months: int, year: int = 2024) -> list[RawPlayEvent]:
    return [
        RawPlayEvent(track_id=track.song_id, played_at=datetime(year, m, 1, tzinfo=UTC), ms_played=1000, track=track)
        for m in months
    ]


def _builder(*rules: ConsolidationRule) -> CollectionBuilder:
    return CollectionBuilder(Consolidator(RuleTable.from_rules(list(rules))), recent_cutoff=CUTOFF)


def test_song_records_carry_window_and_yearly_time() -> None:
    """Song records count plays before the window and split listening time by year."""
    track = _track("t1", "Something", "Abbey Road")
    events = [*_plays(track, 1, 7), *_plays(track, 12, year=2023)]

    songs = _builder().build_songs(aggregate(events))

    assert len(songs) == 1
    song = songs[0]
    assert song.count == 3
    assert song.count_30_days_ago == 2
    assert [(y.year, y.total_listening_time_ms) for y in song.yearly_play_time] == [("2023", 1000), ("2024", 2000)]
    assert song.original_song_ids == ["t1"]


def test_artist_representative_is_most_recent_track() -> None:
    """The artist's representative id is the most recently played track."""
    old = _track("old", "Yesterday", "Help!")
    new = _track("new", "Come Together", "Abbey Road")
    events = [*_plays(old, 1, 2, 3), *_plays(new, 5)]

    artists = _builder().build_artists(aggregate(events))

    assert len(artists) == 1
    artist = artists[0]
    assert artist.primary_artist_id == "new"
    assert artist.count == 4
    assert artist.differents == 2
    assert [s.name for s in artist.top_songs] == ["Yesterday", "Come Together"]
    assert {a.name for a in artist.top_albums} == {"Help!", "Abbey Road"}


def test_artist_top_albums_use_rule_names() -> None:
    """Top albums fold rule variations under the base name."""
    rule = ConsolidationRule(
        artist_name="The Beatles", base_album_name="Abbey Road", variations=("Abbey Road (Remaster)",)
    )
    a = _track("a", "Something", "Abbey Road (Remaster)")
    b = _track("b", "Because", "Abbey Road")

    artists = _builder(rule).build_artists(aggregate([*_plays(a, 1), *_plays(b, 2)]))

    assert [(t.name, t.play_count) for t in artists[0].top_albums] == [("Abbey Road", 2)]


def test_albums_grouped_by_source_album_id() -> None:
    """Tracks sharing an album id form one album; songs keep their own counts."""
    one = _track("t1", "Something", "Abbey Road", album_id="al1", images=(COVER,))
    two = _track("t2", "Because", "Abbey Road", album_id="al1")
    other = _track("t3", "Help!", "Help!", album_id="al2")
    events = [*_plays(one, 1, 2, 3), *_plays(two, 4), *_plays(other, 5)]

    albums = _builder().build_albums_with_songs(aggregate(events))

    assert [a.album.name for a in albums] == ["Abbey Road", "Help!"]
    abbey = albums[0]
    assert abbey.count == 4
    assert abbey.total_songs == 2
    assert abbey.played_songs == 2
    assert abbey.album.artists == ["The Beatles"]
    assert abbey.album.images == [COVER]
    assert abbey.primary_album_id == "t1"
    assert abbey.original_album_ids == ["al1"]
    assert abbey.earliest_played_at == datetime(2024, 1, 1, tzinfo=UTC).isoformat()
    assert [(s.song_id, s.play_count) for s in abbey.songs] == [("t1", 3), ("t2", 1)]


def test_album_without_name_uses_placeholder() -> None:
    """Albums with a blank name are kept under Unknown Album."""
    track = _track("t1", "Demo", "")
    albums = _builder().build_albums_with_songs(aggregate(_plays(track, 1)))
    assert albums[0].album.name == "Unknown Album"


def test_album_display_artist_is_most_common() -> None:
    """Featured artists do not split an album; the most common first artist is shown."""
    main = _track("t1", "One", "Collab", artist="Main", album_id="al1")
    main_two = _track("t2", "Two", "Collab", artist="Main", album_id="al1")
    featured = _track("t3", "Three", "Collab", artist="Guest", album_id="al1")
    events = [*_plays(main, 1), *_plays(main_two, 2), *_plays(featured, 3)]

    albums = _builder().build_albums_with_songs(aggregate(events))

    assert len(albums) == 1
    assert albums[0].album.artists == ["Main"]
    assert albums[0].total_songs == 3
