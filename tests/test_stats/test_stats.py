"""Tests for listening statistics."""

from datetime import UTC, datetime

from history_cleaner.history.models import Image, RawPlayEvent, TrackAlbum, TrackArtist, TrackInfo
from history_cleaner.models import (
    AlbumDetails,
    ArtistDetails,
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    SongAlbum,
    SongArtist,
    SongDetails,
)
from history_cleaner.stats import backfill_stat_images, compute_stats, prefer_higher_resolution

SMALL = Image(url="https://i.scdn.co/image/small", height=64, width=64)
LARGE = Image(url="https://i.scdn.co/image/large", height=640, width=640)
PHOTO = Image(url="https://i.scdn.co/image/photo", height=320, width=320)


def _track(song_id: str, artist: str = "Artist", album: str = "Album", images: tuple[Image, ...] = ()) -> TrackInfo:
    return TrackInfo(
        song_id=song_id,
        name=f"Song {song_id}",
        artists=(artist,),
        album=TrackAlbum(name=album, images=images),
        artist=TrackArtist(name=artist),
    )


def _event(track: TrackInfo, played_at: datetime, ms: int = 60000) -> RawPlayEvent:
    return RawPlayEvent(track_id=track.song_id, played_at=played_at, ms_played=ms, track=track)


def test_two_years_produce_two_buckets() -> None:
    """Events in two years yield two ascending year buckets with summed listening time."""
    track = _track("t1")
    events = [
        _event(track, datetime(2021, 3, 1, tzinfo=UTC), 1000),
        _event(track, datetime(2020, 5, 1, tzinfo=UTC), 2000),
        _event(track, datetime(2021, 4, 1, tzinfo=UTC), 3000),
    ]

    stats = compute_stats(events)

    assert [(y.year, y.total_listening_time_ms, y.play_count) for y in stats.yearly_listening_time] == [
        ("2020", 2000, 1),
        ("2021", 4000, 2),
    ]
    assert [y.year for y in stats.yearly_top_items] == ["2020", "2021"]
    assert stats.total_listening_events == 3


def test_top_songs_truncated_and_sorted() -> None:
    """Each year's top songs hold at most five entries, most played first."""
    events = []
    for i in range(8):
        track = _track(f"t{i}")
        events.extend(_event(track, datetime(2022, 1, 1 + j, tzinfo=UTC)) for j in range(i + 1))

    stats = compute_stats(events)

    top_songs = stats.yearly_top_items[0].top_songs
    assert len(top_songs) == 5
    assert [s.play_count for s in top_songs] == [8, 7, 6, 5, 4]
    assert top_songs[0].song_id == "t7"


def test_artist_unique_songs_and_resolution() -> None:
    """Artist entries count distinct songs and keep the highest-resolution artwork."""
    first = _track("t1", images=(SMALL,))
    second = _track("t2", images=(LARGE,))
    events = [
        _event(first, datetime(2022, 1, 1, tzinfo=UTC)),
        _event(first, datetime(2022, 1, 2, tzinfo=UTC)),
        _event(second, datetime(2022, 1, 3, tzinfo=UTC)),
    ]

    artist = compute_stats(events).yearly_top_items[0].top_artists[0]

    assert artist.artist_name == "Artist"
    assert artist.play_count == 3
    assert artist.unique_songs == 2
    assert artist.images == [LARGE]


def test_hourly_distribution_always_has_24_buckets() -> None:
    """All 24 hours are present and zero-filled."""
    track = _track("t1")
    stats = compute_stats([_event(track, datetime(2022, 1, 1, 23, 30, tzinfo=UTC), 3_600_000)])

    hours = stats.hourly_listening_distribution
    assert [h.hour for h in hours] == list(range(24))
    assert hours[23].play_count == 1
    assert hours[23].total_listening_hours == 1.0
    assert sum(h.play_count for h in hours) == 1
    assert stats.total_listening_hours == 1.0
    assert stats.total_listening_days == 0.04


def test_empty_history_still_has_hours() -> None:
    """No events yields empty years but a full hourly histogram."""
    stats = compute_stats([])
    assert stats.yearly_listening_time == []
    assert len(stats.hourly_listening_distribution) == 24
    assert stats.total_listening_events == 0


def test_declared_event_total_is_reported() -> None:
    """A declared event total overrides the folded count."""
    stats = compute_stats([], total_listening_events=42)
    assert stats.total_listening_events == 42


def test_prefer_higher_resolution() -> None:
    """The larger image set wins; empty candidates never replace."""
    assert prefer_higher_resolution([SMALL], [LARGE]) == [LARGE]
    assert prefer_higher_resolution([LARGE], [SMALL]) == [LARGE]
    assert prefer_higher_resolution([SMALL], []) == [SMALL]
    assert prefer_higher_resolution([], [SMALL]) == [SMALL]


def test_backfill_stat_images_from_collections() -> None:
    """Leaderboard entries take images from the enriched collections."""
    track = _track("t1", artist="Queen", album="A Night at the Opera")
    stats = compute_stats([_event(track, datetime(2022, 1, 1, tzinfo=UTC))])

    songs = [
        CleanedSong(
            song_id="t1",
            song=SongDetails(name="Song t1"),
            album=SongAlbum(name="A Night at the Opera", images=[LARGE]),
            artist=SongArtist(name="Queen"),
        )
    ]
    artists = [CleanedArtist(artist=ArtistDetails(name="queen", images=[PHOTO]))]
    albums = [CleanedAlbum(album=AlbumDetails(name="A Night at the Opera", artists=["Queen"], images=[LARGE]))]

    filled = backfill_stat_images(stats, songs, artists, albums).yearly_top_items[0]

    assert filled.top_songs[0].images == [LARGE]
    assert filled.top_artists[0].images == [PHOTO]
    assert filled.top_albums[0].images == [LARGE]


def test_stats_serialize_with_camel_case_keys() -> None:
    """Stats dump to the camelCase keys of the stats file."""
    track = _track("t1")
    data = compute_stats([_event(track, datetime(2022, 1, 1, tzinfo=UTC))]).model_dump(by_alias=True)

    assert "yearlyListeningTime" in data
    assert "hourlyListeningDistribution" in data
    assert "topSongs" in data["yearlyTopItems"][0]
    assert "totalListeningTimeMs" in data["yearlyListeningTime"][0]
