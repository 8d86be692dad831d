"""End-to-end tests for CleanerPipeline."""

import json
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from history_cleaner.constants import EntityKind
from history_cleaner.consolidation.rules import ConsolidationRule, RuleTable
from history_cleaner.history import HistoryLoadError
from history_cleaner.history.models import (
    HistoryFormat,
    HistoryMetadata,
    ListeningHistory,
    RawPlayEvent,
    TrackAlbum,
    TrackArtist,
    TrackInfo,
)
from history_cleaner.pipeline import CleanerPipeline
from history_cleaner.settings import CleanerSettings
from history_cleaner.snapshots import SnapshotStore

NOW = datetime(2024, 6, 30, tzinfo=UTC)
ABBEY_ROAD = ConsolidationRule(
    artist_name="The Beatles", base_album_name="Abbey Road", variations=("Abbey Road (2019 Remaster)",)
)


def _track(song_id: str, name: str, album: str, album_id: str, artist: str) -> TrackInfo:
    return TrackInfo(
        song_id=song_id,
        name=name,
        duration_ms=200000,
        artists=(artist,),
        album=TrackAlbum(id=album_id, name=album),
        artist=TrackArtist(name=artist),
    )


def _plays(track: TrackInfo, *dates: datetime) -> list[RawPlayEvent]:
    return [RawPlayEvent(track_id=track.song_id, played_at=d, ms_played=60000, track=track) for d in dates]


def _history() -> ListeningHistory:
    remaster = _track("t1", "Something", "Abbey Road (2019 Remaster)", "al1", "The Beatles")
    original = _track("t2", "Something", "Abbey Road", "al2", "The Beatles")
    queen = _track("t3", "Bohemian Rhapsody", "A Night at the Opera", "al3", "Queen")
    events = [
        *_plays(remaster, *(datetime(2024, m, 1, tzinfo=UTC) for m in (1, 2, 3))),
        *_plays(original, datetime(2024, 4, 1, tzinfo=UTC), datetime(2024, 5, 1, tzinfo=UTC)),
        *_plays(queen, datetime(2024, 6, 25, tzinfo=UTC)),
    ]
    return ListeningHistory(metadata=HistoryMetadata(format=HistoryFormat.MERGED), events=events)


def _settings(**overrides: object) -> CleanerSettings:
    values: dict[str, object] = {"ENRICHMENT_ENABLED": False, "BATCH_PACING_SECONDS": 0}
    values.update(overrides)
    return CleanerSettings(**values)  # type: ignore[arg-type]


def _pipeline(settings: CleanerSettings | None = None, **kwargs: object) -> CleanerPipeline:
    return CleanerPipeline(
        settings or _settings(),
        rules=RuleTable.from_rules([ABBEY_ROAD]),
        now=NOW,
        **kwargs,  # type: ignore[arg-type]
    )


async def test_collections_are_consolidated_and_ranked() -> None:
    """Duplicate songs and album variants merge; ranks and previous ranks are assigned."""
    result = await _pipeline().run(_history())

    assert [(s.song.name, s.count, s.rank, s.rank_30_days_ago) for s in result.songs] == [
        ("Something", 5, 1, 1),
        ("Bohemian Rhapsody", 1, 2, None),
    ]
    assert [(a.album.name, a.count) for a in result.albums] == [("Abbey Road", 5), ("A Night at the Opera", 1)]
    assert [a.artist.name for a in result.artists] == ["The Beatles", "Queen"]
    assert result.enriched is False


async def test_totals_track_duplicates_removed() -> None:
    """Per-collection totals record counts before and after consolidation."""
    result = await _pipeline().run(_history())

    songs = result.totals[EntityKind.SONGS]
    assert (songs.original_total, songs.consolidated_total, songs.duplicates_removed) == (3, 2, 1)
    albums = result.totals[EntityKind.ALBUMS]
    assert (albums.original_total, albums.consolidated_total) == (3, 2)
    assert result.totals[EntityKind.ARTISTS].duplicates_removed == 0


async def test_albums_with_songs_merge_song_breakdown() -> None:
    """Album variants merge their song lists; the shared song sums its plays."""
    result = await _pipeline().run(_history())

    abbey = result.albums_with_songs[0]
    assert abbey.album.name == "Abbey Road"
    assert abbey.original_album_ids == ["al1", "al2"]
    assert [(s.name, s.play_count) for s in abbey.songs] == [("Something", 5)]
    assert (abbey.total_songs, abbey.played_songs, abbey.unplayed_songs) == (1, 1, 0)


async def test_leaderboards_are_truncated() -> None:
    """Collections are cut to their configured size after consolidation."""
    result = await _pipeline(_settings(TOP_SONGS_LIMIT=1, TOP_ARTISTS_LIMIT=1)).run(_history())

    assert [s.song.name for s in result.songs] == ["Something"]
    assert [a.artist.name for a in result.artists] == ["The Beatles"]
    assert result.totals[EntityKind.SONGS].consolidated_total == 2


async def test_stats_cover_all_events() -> None:
    """Statistics are computed over every raw event."""
    result = await _pipeline().run(_history())

    assert result.stats.total_listening_events == 6
    assert result.total_listening_events == 6
    assert [y.play_count for y in result.stats.yearly_listening_time] == [6]


async def test_enrichment_runs_with_verified_token(tmp_path: Path) -> None:
    """A verified token enables enrichment and marks the result as enriched."""
    tokens = AsyncMock()
    tokens.get_valid_token.return_value = "access-token"
    tokens.test_token.return_value = True
    catalog = MagicMock()
    catalog.get_tracks = AsyncMock(return_value=[])
    factory = MagicMock(return_value=catalog)

    result = await _pipeline(
        _settings(ENRICHMENT_ENABLED=True),
        token_provider=tokens,
        client_factory=factory,
        snapshot_store=SnapshotStore(tmp_path),
    ).run(_history())

    assert result.enriched is True
    factory.assert_called_once()
    assert factory.call_args.args == ("access-token",)


async def test_rejected_token_skips_enrichment() -> None:
    """A token that fails verification leaves the run unenriched."""
    tokens = AsyncMock()
    tokens.get_valid_token.return_value = "access-token"
    tokens.test_token.return_value = False
    factory = MagicMock()

    result = await _pipeline(_settings(ENRICHMENT_ENABLED=True), token_provider=tokens, client_factory=factory).run(
        _history()
    )

    assert result.enriched is False
    factory.assert_not_called()
    assert len(result.songs) == 2


async def test_run_file_loads_history(tmp_path: Path) -> None:
    """A history file on disk is loaded and cleaned."""
    path = tmp_path / "merged-streaming-history-1700000000000.json"
    song = {
        "songId": "t1",
        "name": "Something",
        "artists": ["The Beatles"],
        "album": {"id": "al1", "name": "Abbey Road"},
        "artist": {"name": "The Beatles"},
        "listeningEvents": [{"playedAt": "2024-01-01T10:00:00Z", "msPlayed": 60000}],
    }
    path.write_text(json.dumps({"metadata": {"totalPlayEvents": 1}, "songs": [song]}), encoding="utf-8")

    result = await _pipeline().run_file(path)

    assert [s.song_id for s in result.songs] == ["t1"]
    assert result.total_listening_events == 1


async def test_run_file_missing_raises(tmp_path: Path) -> None:
    """A missing history file raises HistoryLoadError."""
    with pytest.raises(HistoryLoadError):
        await _pipeline().run_file(tmp_path / "missing.json")
