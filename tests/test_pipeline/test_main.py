"""Tests for the command-line entry point."""

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from history_cleaner.main import main


@pytest.fixture
def cleaner_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REFRESH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HISTORY_DIR", str(tmp_path / "history"))
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "cleaned"))
    monkeypatch.setenv("RULES_PATH", str(tmp_path / "rules.json"))
    monkeypatch.setenv("LOG_FORMAT", "text")
    yield tmp_path
    root.handlers[:] = handlers
    root.setLevel(level)


async def test_missing_history_exits_with_error(cleaner_env: Path) -> None:
    """No history file means a non-zero exit code and nothing written."""
    assert await main() == 1
    assert not (cleaner_env / "cleaned").exists()


async def test_unparseable_history_exits_with_error(cleaner_env: Path) -> None:
    """A corrupt history file is reported and no snapshot is written."""
    history_dir = cleaner_env / "history"
    history_dir.mkdir()
    (history_dir / "merged-streaming-history-1700000000000.json").write_text("{broken", encoding="utf-8")

    assert await main() == 1
    assert not (cleaner_env / "cleaned").exists()


async def test_successful_run_writes_snapshot(cleaner_env: Path) -> None:
    """A valid history file produces the cleaned files without credentials."""
    history_dir = cleaner_env / "history"
    history_dir.mkdir()
    song = {
        "songId": "t1",
        "name": "Something",
        "artists": ["The Beatles"],
        "album": {"id": "al1", "name": "Abbey Road"},
        "artist": {"name": "The Beatles"},
        "listeningEvents": [{"playedAt": "2024-01-01T10:00:00Z", "msPlayed": 60000}],
    }
    (history_dir / "merged-streaming-history-1700000000000.json").write_text(
        json.dumps({"metadata": {"totalPlayEvents": 1}, "songs": [song]}), encoding="utf-8"
    )

    assert await main() == 0

    names = sorted(p.name.rsplit("-", 1)[0] for p in (cleaner_env / "cleaned").iterdir())
    assert names == [
        "cleaned-albums",
        "cleaned-albums-with-songs",
        "cleaned-artists",
        "cleaned-songs",
        "detailed-stats",
    ]
