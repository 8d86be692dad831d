"""Streaming loader for listening-history files."""

import logging
from pathlib import Path

import ijson  # type: ignore[import-untyped]
from pydantic import ValidationError

from history_cleaner.history.constants import HISTORY_FILE_PATTERNS, METADATA_PREFIX, SONGS_PREFIX
from history_cleaner.history.models import DeclaredTrack, ListeningHistory, RawPlayEvent
from history_cleaner.history.normalizers import normalize_history_song, normalize_metadata

logger = logging.getLogger(__name__)


class HistoryLoadError(Exception):
    """Raised when a history file is missing or cannot be parsed."""


def find_latest_history_file(history_dir: Path) -> Path | None:
    """Return the newest history file under history_dir, or None.

    Merged-history files are preferred over complete-history files; within a
    family the greatest numeric timestamp wins.
    """
    if not history_dir.is_dir():
        return None

    for pattern in HISTORY_FILE_PATTERNS:
        candidates: list[tuple[int, Path]] = []
        for path in history_dir.rglob("*.json"):
            match = pattern.search(path.name)
            if match:
                candidates.append((int(match.group(1)), path))
        if candidates:
            return max(candidates)[1]

    return None


def load_history(path: Path) -> ListeningHistory:
    """Load and normalize a history file of either schema.

    The metadata block is read first, then songs are streamed one by one.

    Raises:
        HistoryLoadError: If the file is missing or is not valid history JSON.
    """
    if not path.is_file():
        raise HistoryLoadError(f"History file not found: {path}")

    tracks: list[DeclaredTrack] = []
    events: list[RawPlayEvent] = []

    try:
        with path.open("rb") as f:
            raw_metadata = next(ijson.items(f, METADATA_PREFIX, use_float=True), None)

        with path.open("rb") as f:
            for raw_song in ijson.items(f, SONGS_PREFIX, use_float=True):
                if not isinstance(raw_song, dict):
                    continue
                normalized = normalize_history_song(raw_song)
                if normalized is None:
                    continue
                declared, song_events = normalized
                tracks.append(declared)
                events.extend(song_events)
    except (ijson.JSONError, ValidationError, UnicodeDecodeError) as exc:
        raise HistoryLoadError(f"Failed to parse history file {path}: {exc}") from exc

    if raw_metadata is None and not tracks:
        raise HistoryLoadError(f"History file {path} has no metadata or songs")

    metadata = normalize_metadata(raw_metadata if isinstance(raw_metadata, dict) else None, tracks)
    logger.info(
        "Loaded %s history from %s: %d songs, %d events",
        metadata.format.value,
        path.name,
        len(tracks),
        len(events),
    )
    return ListeningHistory(metadata=metadata, tracks=tracks, events=events)
