"""Listening-history loading and normalization package."""

from history_cleaner.history.loader import HistoryLoadError, find_latest_history_file, load_history
from history_cleaner.history.models import (
    DeclaredTrack,
    HistoryFormat,
    HistoryMetadata,
    Image,
    ListeningHistory,
    RawPlayEvent,
    TrackInfo,
)
from history_cleaner.history.normalizers import normalize_history_song

__all__ = [
    "DeclaredTrack",
    "HistoryFormat",
    "HistoryLoadError",
    "HistoryMetadata",
    "Image",
    "ListeningHistory",
    "RawPlayEvent",
    "TrackInfo",
    "find_latest_history_file",
    "load_history",
    "normalize_history_song",
]
