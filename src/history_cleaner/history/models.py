"""Normalized data models for listening-history records.

Both legacy history schemas map onto these format-agnostic models.
"""

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from history_cleaner.constants import UNKNOWN_ARTIST


class HistoryFormat(enum.StrEnum):
    """Legacy history file shapes."""

    MERGED = "merged"  # metadata.totalPlayEvents (merged-streaming-history-*.json)
    COMPLETE = "complete"  # metadata.totalListeningEvents (complete-listening-history-*.json)


class Image(BaseModel):
    """Artwork reference (album cover or artist photo)."""

    url: str
    height: int | None = None
    width: int | None = None


class TrackAlbum(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    images: tuple[Image, ...] = ()


class TrackArtist(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    genres: tuple[str, ...] = ()


class TrackInfo(BaseModel):
    """Descriptive fields of one source track, consistent per song_id."""

    model_config = ConfigDict(frozen=True)

    song_id: str
    name: str = ""
    duration_ms: int = 0
    artists: tuple[str, ...] = ()
    album: TrackAlbum = Field(default_factory=TrackAlbum)
    artist: TrackArtist = Field(default_factory=TrackArtist)
    external_urls: dict[str, str] = Field(default_factory=dict)
    preview_url: str | None = None

    @property
    def primary_artist(self) -> str:
        """Album-level artist name, falling back to the first track artist."""
        return (self.artist.name or (self.artists[0] if self.artists else "")).strip()

    @property
    def first_artist(self) -> str:
        """First credited track artist, falling back to the album-level artist."""
        return ((self.artists[0] if self.artists else "") or self.artist.name).strip()

    @property
    def display_artist(self) -> str:
        return self.primary_artist or UNKNOWN_ARTIST


class RawPlayEvent(BaseModel):
    """A single listening occurrence of a track."""

    model_config = ConfigDict(frozen=True)

    track_id: str
    played_at: datetime
    ms_played: int
    track: TrackInfo

    @property
    def event_id(self) -> str:
        return f"{self.track_id}@{self.played_at.isoformat()}"


class HistoryMetadata(BaseModel):
    """Metadata block normalized from either history format."""

    format: HistoryFormat
    total_songs: int = 0
    total_listening_events: int = 0
    total_listening_time_ms: int = 0
    earliest: str | None = None
    latest: str | None = None
    timestamp: str | None = None
    source: str | None = None


class DeclaredTrack(BaseModel):
    """A track record as shipped in the history file, with its declared totals."""

    track: TrackInfo
    play_count: int = 0
    total_listening_ms: int = 0
    event_count: int = 0


class ListeningHistory(BaseModel):
    """A loaded history file: metadata, the declared tracks, and the raw event stream."""

    metadata: HistoryMetadata
    tracks: list[DeclaredTrack] = Field(default_factory=list)
    events: list[RawPlayEvent] = Field(default_factory=list)
