"""Normalizers that convert raw history JSON records into the format-agnostic models.

Both legacy schemas share the per-song layout (``listeningEvents`` arrays);
they differ only in the metadata block, which is resolved here once.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from history_cleaner.history.constants import COMPLETE_EVENTS_FIELD, MERGED_EVENTS_FIELD
from history_cleaner.history.models import (
    DeclaredTrack,
    HistoryFormat,
    HistoryMetadata,
    Image,
    RawPlayEvent,
    TrackAlbum,
    TrackArtist,
    TrackInfo,
)

logger = logging.getLogger(__name__)


def detect_format(raw_metadata: dict[str, Any] | None) -> HistoryFormat:
    """Return MERGED when the metadata declares ``totalPlayEvents``, otherwise COMPLETE."""
    if raw_metadata and raw_metadata.get(MERGED_EVENTS_FIELD) is not None:
        return HistoryFormat.MERGED
    return HistoryFormat.COMPLETE


def normalize_metadata(raw_metadata: dict[str, Any] | None, tracks: list[DeclaredTrack]) -> HistoryMetadata:
    """Normalize the metadata block of either schema.

    ``total_listening_events`` is always populated: merged files declare it as
    ``totalPlayEvents``; complete files may omit it, in which case it is
    derived from the per-song event arrays.
    """
    raw = raw_metadata or {}
    history_format = detect_format(raw)
    date_range = raw.get("dateRange") or {}

    if history_format is HistoryFormat.MERGED:
        total_events = _as_int(raw.get(MERGED_EVENTS_FIELD))
    elif raw.get(COMPLETE_EVENTS_FIELD) is not None:
        total_events = _as_int(raw.get(COMPLETE_EVENTS_FIELD))
    else:
        total_events = sum(t.event_count for t in tracks)

    declared_time = raw.get("totalListeningTime")
    if history_format is HistoryFormat.MERGED or declared_time is None:
        total_time = sum(t.total_listening_ms for t in tracks)
    else:
        total_time = _as_int(declared_time)

    return HistoryMetadata(
        format=history_format,
        total_songs=_as_int(raw.get("totalSongs", len(tracks))),
        total_listening_events=total_events,
        total_listening_time_ms=total_time,
        earliest=date_range.get("earliest"),
        latest=date_range.get("latest"),
        timestamp=raw.get("timestamp"),
        source=raw.get("source"),
    )


def normalize_history_song(raw: dict[str, Any]) -> tuple[DeclaredTrack, list[RawPlayEvent]] | None:
    """Normalize one song record into its declared track and play events.

    Returns None if the record has no song id or a malformed album or artist
    block. Malformed events and events with an unparseable ``playedAt`` are
    skipped with a warning.
    """
    song_id = raw.get("songId")
    if not song_id or not isinstance(song_id, str):
        logger.warning("Skipping song record without songId: %r", raw.get("name"))
        return None

    for field in ("album", "artist"):
        if raw.get(field) is not None and not isinstance(raw[field], dict):
            logger.warning("Skipping song %s with malformed %s: %r", song_id, field, raw[field])
            return None

    try:
        track = _build_track(song_id, raw)
    except ValidationError as exc:
        logger.warning("Skipping song %s with invalid fields: %s", song_id, exc)
        return None

    events: list[RawPlayEvent] = []
    for raw_event in raw.get("listeningEvents") or []:
        if not isinstance(raw_event, dict):
            logger.warning("Skipping malformed event for song %s: %r", song_id, raw_event)
            continue
        event = _normalize_event(track, raw_event)
        if event is not None:
            events.append(event)

    declared_plays = raw.get("playCount")
    declared_time = raw.get("totalListeningTime")
    declared = DeclaredTrack(
        track=track,
        play_count=_as_int(declared_plays) if declared_plays is not None else len(events),
        total_listening_ms=(
            _as_int(declared_time) if declared_time is not None else sum(e.ms_played for e in events)
        ),
        event_count=len(events),
    )
    return declared, events


def _build_track(song_id: str, raw: dict[str, Any]) -> TrackInfo:
    album = raw.get("album") or {}
    artist = raw.get("artist") or {}
    external_urls = raw.get("external_urls") or {}
    return TrackInfo(
        song_id=song_id,
        name=str(raw.get("name") or ""),
        duration_ms=_as_int(raw.get("duration_ms")),
        artists=tuple(str(a) for a in raw.get("artists") or [] if a),
        album=TrackAlbum(
            id=str(album.get("id") or ""),
            name=str(album.get("name") or ""),
            images=tuple(Image.model_validate(img) for img in album.get("images") or [] if img),
        ),
        artist=TrackArtist(
            name=str(artist.get("name") or ""),
            genres=tuple(str(g) for g in artist.get("genres") or []),
        ),
        external_urls={str(k): str(v) for k, v in external_urls.items() if v},
        preview_url=raw.get("preview_url") or None,
    )


def _normalize_event(track: TrackInfo, raw_event: dict[str, Any]) -> RawPlayEvent | None:
    played_at_str = raw_event.get("playedAt")
    if not isinstance(played_at_str, str):
        logger.warning("Skipping event without playedAt for song %s", track.song_id)
        return None

    try:
        played_at = datetime.fromisoformat(played_at_str.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Skipping event with unparseable playedAt: %s", played_at_str)
        return None

    return RawPlayEvent(
        track_id=track.song_id,
        played_at=played_at,
        ms_played=_as_int(raw_event.get("msPlayed")),
        track=track,
    )


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0
