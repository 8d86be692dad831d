"""Fold raw play events into per-track summaries."""

import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from history_cleaner.history.models import DeclaredTrack, Image, RawPlayEvent, TrackInfo

logger = logging.getLogger(__name__)


class TrackSummary(BaseModel):
    """Play totals for one distinct track id.

    ``events`` keeps the contributing plays in memory so builders can derive
    yearly and windowed counts without another pass over the history.
    """

    track_id: str
    track: TrackInfo
    play_count: int = 0
    total_listening_ms: int = 0
    events: list[RawPlayEvent] = Field(default_factory=list)

    @property
    def contributing_event_ids(self) -> list[str]:
        return [e.event_id for e in self.events]

    @property
    def name(self) -> str:
        return self.track.name

    @property
    def artist_name(self) -> str:
        return self.track.primary_artist

    @property
    def album_name(self) -> str:
        return self.track.album.name

    @property
    def album_images(self) -> list[Image]:
        return list(self.track.album.images)

    @property
    def duration_ms(self) -> int:
        return self.track.duration_ms

    @property
    def last_played_at(self) -> datetime | None:
        return max((e.played_at for e in self.events), default=None)

    def plays_before(self, cutoff: datetime) -> int:
        """Number of contributing plays strictly older than cutoff."""
        return sum(1 for e in self.events if _comparable(e.played_at, cutoff) < cutoff)


def aggregate(
    events: Iterable[RawPlayEvent],
    tracks: Iterable[DeclaredTrack] | None = None,
) -> list[TrackSummary]:
    """Group events by track id and sum their plays and listening time.

    Descriptive fields come from the first event seen for each track. When
    ``tracks`` is given, declared tracks that have no events keep their
    declared play count and listening time instead of being dropped.

    Output order is first-seen order (event tracks first, then event-less
    declared tracks).
    """
    summaries: dict[str, TrackSummary] = {}

    for event in events:
        summary = summaries.get(event.track_id)
        if summary is None:
            summary = TrackSummary(track_id=event.track_id, track=event.track)
            summaries[event.track_id] = summary
        summary.play_count += 1
        summary.total_listening_ms += event.ms_played
        summary.events.append(event)

    if tracks is not None:
        for declared in tracks:
            track_id = declared.track.song_id
            if track_id in summaries:
                continue
            summaries[track_id] = TrackSummary(
                track_id=track_id,
                track=declared.track,
                play_count=declared.play_count,
                total_listening_ms=declared.total_listening_ms,
            )
            if declared.play_count:
                logger.debug("Track %s has no dated events; using declared totals", track_id)

    return list(summaries.values())


def _comparable(value: datetime, reference: datetime) -> datetime:
    # Naive and aware datetimes cannot be compared; align to the reference.
    if (value.tzinfo is None) == (reference.tzinfo is None):
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=reference.tzinfo)
    return value.replace(tzinfo=None)
