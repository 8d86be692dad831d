"""Cleaned-file snapshots: read the previous run's output and persist a new one."""

import json
import logging
import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from history_cleaner.constants import EntityKind
from history_cleaner.consolidation.keys import artist_key, pair_key, song_key
from history_cleaner.models import (
    AlbumWithSongs,
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    CollectionTotals,
    PipelineResult,
)

logger = logging.getLogger(__name__)

SNAPSHOT_SOURCE = "Merged Streaming History"
SNAPSHOT_SOURCE_WITH_SONGS = "Merged Streaming History with Song Breakdown"
STATS_PREFIX = "detailed-stats"

# File prefix and JSON list key per collection.
COLLECTION_FILES: dict[EntityKind, tuple[str, str]] = {
    EntityKind.SONGS: ("cleaned-songs", "songs"),
    EntityKind.ALBUMS: ("cleaned-albums", "albums"),
    EntityKind.ARTISTS: ("cleaned-artists", "artists"),
    EntityKind.ALBUMS_WITH_SONGS: ("cleaned-albums-with-songs", "albums"),
}


def _song_lookup_keys(song: CleanedSong) -> list[str]:
    return [song_key(song.song.name, song.artist.name), song.song_id, *_catalog(song.catalog_id)]


def _album_lookup_keys(album: CleanedAlbum) -> list[str]:
    return [pair_key(album.album.name, album.first_artist), album.primary_album_id, *_catalog(album.catalog_id)]


def _artist_lookup_keys(artist: CleanedArtist) -> list[str]:
    return [artist_key(artist.artist.name), artist.primary_artist_id, *_catalog(artist.catalog_id)]


def _catalog(catalog_id: str | None) -> list[str]:
    return [f"catalog:{catalog_id}"] if catalog_id else []


class _Index[E]:
    """Entities of one kind, reachable through any of their identities."""

    def __init__(self, entities: Iterable[E], identities: Callable[[E], list[str]]) -> None:
        self._identities = identities
        self._by_identity: dict[str, E] = {}
        self._size = 0
        for entity in entities:
            self._size += 1
            for identity in identities(entity):
                if identity:
                    self._by_identity.setdefault(identity, entity)

    def __len__(self) -> int:
        return self._size

    def find(self, entity: E) -> E | None:
        """Match by display key first, then by representative or catalog id."""
        for identity in self._identities(entity):
            match = self._by_identity.get(identity) if identity else None
            if match is not None:
                return match
        return None


class PriorSnapshot:
    """The previous run's enriched collections, used to carry metadata forward."""

    def __init__(
        self,
        songs: Iterable[CleanedSong] = (),
        albums: Iterable[CleanedAlbum] = (),
        artists: Iterable[CleanedArtist] = (),
        albums_with_songs: Iterable[AlbumWithSongs] = (),
    ) -> None:
        self._songs = _Index(songs, _song_lookup_keys)
        self._albums = _Index(albums, _album_lookup_keys)
        self._artists = _Index(artists, _artist_lookup_keys)
        self._albums_with_songs = _Index(albums_with_songs, _album_lookup_keys)

    @classmethod
    def empty(cls) -> "PriorSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (len(self._songs) or len(self._albums) or len(self._artists) or len(self._albums_with_songs))

    def song_for(self, song: CleanedSong) -> CleanedSong | None:
        return self._songs.find(song)

    def album_for(self, album: CleanedAlbum) -> CleanedAlbum | None:
        if isinstance(album, AlbumWithSongs):
            return self._albums_with_songs.find(album) or self._albums.find(album)
        return self._albums.find(album) or self._albums_with_songs.find(album)

    def album_with_songs_for(self, album: AlbumWithSongs) -> AlbumWithSongs | None:
        return self._albums_with_songs.find(album)

    def artist_for(self, artist: CleanedArtist) -> CleanedArtist | None:
        return self._artists.find(artist)


class SnapshotMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    original_total: int
    consolidated_total: int
    duplicates_removed: int
    consolidation_rate: float
    timestamp: str
    source: str
    total_listening_events: int = 0


class SnapshotStore:
    """Reads and writes timestamped cleaned-*.json files in one directory."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = output_dir

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def load_previous(self) -> PriorSnapshot:
        """Load the newest file of each collection. Unreadable files are skipped."""
        snapshot = PriorSnapshot(
            songs=self._load_collection(EntityKind.SONGS, CleanedSong),
            albums=self._load_collection(EntityKind.ALBUMS, CleanedAlbum),
            artists=self._load_collection(EntityKind.ARTISTS, CleanedArtist),
            albums_with_songs=self._load_collection(EntityKind.ALBUMS_WITH_SONGS, AlbumWithSongs),
        )
        if snapshot.is_empty:
            logger.info("No previous cleaned files in %s", self._output_dir)
        return snapshot

    def write(self, result: PipelineResult, now: datetime | None = None) -> int:
        """Write all collections and the stats file; return the file timestamp (epoch ms).

        Older cleaned files are removed after the new ones are written.
        """
        now = now or datetime.now(UTC)
        timestamp = int(now.timestamp() * 1000)
        self._output_dir.mkdir(parents=True, exist_ok=True)

        collections: dict[EntityKind, list[Any]] = {
            EntityKind.SONGS: result.songs,
            EntityKind.ALBUMS: result.albums,
            EntityKind.ARTISTS: result.artists,
            EntityKind.ALBUMS_WITH_SONGS: result.albums_with_songs,
        }
        written: list[Path] = []
        for kind, entities in collections.items():
            prefix, list_key = COLLECTION_FILES[kind]
            totals = result.totals.get(kind) or CollectionTotals(
                original_total=len(entities), consolidated_total=len(entities)
            )
            metadata = SnapshotMetadata(
                original_total=totals.original_total,
                consolidated_total=totals.consolidated_total,
                duplicates_removed=totals.duplicates_removed,
                consolidation_rate=totals.consolidation_rate,
                timestamp=now.isoformat(),
                source=SNAPSHOT_SOURCE_WITH_SONGS if kind is EntityKind.ALBUMS_WITH_SONGS else SNAPSHOT_SOURCE,
                total_listening_events=result.total_listening_events,
            )
            payload = {
                "metadata": metadata.model_dump(mode="json", by_alias=True),
                list_key: [entity.model_dump(mode="json", by_alias=True) for entity in entities],
            }
            written.append(self._write_json(f"{prefix}-{timestamp}.json", payload))

        written.append(
            self._write_json(f"{STATS_PREFIX}-{timestamp}.json", result.stats.model_dump(mode="json", by_alias=True))
        )
        for path in written:
            logger.info("Wrote %s", path)

        self._remove_older(timestamp)
        return timestamp

    # --- Internals ---

    def _write_json(self, filename: str, payload: object) -> Path:
        path = self._output_dir / filename
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)
        return path

    def _snapshot_files(self, prefix: str) -> list[tuple[int, Path]]:
        if not self._output_dir.is_dir():
            return []
        pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)\.json$")
        files = []
        for path in self._output_dir.iterdir():
            match = pattern.match(path.name)
            if match:
                files.append((int(match.group(1)), path))
        return sorted(files, reverse=True)

    def _load_collection[E: BaseModel](self, kind: EntityKind, model: type[E]) -> list[E]:
        prefix, list_key = COLLECTION_FILES[kind]
        files = self._snapshot_files(prefix)
        if not files:
            return []

        path = files[0][1]
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable snapshot %s", path, exc_info=True)
            return []

        entities: list[E] = []
        skipped = 0
        for raw in (data.get(list_key) if isinstance(data, dict) else None) or []:
            try:
                entities.append(model.model_validate(raw))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped %d invalid %s entries in %s", skipped, kind.value, path.name)
        logger.debug("Loaded %d previous %s from %s", len(entities), kind.value, path.name)
        return entities

    def _remove_older(self, timestamp: int) -> None:
        removed = 0
        for prefix in [*(prefix for prefix, _ in COLLECTION_FILES.values()), STATS_PREFIX]:
            for file_timestamp, path in self._snapshot_files(prefix):
                if file_timestamp < timestamp:
                    path.unlink(missing_ok=True)
                    removed += 1
        if removed:
            logger.info("Removed %d older cleaned file(s)", removed)
