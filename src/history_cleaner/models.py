"""Ranked collection and statistics models.

Fields are snake_case in Python and serialize (``by_alias=True``) to the
keys of the cleaned JSON files, which mix snake_case and camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from history_cleaner.constants import EntityKind
from history_cleaner.history.models import Image

_ALIASED = ConfigDict(populate_by_name=True)
_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class YearlyPlayTime(BaseModel):
    model_config = _ALIASED

    year: str
    total_listening_time_ms: int = Field(0, alias="totalListeningTimeMs")


# --- Nested records ---


class SongDetails(BaseModel):
    name: str = ""
    preview_url: str | None = None
    external_urls: dict[str, str] = Field(default_factory=dict)


class SongAlbum(BaseModel):
    name: str = ""
    images: list[Image] = Field(default_factory=list)


class SongArtist(BaseModel):
    name: str = ""
    genres: list[str] = Field(default_factory=list)


class AlbumDetails(BaseModel):
    name: str = ""
    album_type: str = "album"
    artists: list[str] = Field(default_factory=list)
    release_date: str = ""
    release_date_precision: str = "day"
    popularity: int = 0
    images: list[Image] = Field(default_factory=list)
    external_urls: dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)


class Followers(BaseModel):
    total: int = 0


class ArtistDetails(BaseModel):
    name: str = ""
    genres: list[str] = Field(default_factory=list)
    popularity: int = 0
    followers: Followers = Field(default_factory=Followers)
    images: list[Image] = Field(default_factory=list)
    external_urls: dict[str, str] = Field(default_factory=dict)


class AlbumSong(BaseModel):
    """A song row inside an album's song breakdown."""

    model_config = _ALIASED

    song_id: str = Field(alias="songId")
    name: str = ""
    duration_ms: int = 0
    track_number: int = 1
    disc_number: int = 1
    explicit: bool = False
    preview_url: str | None = None
    external_urls: dict[str, str] = Field(default_factory=dict)
    play_count: int = 0
    total_listening_time_ms: int = 0
    artists: list[str] = Field(default_factory=list)


class ArtistTopSong(BaseModel):
    model_config = _ALIASED

    song_id: str = Field(alias="songId")
    name: str = ""
    play_count: int = 0
    total_listening_time_ms: int = 0
    album: SongAlbum = Field(default_factory=SongAlbum)


class ArtistTopAlbum(BaseModel):
    model_config = _ALIASED

    # Representative track id; resolved to an album through the track catalog.
    primary_album_id: str = Field(alias="primaryAlbumId")
    name: str = ""
    play_count: int = 0
    total_listening_time_ms: int = 0
    images: list[Image] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)


# --- Consolidated entities ---


class ConsolidatedEntity(BaseModel):
    """Fields shared by every ranked collection entry."""

    model_config = _ALIASED

    rank: int = 0
    duration_ms: int = 0
    count: int = 0
    consolidated_count: int = 0
    count_30_days_ago: int = 0
    rank_30_days_ago: int | None = None
    yearly_play_time: list[YearlyPlayTime] = Field(default_factory=list)
    catalog_id: str | None = Field(None, alias="catalogId")


class CleanedSong(ConsolidatedEntity):
    song_id: str = Field(alias="songId")
    song: SongDetails = Field(default_factory=SongDetails)
    album: SongAlbum = Field(default_factory=SongAlbum)
    artist: SongArtist = Field(default_factory=SongArtist)
    original_song_ids: list[str] = Field(default_factory=list, alias="original_songIds")

    @property
    def lookup_id(self) -> str:
        return self.song_id


class CleanedAlbum(ConsolidatedEntity):
    differents: int = 0
    primary_album_id: str = Field("", alias="primaryAlbumId")
    total_count: int = 0
    total_duration_ms: int = 0
    album: AlbumDetails = Field(default_factory=AlbumDetails)
    original_album_ids: list[str] = Field(default_factory=list, alias="original_albumIds")
    earliest_played_at: str | None = None

    @property
    def lookup_id(self) -> str:
        return self.primary_album_id

    @property
    def first_artist(self) -> str:
        return self.album.artists[0] if self.album.artists else ""


class AlbumWithSongs(CleanedAlbum):
    total_songs: int = 0
    played_songs: int = 0
    unplayed_songs: int = 0
    songs: list[AlbumSong] = Field(default_factory=list)

    def without_songs(self) -> CleanedAlbum:
        """Project to a plain album record."""
        return CleanedAlbum.model_validate(self.model_dump(exclude=_ALBUM_SONG_FIELDS))

    def with_songs(self, songs: list[AlbumSong]) -> "AlbumWithSongs":
        """Replace the song breakdown and recompute the played/unplayed counts."""
        played = sum(1 for s in songs if s.play_count > 0)
        return self.model_copy(
            update={
                "songs": songs,
                "total_songs": len(songs),
                "played_songs": played,
                "unplayed_songs": len(songs) - played,
            }
        )


_ALBUM_SONG_FIELDS = {"total_songs", "played_songs", "unplayed_songs", "songs"}


class CleanedArtist(ConsolidatedEntity):
    differents: int = 0
    # Representative (most recently played) track id.
    primary_artist_id: str = Field("", alias="primaryArtistId")
    total_count: int = 0
    total_duration_ms: int = 0
    artist: ArtistDetails = Field(default_factory=ArtistDetails)
    original_artist_ids: list[str] = Field(default_factory=list, alias="original_artistIds")
    top_songs: list[ArtistTopSong] = Field(default_factory=list)
    top_albums: list[ArtistTopAlbum] = Field(default_factory=list)

    @property
    def lookup_id(self) -> str:
        return self.primary_artist_id


# --- Detailed statistics ---


class YearBucket(BaseModel):
    model_config = _CAMEL

    year: str
    total_listening_time_ms: int = 0
    total_listening_hours: float = 0.0
    play_count: int = 0


class HourBucket(BaseModel):
    model_config = _CAMEL

    hour: int
    total_listening_time_ms: int = 0
    total_listening_hours: float = 0.0
    play_count: int = 0


class TopSong(BaseModel):
    model_config = _CAMEL

    song_id: str
    name: str = ""
    artist: str = ""
    play_count: int = 0
    total_listening_time_ms: int = 0
    images: list[Image] = Field(default_factory=list)


class TopArtist(BaseModel):
    model_config = _CAMEL

    artist_name: str
    play_count: int = 0
    total_listening_time_ms: int = 0
    unique_songs: int = 0
    images: list[Image] = Field(default_factory=list)


class TopAlbum(BaseModel):
    model_config = _CAMEL

    album_name: str
    artist: str = ""
    play_count: int = 0
    total_listening_time_ms: int = 0
    unique_songs: int = 0
    images: list[Image] = Field(default_factory=list)


class YearlyTopItems(BaseModel):
    model_config = _CAMEL

    year: str
    top_songs: list[TopSong] = Field(default_factory=list)
    top_artists: list[TopArtist] = Field(default_factory=list)
    top_albums: list[TopAlbum] = Field(default_factory=list)


class DetailedStats(BaseModel):
    model_config = _CAMEL

    yearly_listening_time: list[YearBucket] = Field(default_factory=list)
    yearly_top_items: list[YearlyTopItems] = Field(default_factory=list)
    total_listening_hours: float = 0.0
    total_listening_days: float = 0.0
    total_listening_events: int = 0
    hourly_listening_distribution: list[HourBucket] = Field(default_factory=list)


# --- Pipeline output ---


class CollectionTotals(BaseModel):
    """Record counts before and after consolidation for one collection."""

    original_total: int = 0
    consolidated_total: int = 0

    @property
    def duplicates_removed(self) -> int:
        return self.original_total - self.consolidated_total

    @property
    def consolidation_rate(self) -> float:
        """Percentage of records removed by consolidation, rounded to two decimals."""
        if not self.original_total:
            return 0.0
        return round(self.duplicates_removed / self.original_total * 100, 2)


class PipelineResult(BaseModel):
    """Fully ranked, truncated and enriched collections plus statistics."""

    songs: list[CleanedSong] = Field(default_factory=list)
    albums: list[CleanedAlbum] = Field(default_factory=list)
    artists: list[CleanedArtist] = Field(default_factory=list)
    albums_with_songs: list[AlbumWithSongs] = Field(default_factory=list)
    stats: DetailedStats = Field(default_factory=DetailedStats)
    totals: dict[EntityKind, CollectionTotals] = Field(default_factory=dict)
    total_listening_events: int = 0
    enriched: bool = False
