"""Pure merge rules for catalog metadata.

Two directions are covered here: carry-forward (prior snapshot into the
current entity) and merge-back (fetched catalog record into the entity).
Both follow the same preserve-best rule: a non-empty value replaces an empty
one, an empty value never replaces a non-empty one, and images already present
on an entity are never replaced.
"""

from collections.abc import Iterable, Sequence

from history_cleaner.consolidation.keys import album_song_key, normalize_text
from history_cleaner.history.models import Image
from history_cleaner.models import (
    AlbumDetails,
    AlbumSong,
    AlbumWithSongs,
    ArtistDetails,
    ArtistTopAlbum,
    ArtistTopSong,
    CleanedAlbum,
    CleanedArtist,
    CleanedSong,
    Followers,
)
from history_cleaner.spotify.models import (
    SpotifyAlbumSimplified,
    SpotifyArtistFull,
    SpotifyImage,
    SpotifyTrack,
)


def to_images(images: Iterable[SpotifyImage]) -> list[Image]:
    return [Image(url=img.url, height=img.height, width=img.width) for img in images]


def prefer[T](current: T, candidate: T | None) -> T:
    """Return ``current`` unless it is empty and ``candidate`` is not."""
    if current:
        return current
    return candidate if candidate else current


# ---------------------------------------------------------------------------
# Need detection
# ---------------------------------------------------------------------------


def song_needs_enrichment(song: CleanedSong) -> bool:
    return not song.song.preview_url or not song.song.external_urls or not song.album.images


def album_needs_enrichment(album: CleanedAlbum) -> bool:
    details = album.album
    return not details.images or not details.external_urls or not details.release_date.strip()


def album_song_needs_enrichment(song: AlbumSong) -> bool:
    return not song.external_urls


def artist_needs_enrichment(artist: CleanedArtist) -> bool:
    details = artist.artist
    return not details.images or not details.external_urls or details.popularity == 0


# ---------------------------------------------------------------------------
# Carry-forward from the prior snapshot
# ---------------------------------------------------------------------------


def carry_forward_song(song: CleanedSong, prior: CleanedSong | None) -> CleanedSong:
    if prior is None:
        return song
    return song.model_copy(
        update={
            "song": song.song.model_copy(
                update={
                    "preview_url": prefer(song.song.preview_url, prior.song.preview_url),
                    "external_urls": prefer(song.song.external_urls, prior.song.external_urls),
                }
            ),
            "album": song.album.model_copy(update={"images": prefer(song.album.images, prior.album.images)}),
            "artist": song.artist.model_copy(update={"genres": prefer(song.artist.genres, prior.artist.genres)}),
            "catalog_id": prefer(song.catalog_id, prior.catalog_id),
        }
    )


def _carry_forward_album_details(current: AlbumDetails, prior: AlbumDetails) -> AlbumDetails:
    update: dict[str, object] = {
        "images": prefer(current.images, prior.images),
        "external_urls": prefer(current.external_urls, prior.external_urls),
        "popularity": prefer(current.popularity, prior.popularity),
        "genres": prefer(current.genres, prior.genres),
    }
    if not current.release_date.strip() and prior.release_date.strip():
        update.update(
            release_date=prior.release_date,
            release_date_precision=prior.release_date_precision,
            album_type=prior.album_type,
        )
    return current.model_copy(update=update)


def carry_forward_album[A: CleanedAlbum](album: A, prior: CleanedAlbum | None) -> A:
    if prior is None:
        return album
    return album.model_copy(
        update={
            "album": _carry_forward_album_details(album.album, prior.album),
            "catalog_id": prefer(album.catalog_id, prior.catalog_id),
        }
    )


def carry_forward_album_songs(album: AlbumWithSongs, prior: AlbumWithSongs | None) -> AlbumWithSongs:
    """Copy track details onto songs that have none, matching by song id or name and artists."""
    if prior is None or not prior.songs:
        return album
    by_id = {s.song_id: s for s in prior.songs}
    by_key = {album_song_key(s.name, s.artists): s for s in prior.songs}

    songs = []
    for song in album.songs:
        match = by_id.get(song.song_id) or by_key.get(album_song_key(song.name, song.artists))
        if match is not None and album_song_needs_enrichment(song) and match.external_urls:
            song = song.model_copy(
                update={
                    "track_number": match.track_number,
                    "disc_number": match.disc_number,
                    "explicit": match.explicit,
                    "preview_url": prefer(song.preview_url, match.preview_url),
                    "external_urls": dict(match.external_urls),
                }
            )
        songs.append(song)
    return album.model_copy(update={"songs": songs})


def carry_forward_artist(artist: CleanedArtist, prior: CleanedArtist | None) -> CleanedArtist:
    if prior is None:
        return artist
    details = artist.artist
    followers = details.followers if details.followers.total else prior.artist.followers
    return artist.model_copy(
        update={
            "artist": details.model_copy(
                update={
                    "images": prefer(details.images, prior.artist.images),
                    "external_urls": prefer(details.external_urls, prior.artist.external_urls),
                    "popularity": prefer(details.popularity, prior.artist.popularity),
                    "followers": followers,
                    "genres": prefer(details.genres, prior.artist.genres),
                }
            ),
            "top_songs": _carry_forward_top_songs(artist.top_songs, prior.top_songs),
            "top_albums": _carry_forward_top_albums(artist.top_albums, prior.top_albums),
            "catalog_id": prefer(artist.catalog_id, prior.catalog_id),
        }
    )


def _carry_forward_top_songs(songs: Sequence[ArtistTopSong], prior: Sequence[ArtistTopSong]) -> list[ArtistTopSong]:
    images = {s.song_id: s.album.images for s in prior if s.album.images}
    images.update({normalize_text(s.name): s.album.images for s in prior if s.album.images})
    return [
        s
        if s.album.images
        else s.model_copy(
            update={
                "album": s.album.model_copy(
                    update={"images": images.get(s.song_id) or images.get(normalize_text(s.name)) or []}
                )
            }
        )
        for s in songs
    ]


def _carry_forward_top_albums(
    albums: Sequence[ArtistTopAlbum], prior: Sequence[ArtistTopAlbum]
) -> list[ArtistTopAlbum]:
    images = {a.primary_album_id: a.images for a in prior if a.images}
    images.update({normalize_text(a.name): a.images for a in prior if a.images})
    return [
        a
        if a.images
        else a.model_copy(
            update={"images": images.get(a.primary_album_id) or images.get(normalize_text(a.name)) or []}
        )
        for a in albums
    ]


# ---------------------------------------------------------------------------
# Merge-back of fetched catalog records
# ---------------------------------------------------------------------------


def apply_track_to_song(song: CleanedSong, track: SpotifyTrack) -> CleanedSong:
    """Merge a catalog track into a song. The song's own name and id are kept."""
    album_images = to_images(track.album.images) if track.album else []
    return song.model_copy(
        update={
            "song": song.song.model_copy(
                update={
                    "preview_url": track.preview_url or song.song.preview_url,
                    "external_urls": dict(track.external_urls) or song.song.external_urls,
                }
            ),
            "album": song.album.model_copy(update={"images": prefer(song.album.images, album_images)}),
            "catalog_id": track.id or song.catalog_id,
        }
    )


def apply_album[A: CleanedAlbum](album: A, catalog: SpotifyAlbumSimplified) -> A:
    """Merge a catalog album into an album record.

    Name, artists, release information, popularity and genres come from the
    catalog whenever it supplies them. Existing images are kept.
    """
    details = album.album
    popularity = getattr(catalog, "popularity", None)
    genres = getattr(catalog, "genres", None)
    update: dict[str, object] = {
        "name": catalog.name.strip() or details.name,
        "artists": [a.name for a in catalog.artists if a.name] or details.artists,
        "album_type": catalog.album_type or details.album_type,
        "popularity": popularity or details.popularity,
        "genres": list(genres) if genres else details.genres,
        "external_urls": dict(catalog.external_urls) or details.external_urls,
        "images": prefer(details.images, to_images(catalog.images)),
    }
    if catalog.release_date:
        update.update(
            release_date=catalog.release_date,
            release_date_precision=catalog.release_date_precision or details.release_date_precision,
        )
    return album.model_copy(
        update={"album": details.model_copy(update=update), "catalog_id": catalog.id or album.catalog_id}
    )


def apply_track_to_album_song(song: AlbumSong, track: SpotifyTrack) -> AlbumSong:
    return song.model_copy(
        update={
            "track_number": track.track_number or song.track_number,
            "disc_number": track.disc_number or song.disc_number,
            "explicit": track.explicit if track.explicit is not None else song.explicit,
            "preview_url": track.preview_url or song.preview_url,
            "external_urls": dict(track.external_urls) or song.external_urls,
        }
    )


def order_album_songs(songs: Iterable[AlbumSong]) -> list[AlbumSong]:
    """Album order: disc, then track number, then most played first."""
    return sorted(songs, key=lambda s: (s.disc_number, s.track_number, -s.play_count))


def apply_artist(artist: CleanedArtist, catalog: SpotifyArtistFull) -> CleanedArtist:
    """Merge a catalog artist. The display name is kept; it is the consolidation key."""
    details = artist.artist
    followers = details.followers
    if catalog.followers is not None and catalog.followers.total:
        followers = Followers(total=catalog.followers.total)
    updated: ArtistDetails = details.model_copy(
        update={
            "genres": list(catalog.genres) or details.genres,
            "popularity": catalog.popularity or details.popularity,
            "followers": followers,
            "external_urls": dict(catalog.external_urls) or details.external_urls,
            "images": prefer(details.images, to_images(catalog.images)),
        }
    )
    return artist.model_copy(update={"artist": updated, "catalog_id": catalog.id or artist.catalog_id})


def fill_top_item_images(artist: CleanedArtist, tracks: dict[str, SpotifyTrack]) -> CleanedArtist:
    """Give top songs and top albums without artwork the album art of their catalog track."""

    def art(track_id: str) -> list[Image]:
        track = tracks.get(track_id)
        return to_images(track.album.images) if track is not None and track.album else []

    top_songs = [
        s if s.album.images else s.model_copy(update={"album": s.album.model_copy(update={"images": art(s.song_id)})})
        for s in artist.top_songs
    ]
    top_albums = [
        a if a.images else a.model_copy(update={"images": art(a.primary_album_id)}) for a in artist.top_albums
    ]
    return artist.model_copy(update={"top_songs": top_songs, "top_albums": top_albums})
