"""
DB models (DTOs), enums and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import NewType

# Use NewType for type safety, but it's just an int at runtime
ArtistId = NewType("ArtistId", int)
AlbumId = NewType("AlbumId", int)
GenreId = NewType("GenreId", int)
PlayableId = NewType("PlayableId", int)
TagId = NewType("TagId", int)
PlaylistId = NewType("PlaylistId", int)


class MediaKind(IntEnum):
    """Where a playable comes from. Persisted as `playables.type_id`."""

    LOCAL_FILE = 0
    GOOGLE_DRIVE = 1
    DROPBOX = 2
    YOUTUBE = 3
    STREAM = 4


class PlaylistKind(Enum):
    """Playlist node kind. Persisted as `playlists.kind`."""

    STATIC = "static"  # user-ordered, explicit membership
    DYNAMIC = "dynamic"  # membership computed from tags at read time
    FOLDER = "folder"  # only nests other playlists


class MatchMode(Enum):
    """How a dynamic playlist combines its tags."""

    ALL = "all"
    ANY = "any"


class FolderDeletePolicy(Enum):
    """What happens to the children of a deleted folder."""

    CASCADE = "cascade"
    REPARENT = "reparent"


@dataclass(frozen=True, slots=True)
class ArtistRow:
    """Artist record as stored in SQLite."""

    id: ArtistId
    name: str


@dataclass(frozen=True, slots=True)
class AlbumRow:
    """Album record as stored in SQLite."""

    id: AlbumId
    name: str
    artist_id: ArtistId | None
    artist_name: str | None  # Denormalized for convenience in list queries


@dataclass(frozen=True, slots=True)
class GenreRow:
    id: GenreId
    name: str


@dataclass(frozen=True, slots=True)
class TagRow:
    id: TagId
    name: str


@dataclass(frozen=True, slots=True)
class PlayableRow:
    """
    Canonical playable record with resolved artist/album/genre names.

    Notes:
    - `source_url` is a filesystem path for local files and a URL for streams.
    - Artwork bytes are not loaded in list queries; use `LibraryStore.get_artwork`.
    """

    id: PlayableId
    title: str
    artist_id: ArtistId | None
    album_id: AlbumId | None
    genre_id: GenreId | None
    artist_name: str | None
    album_name: str | None
    genre_name: str | None
    duration: int | None
    source_url: str
    media_kind: MediaKind
    date_added: int
    has_artwork: bool = False


@dataclass(frozen=True, slots=True)
class NewPlayable:
    """
    Input record for `insert_playable`, referencing catalog rows by id.

    `date_added` defaults to the database clock when omitted.
    """

    title: str
    source_url: str
    media_kind: MediaKind = MediaKind.LOCAL_FILE
    artist_id: ArtistId | None = None
    album_id: AlbumId | None = None
    genre_id: GenreId | None = None
    duration: int | None = None
    artwork: bytes | None = None
    date_added: int | None = None


@dataclass(frozen=True, slots=True)
class ImportRecord:
    """
    Input record used by scanners/importers.

    Artist/album/genre are plain names; they are upserted into their tables on
    import. `tags` are created on first use and linked to the new playable.
    """

    title: str
    source_url: str
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    duration: int | None = None
    media_kind: MediaKind = MediaKind.LOCAL_FILE
    artwork: bytes | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PlaylistRow:
    """Playlist node as stored in SQLite."""

    id: PlaylistId
    name: str
    kind: PlaylistKind
    parent_id: PlaylistId | None
    position: int
    match_mode: MatchMode = MatchMode.ALL


@dataclass(frozen=True, slots=True)
class PruneResult:
    """Counts of orphaned rows removed by `prune_orphans`."""

    artists: int = 0
    albums: int = 0
    genres: int = 0
    tags: int = 0

    @property
    def total(self) -> int:
        return self.artists + self.albums + self.genres + self.tags


@dataclass(frozen=True, slots=True)
class LibraryStats:
    playables: int
    artists: int
    albums: int
    genres: int
    tags: int
    playlists: int
    likes: int


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def require_name(value: str | None, what: str) -> str:
    """Normalize a required name, raising ValueError when it is blank."""
    name = normalize_text(value)
    if name is None:
        raise ValueError(f"{what} name must not be empty")
    return name


def normalize_int(value: int | None) -> int | None:
    """Normalize optional integer fields (coerce to int, keep None)."""
    if value is None:
        return None
    return int(value)
