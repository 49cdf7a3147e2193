"""
Internal DB subpackage for Cadence.

This package splits the storage layer into focused units (models,
schema/migrations, ordering helpers, query groups and the search index)
while keeping `LibraryStore` as the single public interface that the rest of
the codebase imports.

Re-exports here are primarily for convenience inside the `core` package.
External code should import `LibraryStore` from `cadence.core.library_store`.
"""

from __future__ import annotations

# Models / DTOs
from .models import (
    AlbumRow,
    ArtistRow,
    FolderDeletePolicy,
    GenreRow,
    ImportRecord,
    LibraryStats,
    MatchMode,
    MediaKind,
    NewPlayable,
    PlayableRow,
    PlaylistKind,
    PlaylistRow,
    PruneResult,
    TagRow,
)

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "ArtistRow",
    "AlbumRow",
    "GenreRow",
    "TagRow",
    "PlayableRow",
    "NewPlayable",
    "ImportRecord",
    "PlaylistRow",
    "PruneResult",
    "LibraryStats",
    # enums
    "MediaKind",
    "PlaylistKind",
    "MatchMode",
    "FolderDeletePolicy",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
