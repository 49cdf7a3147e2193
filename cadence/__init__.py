"""
Cadence - an async music library store.

Cadence keeps a music catalog (artists, albums, genres, playables), tags,
likes, a playlist tree with static and tag-driven playlists, and a ranked
text search index in a single SQLite database.
"""

__version__ = "0.1.0"
__author__ = "Cadence Contributors"
__license__ = "GPL-2.0"

from cadence.core.library_store import LibraryStore

__all__ = ["LibraryStore", "__version__"]
