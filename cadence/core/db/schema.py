"""
Database schema + migrations for Cadence.

- Connection management and the public `LibraryStore` facade live in
  `cadence.core.library_store`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support) and run in one transaction.
- Name columns use `COLLATE NOCASE`, so UNIQUE constraints and `=` lookups are
  case-insensitive.
- The search index is an FTS5 table maintained from Python inside each write
  transaction (see `cadence.core.db.search_index`), not by triggers.
"""

from __future__ import annotations

import logging
from typing import Final

import aiosqlite

logger = logging.getLogger(__name__)

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 1


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection in autocommit mode
      (`isolation_level=None`); transactions are explicit
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    logger.info("Migrating library schema from v%d to v%d", current, SCHEMA_VERSION)
    await conn.execute("BEGIN IMMEDIATE;")
    try:
        await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    except BaseException:
        await conn.execute("ROLLBACK;")
        raise
    await conn.execute("COMMIT;")


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """
    Perform forward-only migrations.

    Keep migrations small. If you need a big refactor, create a new DB.
    """
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        # Normalized catalog tables
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artists (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY,
                artist_id INTEGER REFERENCES artists(id),
                name TEXT NOT NULL COLLATE NOCASE
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_name ON albums(name);")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_artist_id ON albums(artist_id);")
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS genres (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playables (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                artist_id INTEGER REFERENCES artists(id),
                album_id INTEGER REFERENCES albums(id),
                genre_id INTEGER REFERENCES genres(id),
                duration INTEGER,
                source_url TEXT NOT NULL UNIQUE,
                type_id INTEGER NOT NULL DEFAULT 0,
                date_added INTEGER NOT NULL DEFAULT (strftime('%s', 'now')),
                artwork BLOB
            )
            """
        )
        # Composite indexes for JOIN + ORDER BY title
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playables_artist_title ON playables(artist_id, title);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playables_album_title ON playables(album_id, title);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playables_genre_title ON playables(genre_id, title);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playables_duration ON playables(duration);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playables_date_added ON playables(date_added);"
        )

        # Likes: one row per liked playable, existence is the liked state
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS likes (
                playable_id INTEGER PRIMARY KEY REFERENCES playables(id) ON DELETE CASCADE
            )
            """
        )

        # Tags + junction
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tags (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playable_tags (
                tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                playable_id INTEGER NOT NULL REFERENCES playables(id) ON DELETE CASCADE,
                PRIMARY KEY (tag_id, playable_id)
            ) WITHOUT ROWID
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playable_tags_playable ON playable_tags(playable_id);"
        )

        # Playlists: self-referential tree of static/dynamic/folder nodes
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id INTEGER PRIMARY KEY,
                parent_id INTEGER REFERENCES playlists(id) ON DELETE CASCADE,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                kind TEXT NOT NULL DEFAULT 'static'
                    CHECK (kind IN ('static', 'dynamic', 'folder')),
                position INTEGER NOT NULL DEFAULT 0,
                match_mode TEXT NOT NULL DEFAULT 'all'
                    CHECK (match_mode IN ('all', 'any'))
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlists_parent ON playlists(parent_id, position);"
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS smart_playlist_tags (
                playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                PRIMARY KEY (playlist_id, tag_id)
            ) WITHOUT ROWID
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_playables (
                playlist_id INTEGER NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                playable_id INTEGER NOT NULL REFERENCES playables(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                PRIMARY KEY (playlist_id, playable_id),
                UNIQUE (playlist_id, position)
            ) WITHOUT ROWID
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_playables_playable "
            "ON playlist_playables(playable_id);"
        )

        # Search index: normalized copies of title/artist/album, FTS rowid = playable id.
        # Trigram tokens make every substring of 3+ characters an index lookup.
        await conn.execute(
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS search_index USING fts5(
                title,
                artist_name,
                album_name,
                tokenize = 'trigram'
            )
            """
        )

        from_version = 1

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
