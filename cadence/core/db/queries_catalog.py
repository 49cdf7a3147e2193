"""
Catalog DB queries: artists, albums, genres and playables.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return rows/materialized dataclasses.
- Write helpers never open or commit transactions; the caller
  (`LibraryStore`) owns the unit of work.
- Every write that changes a playable's title, artist or album (and every
  artist/album rename) updates `search_index` on the same connection.
- These functions assume `conn.row_factory = aiosqlite.Row`.

Important:
- Do NOT interpolate user input into SQL. Any dynamic SQL here is limited to
  ORDER BY clauses from `playables_order_clause` and fixed WHERE fragments.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import aiosqlite

from cadence.core import DuplicateEntryError, NotFoundError, ReferentialIntegrityError
from cadence.core.db import search_index
from cadence.core.db.models import (
    AlbumId,
    AlbumRow,
    ArtistId,
    ArtistRow,
    GenreId,
    GenreRow,
    MediaKind,
    NewPlayable,
    PlayableId,
    PlayableRow,
    normalize_int,
    require_name,
)
from cadence.core.db.ordering import PlayablesOrderBy, playables_order_clause

logger = logging.getLogger(__name__)

# Shared SELECT for playable rows; other query modules append WHERE/ORDER BY.
PLAYABLE_SELECT = """
    SELECT
        p.id,
        p.title,
        p.artist_id,
        p.album_id,
        p.genre_id,
        ar.name AS artist_name,
        al.name AS album_name,
        g.name  AS genre_name,
        p.duration,
        p.source_url,
        p.type_id,
        p.date_added,
        p.artwork IS NOT NULL AS has_artwork
    FROM playables p
    LEFT JOIN artists ar ON ar.id = p.artist_id
    LEFT JOIN albums al  ON al.id = p.album_id
    LEFT JOIN genres g   ON g.id  = p.genre_id
"""

# update_playable() field name -> column name
UPDATABLE_FIELDS: Mapping[str, str] = {
    "title": "title",
    "artist_id": "artist_id",
    "album_id": "album_id",
    "genre_id": "genre_id",
    "duration": "duration",
    "source_url": "source_url",
    "media_kind": "type_id",
    "artwork": "artwork",
}

# Fields whose change makes the search entry stale.
_INDEXED_FIELDS = frozenset({"title", "artist_id", "album_id"})


def row_to_playable(row: aiosqlite.Row) -> PlayableRow:
    """Convert an aiosqlite Row (from PLAYABLE_SELECT) to a PlayableRow."""
    return PlayableRow(
        id=PlayableId(int(row["id"])),
        title=row["title"],
        artist_id=row["artist_id"],
        album_id=row["album_id"],
        genre_id=row["genre_id"],
        artist_name=row["artist_name"],
        album_name=row["album_name"],
        genre_name=row["genre_name"],
        duration=row["duration"],
        source_url=row["source_url"],
        media_kind=MediaKind(int(row["type_id"])),
        date_added=int(row["date_added"]),
        has_artwork=bool(row["has_artwork"]),
    )


async def _exists(conn: aiosqlite.Connection, table: str, row_id: int) -> bool:
    # `table` is always a literal from this module.
    cursor = await conn.execute(f"SELECT 1 FROM {table} WHERE id = ?;", (int(row_id),))
    return await cursor.fetchone() is not None


async def check_references(
    conn: aiosqlite.Connection,
    *,
    artist_id: int | None = None,
    album_id: int | None = None,
    genre_id: int | None = None,
) -> None:
    """Raise ReferentialIntegrityError if any given catalog id does not exist."""
    for table, value in (("artists", artist_id), ("albums", album_id), ("genres", genre_id)):
        if value is not None and not await _exists(conn, table, value):
            raise ReferentialIntegrityError(f"{table[:-1]} {value} does not exist")


# ---------------------------------------------------------------------------
# Artists
# ---------------------------------------------------------------------------


async def get_artist_by_id(conn: aiosqlite.Connection, artist_id: int) -> ArtistRow | None:
    cursor = await conn.execute("SELECT id, name FROM artists WHERE id = ?;", (int(artist_id),))
    row = await cursor.fetchone()
    return ArtistRow(id=ArtistId(int(row["id"])), name=row["name"]) if row else None


async def find_artist_by_name(conn: aiosqlite.Connection, name: str) -> ArtistRow | None:
    """Case-insensitive lookup (the column is COLLATE NOCASE)."""
    cursor = await conn.execute("SELECT id, name FROM artists WHERE name = ?;", (name.strip(),))
    row = await cursor.fetchone()
    return ArtistRow(id=ArtistId(int(row["id"])), name=row["name"]) if row else None


async def upsert_artist(conn: aiosqlite.Connection, name: str) -> ArtistId:
    """Get or create an artist by name, return ID."""
    name = require_name(name, "artist")
    existing = await find_artist_by_name(conn, name)
    if existing is not None:
        return existing.id
    cursor = await conn.execute("INSERT INTO artists (name) VALUES (?);", (name,))
    logger.debug("upsert_artist: created %r as %s", name, cursor.lastrowid)
    return ArtistId(int(cursor.lastrowid))


async def rename_artist(conn: aiosqlite.Connection, artist_id: int, name: str) -> None:
    """Rename an artist and refresh the search entries of its playables."""
    name = require_name(name, "artist")
    if not await _exists(conn, "artists", artist_id):
        raise NotFoundError(f"artist {artist_id} not found")
    clash = await find_artist_by_name(conn, name)
    if clash is not None and clash.id != artist_id:
        raise DuplicateEntryError(f"artist {name!r} already exists")
    await conn.execute("UPDATE artists SET name = ? WHERE id = ?;", (name, int(artist_id)))
    await search_index.reindex_artist(conn, artist_id)


async def list_artists(
    conn: aiosqlite.Connection, *, limit: int, offset: int
) -> list[ArtistRow]:
    cursor = await conn.execute(
        """
        SELECT id, name FROM artists
        ORDER BY name COLLATE NOCASE ASC, id ASC
        LIMIT ? OFFSET ?;
        """,
        (int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [ArtistRow(id=ArtistId(int(r["id"])), name=r["name"]) for r in rows]


# ---------------------------------------------------------------------------
# Albums
# ---------------------------------------------------------------------------


def _row_to_album(row: aiosqlite.Row) -> AlbumRow:
    return AlbumRow(
        id=AlbumId(int(row["id"])),
        name=row["name"],
        artist_id=row["artist_id"],
        artist_name=row["artist_name"],
    )


_ALBUM_SELECT = """
    SELECT al.id, al.name, al.artist_id, ar.name AS artist_name
    FROM albums al
    LEFT JOIN artists ar ON ar.id = al.artist_id
"""


async def get_album_by_id(conn: aiosqlite.Connection, album_id: int) -> AlbumRow | None:
    cursor = await conn.execute(f"{_ALBUM_SELECT} WHERE al.id = ?;", (int(album_id),))
    row = await cursor.fetchone()
    return _row_to_album(row) if row else None


async def find_album(
    conn: aiosqlite.Connection, name: str, artist_id: int | None
) -> AlbumRow | None:
    """Albums are unique per (name, artist); `IS` also matches a NULL artist."""
    cursor = await conn.execute(
        f"{_ALBUM_SELECT} WHERE al.name = ? AND al.artist_id IS ?;",
        (name.strip(), normalize_int(artist_id)),
    )
    row = await cursor.fetchone()
    return _row_to_album(row) if row else None


async def upsert_album(
    conn: aiosqlite.Connection, name: str, artist_id: int | None = None
) -> AlbumId:
    """Get or create an album by name + artist_id, return ID."""
    name = require_name(name, "album")
    await check_references(conn, artist_id=artist_id)
    existing = await find_album(conn, name, artist_id)
    if existing is not None:
        return existing.id
    cursor = await conn.execute(
        "INSERT INTO albums (name, artist_id) VALUES (?, ?);",
        (name, normalize_int(artist_id)),
    )
    logger.debug("upsert_album: created %r (artist %s) as %s", name, artist_id, cursor.lastrowid)
    return AlbumId(int(cursor.lastrowid))


async def rename_album(conn: aiosqlite.Connection, album_id: int, name: str) -> None:
    """Rename an album and refresh the search entries of its playables."""
    name = require_name(name, "album")
    album = await get_album_by_id(conn, album_id)
    if album is None:
        raise NotFoundError(f"album {album_id} not found")
    clash = await find_album(conn, name, album.artist_id)
    if clash is not None and clash.id != album.id:
        raise DuplicateEntryError(f"album {name!r} already exists for this artist")
    await conn.execute("UPDATE albums SET name = ? WHERE id = ?;", (name, int(album_id)))
    await search_index.reindex_album(conn, album_id)


async def list_albums(
    conn: aiosqlite.Connection,
    *,
    artist_id: int | None = None,
    limit: int,
    offset: int,
) -> list[AlbumRow]:
    where = "WHERE al.artist_id = ?" if artist_id is not None else ""
    params: tuple[Any, ...] = (int(artist_id),) if artist_id is not None else ()
    cursor = await conn.execute(
        f"""
        {_ALBUM_SELECT}
        {where}
        ORDER BY al.name COLLATE NOCASE ASC, al.id ASC
        LIMIT ? OFFSET ?;
        """,
        (*params, int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [_row_to_album(r) for r in rows]


# ---------------------------------------------------------------------------
# Genres
# ---------------------------------------------------------------------------


async def get_genre_by_id(conn: aiosqlite.Connection, genre_id: int) -> GenreRow | None:
    cursor = await conn.execute("SELECT id, name FROM genres WHERE id = ?;", (int(genre_id),))
    row = await cursor.fetchone()
    return GenreRow(id=GenreId(int(row["id"])), name=row["name"]) if row else None


async def upsert_genre(conn: aiosqlite.Connection, name: str) -> GenreId:
    """Get or create a genre by name, return ID."""
    name = require_name(name, "genre")
    cursor = await conn.execute("SELECT id FROM genres WHERE name = ?;", (name,))
    row = await cursor.fetchone()
    if row is not None:
        return GenreId(int(row["id"]))
    cursor = await conn.execute("INSERT INTO genres (name) VALUES (?);", (name,))
    return GenreId(int(cursor.lastrowid))


async def rename_genre(conn: aiosqlite.Connection, genre_id: int, name: str) -> None:
    name = require_name(name, "genre")
    if not await _exists(conn, "genres", genre_id):
        raise NotFoundError(f"genre {genre_id} not found")
    cursor = await conn.execute(
        "SELECT id FROM genres WHERE name = ? AND id != ?;", (name, int(genre_id))
    )
    if await cursor.fetchone() is not None:
        raise DuplicateEntryError(f"genre {name!r} already exists")
    # Genre names are not part of the search index.
    await conn.execute("UPDATE genres SET name = ? WHERE id = ?;", (name, int(genre_id)))


async def list_genres(conn: aiosqlite.Connection, *, limit: int, offset: int) -> list[GenreRow]:
    cursor = await conn.execute(
        """
        SELECT id, name FROM genres
        ORDER BY name COLLATE NOCASE ASC, id ASC
        LIMIT ? OFFSET ?;
        """,
        (int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [GenreRow(id=GenreId(int(r["id"])), name=r["name"]) for r in rows]


# ---------------------------------------------------------------------------
# Playables: write path
# ---------------------------------------------------------------------------


async def _name_of(conn: aiosqlite.Connection, table: str, row_id: int | None) -> str | None:
    if row_id is None:
        return None
    cursor = await conn.execute(f"SELECT name FROM {table} WHERE id = ?;", (int(row_id),))
    row = await cursor.fetchone()
    return row["name"] if row else None


async def insert_playable(conn: aiosqlite.Connection, playable: NewPlayable) -> PlayableId:
    """Insert a playable row and its search entry. Returns the new id."""
    title = require_name(playable.title, "playable title")
    source_url = require_name(playable.source_url, "source")
    await check_references(
        conn,
        artist_id=playable.artist_id,
        album_id=playable.album_id,
        genre_id=playable.genre_id,
    )

    cursor = await conn.execute("SELECT id FROM playables WHERE source_url = ?;", (source_url,))
    if await cursor.fetchone() is not None:
        raise DuplicateEntryError(f"source {source_url!r} is already in the library")

    cursor = await conn.execute(
        """
        INSERT INTO playables (
            title, artist_id, album_id, genre_id, duration,
            source_url, type_id, date_added, artwork
        ) VALUES (
            :title, :artist_id, :album_id, :genre_id, :duration,
            :source_url, :type_id, COALESCE(:date_added, strftime('%s', 'now')), :artwork
        )
        """,
        {
            "title": title,
            "artist_id": normalize_int(playable.artist_id),
            "album_id": normalize_int(playable.album_id),
            "genre_id": normalize_int(playable.genre_id),
            "duration": normalize_int(playable.duration),
            "source_url": source_url,
            "type_id": int(MediaKind(playable.media_kind)),
            "date_added": normalize_int(playable.date_added),
            "artwork": playable.artwork,
        },
    )
    playable_id = PlayableId(int(cursor.lastrowid))

    await search_index.index(
        conn,
        playable_id,
        title,
        await _name_of(conn, "artists", playable.artist_id),
        await _name_of(conn, "albums", playable.album_id),
    )
    logger.debug("insert_playable: %r as %d", title, playable_id)
    return playable_id


async def update_playable(
    conn: aiosqlite.Connection, playable_id: int, fields: Mapping[str, Any]
) -> None:
    """
    Update selected columns of a playable.

    `fields` keys must come from UPDATABLE_FIELDS. Passing `None` for a
    reference clears it. The search entry is refreshed when title, artist or
    album changes.
    """
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update playable fields: {sorted(unknown)}")
    if not await _exists(conn, "playables", playable_id):
        raise NotFoundError(f"playable {playable_id} not found")
    if not fields:
        return

    values: dict[str, Any] = {}
    for key, value in fields.items():
        if key in ("title", "source_url"):
            value = require_name(value, "playable title" if key == "title" else "source")
        elif key == "media_kind":
            value = int(MediaKind(value))
        elif key in ("artist_id", "album_id", "genre_id", "duration"):
            value = normalize_int(value)
        values[key] = value

    await check_references(
        conn,
        artist_id=values.get("artist_id"),
        album_id=values.get("album_id"),
        genre_id=values.get("genre_id"),
    )
    if "source_url" in values:
        cursor = await conn.execute(
            "SELECT id FROM playables WHERE source_url = ? AND id != ?;",
            (values["source_url"], int(playable_id)),
        )
        if await cursor.fetchone() is not None:
            raise DuplicateEntryError(
                f"source {values['source_url']!r} is already in the library"
            )

    # Column names come from the UPDATABLE_FIELDS whitelist only.
    assignments = ", ".join(f"{UPDATABLE_FIELDS[k]} = :{k}" for k in values)
    await conn.execute(
        f"UPDATE playables SET {assignments} WHERE id = :id;",
        {**values, "id": int(playable_id)},
    )

    if _INDEXED_FIELDS & values.keys():
        await search_index.reindex(conn, playable_id)
    logger.debug("update_playable: %d fields=%s", playable_id, sorted(values))


async def delete_playable(conn: aiosqlite.Connection, playable_id: int) -> None:
    """
    Delete a playable. Likes, tag links and playlist memberships go with it
    through ON DELETE CASCADE; the search entry is removed explicitly.
    """
    await search_index.remove(conn, playable_id)
    cursor = await conn.execute("DELETE FROM playables WHERE id = ?;", (int(playable_id),))
    if cursor.rowcount == 0:
        raise NotFoundError(f"playable {playable_id} not found")
    logger.debug("delete_playable: removed %d", playable_id)


# ---------------------------------------------------------------------------
# Playables: reads
# ---------------------------------------------------------------------------


async def get_playable_by_id(conn: aiosqlite.Connection, playable_id: int) -> PlayableRow | None:
    cursor = await conn.execute(f"{PLAYABLE_SELECT} WHERE p.id = ?;", (int(playable_id),))
    row = await cursor.fetchone()
    return row_to_playable(row) if row else None


async def get_playables_by_ids(
    conn: aiosqlite.Connection, ids: Iterable[int]
) -> list[PlayableRow]:
    """Return rows in the order of `ids`; ids that do not exist are skipped."""
    wanted = [int(i) for i in ids]
    if not wanted:
        return []
    placeholders = ", ".join("?" for _ in wanted)
    cursor = await conn.execute(f"{PLAYABLE_SELECT} WHERE p.id IN ({placeholders});", wanted)
    by_id = {int(r["id"]): row_to_playable(r) for r in await cursor.fetchall()}
    return [by_id[i] for i in wanted if i in by_id]


async def find_playables_by_source(
    conn: aiosqlite.Connection, source_urls: Iterable[str]
) -> list[PlayableRow]:
    urls = sorted({u for u in source_urls})
    if not urls:
        return []
    placeholders = ", ".join("?" for _ in urls)
    cursor = await conn.execute(
        f"{PLAYABLE_SELECT} WHERE p.source_url IN ({placeholders}) ORDER BY p.id ASC;",
        urls,
    )
    return [row_to_playable(r) for r in await cursor.fetchall()]


async def get_artwork(conn: aiosqlite.Connection, playable_id: int) -> bytes | None:
    cursor = await conn.execute("SELECT artwork FROM playables WHERE id = ?;", (int(playable_id),))
    row = await cursor.fetchone()
    if row is None:
        raise NotFoundError(f"playable {playable_id} not found")
    return bytes(row["artwork"]) if row["artwork"] is not None else None


async def list_playables(
    conn: aiosqlite.Connection,
    *,
    limit: int,
    offset: int,
    order_by: PlayablesOrderBy,
    artist_id: int | None = None,
    album_id: int | None = None,
    genre_id: int | None = None,
) -> list[PlayableRow]:
    conditions: list[str] = []
    params: list[Any] = []
    filters = (("p.artist_id", artist_id), ("p.album_id", album_id), ("p.genre_id", genre_id))
    for column, value in filters:
        if value is not None:
            conditions.append(f"{column} = ?")
            params.append(int(value))
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    cursor = await conn.execute(
        f"""
        {PLAYABLE_SELECT}
        {where}
        {playables_order_clause(order_by)}
        LIMIT ? OFFSET ?;
        """,
        (*params, int(limit), int(offset)),
    )
    rows = await cursor.fetchall()
    return [row_to_playable(r) for r in rows]


async def count_rows(conn: aiosqlite.Connection, table: str) -> int:
    # `table` is always a literal from this package.
    cursor = await conn.execute(f"SELECT COUNT(*) AS c FROM {table};")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


async def prune_catalog(conn: aiosqlite.Connection) -> tuple[int, int, int]:
    """
    Delete albums, artists and genres that nothing references.

    Albums go first so that artists only referenced by pruned albums are
    pruned too. Returns (artists, albums, genres) counts.
    """
    cursor = await conn.execute(
        """
        DELETE FROM albums
        WHERE id NOT IN (SELECT album_id FROM playables WHERE album_id IS NOT NULL);
        """
    )
    albums = cursor.rowcount
    cursor = await conn.execute(
        """
        DELETE FROM artists
        WHERE id NOT IN (SELECT artist_id FROM playables WHERE artist_id IS NOT NULL)
          AND id NOT IN (SELECT artist_id FROM albums WHERE artist_id IS NOT NULL);
        """
    )
    artists = cursor.rowcount
    cursor = await conn.execute(
        """
        DELETE FROM genres
        WHERE id NOT IN (SELECT genre_id FROM playables WHERE genre_id IS NOT NULL);
        """
    )
    genres = cursor.rowcount
    return artists, albums, genres
