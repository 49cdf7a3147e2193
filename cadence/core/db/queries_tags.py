"""
Tag and like DB queries.

This module contains queries for:
- Tags (free-form labels) and their many-to-many links to playables
- Likes (one row per liked playable; existence is the liked state)

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`.
- Link/unlink and like/unlike are idempotent.
- These functions assume `conn.row_factory = aiosqlite.Row`.
"""

from __future__ import annotations

import logging
from typing import Iterable

import aiosqlite

from cadence.core import DuplicateEntryError, NotFoundError, ReferentialIntegrityError
from cadence.core.db.models import PlayableId, PlayableRow, TagId, TagRow, require_name
from cadence.core.db.ordering import PlayablesOrderBy, playables_order_clause
from cadence.core.db.queries_catalog import PLAYABLE_SELECT, row_to_playable

logger = logging.getLogger(__name__)


def _unique_ids(ids: Iterable[int]) -> list[int]:
    return sorted({int(i) for i in ids})


async def _require_playable(conn: aiosqlite.Connection, playable_id: int) -> None:
    cursor = await conn.execute("SELECT 1 FROM playables WHERE id = ?;", (int(playable_id),))
    if await cursor.fetchone() is None:
        raise ReferentialIntegrityError(f"playable {playable_id} does not exist")


async def _require_tag(conn: aiosqlite.Connection, tag_id: int) -> None:
    cursor = await conn.execute("SELECT 1 FROM tags WHERE id = ?;", (int(tag_id),))
    if await cursor.fetchone() is None:
        raise ReferentialIntegrityError(f"tag {tag_id} does not exist")


async def _require_tag_found(conn: aiosqlite.Connection, tag_id: int) -> None:
    cursor = await conn.execute("SELECT 1 FROM tags WHERE id = ?;", (int(tag_id),))
    if await cursor.fetchone() is None:
        raise NotFoundError(f"tag {tag_id} not found")


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


async def get_tag_by_id(conn: aiosqlite.Connection, tag_id: int) -> TagRow | None:
    cursor = await conn.execute("SELECT id, name FROM tags WHERE id = ?;", (int(tag_id),))
    row = await cursor.fetchone()
    return TagRow(id=TagId(int(row["id"])), name=row["name"]) if row else None


async def find_tag_by_name(conn: aiosqlite.Connection, name: str) -> TagRow | None:
    cursor = await conn.execute("SELECT id, name FROM tags WHERE name = ?;", (name.strip(),))
    row = await cursor.fetchone()
    return TagRow(id=TagId(int(row["id"])), name=row["name"]) if row else None


async def upsert_tag(conn: aiosqlite.Connection, name: str) -> TagId:
    """Get or create a tag by name (case-insensitive), return ID."""
    name = require_name(name, "tag")
    existing = await find_tag_by_name(conn, name)
    if existing is not None:
        return existing.id
    cursor = await conn.execute("INSERT INTO tags (name) VALUES (?);", (name,))
    logger.debug("upsert_tag: created %r as %s", name, cursor.lastrowid)
    return TagId(int(cursor.lastrowid))


async def rename_tag(conn: aiosqlite.Connection, tag_id: int, name: str) -> None:
    name = require_name(name, "tag")
    await _require_tag_found(conn, tag_id)
    clash = await find_tag_by_name(conn, name)
    if clash is not None and clash.id != tag_id:
        raise DuplicateEntryError(f"tag {name!r} already exists")
    await conn.execute("UPDATE tags SET name = ? WHERE id = ?;", (name, int(tag_id)))


async def delete_tag(conn: aiosqlite.Connection, tag_id: int) -> None:
    """Delete a tag; playable links and smart playlist rules go with it (CASCADE)."""
    cursor = await conn.execute("DELETE FROM tags WHERE id = ?;", (int(tag_id),))
    if cursor.rowcount == 0:
        raise NotFoundError(f"tag {tag_id} not found")


async def list_tags(conn: aiosqlite.Connection) -> list[TagRow]:
    cursor = await conn.execute("SELECT id, name FROM tags ORDER BY name COLLATE NOCASE, id;")
    rows = await cursor.fetchall()
    return [TagRow(id=TagId(int(r["id"])), name=r["name"]) for r in rows]


async def prune_unused_tags(conn: aiosqlite.Connection) -> int:
    """Delete tags that label no playable and drive no smart playlist."""
    cursor = await conn.execute(
        """
        DELETE FROM tags
        WHERE id NOT IN (SELECT tag_id FROM playable_tags)
          AND id NOT IN (SELECT tag_id FROM smart_playlist_tags);
        """
    )
    return cursor.rowcount


# ---------------------------------------------------------------------------
# Tag links
# ---------------------------------------------------------------------------


async def add_tag(conn: aiosqlite.Connection, playable_id: int, tag_id: int) -> None:
    await _require_playable(conn, playable_id)
    await _require_tag(conn, tag_id)
    await conn.execute(
        "INSERT OR IGNORE INTO playable_tags (tag_id, playable_id) VALUES (?, ?);",
        (int(tag_id), int(playable_id)),
    )
    logger.debug("add_tag: playable %d tag %d", playable_id, tag_id)


async def remove_tag(conn: aiosqlite.Connection, playable_id: int, tag_id: int) -> None:
    await conn.execute(
        "DELETE FROM playable_tags WHERE tag_id = ? AND playable_id = ?;",
        (int(tag_id), int(playable_id)),
    )
    logger.debug("remove_tag: playable %d tag %d", playable_id, tag_id)


async def tags_for(conn: aiosqlite.Connection, playable_id: int) -> set[TagId]:
    cursor = await conn.execute(
        "SELECT tag_id FROM playable_tags WHERE playable_id = ?;", (int(playable_id),)
    )
    return {TagId(int(r["tag_id"])) for r in await cursor.fetchall()}


async def playables_with_all_tags(
    conn: aiosqlite.Connection, tag_ids: Iterable[int]
) -> set[PlayableId]:
    """
    Playables carrying every tag in `tag_ids`.

    An empty tag set matches nothing (never "all playables").
    """
    wanted = _unique_ids(tag_ids)
    if not wanted:
        return set()
    placeholders = ", ".join("?" for _ in wanted)
    cursor = await conn.execute(
        f"""
        SELECT playable_id
        FROM playable_tags
        WHERE tag_id IN ({placeholders})
        GROUP BY playable_id
        HAVING COUNT(DISTINCT tag_id) = ?;
        """,
        (*wanted, len(wanted)),
    )
    return {PlayableId(int(r["playable_id"])) for r in await cursor.fetchall()}


async def playables_with_any_tags(
    conn: aiosqlite.Connection, tag_ids: Iterable[int]
) -> set[PlayableId]:
    """Playables carrying at least one tag in `tag_ids`. Empty input matches nothing."""
    wanted = _unique_ids(tag_ids)
    if not wanted:
        return set()
    placeholders = ", ".join("?" for _ in wanted)
    cursor = await conn.execute(
        f"SELECT DISTINCT playable_id FROM playable_tags WHERE tag_id IN ({placeholders});",
        wanted,
    )
    return {PlayableId(int(r["playable_id"])) for r in await cursor.fetchall()}


async def tag_playables(
    conn: aiosqlite.Connection, tag_id: int, *, order_by: PlayablesOrderBy = "title"
) -> list[PlayableRow]:
    await _require_tag_found(conn, tag_id)
    cursor = await conn.execute(
        f"""
        {PLAYABLE_SELECT}
        WHERE p.id IN (SELECT playable_id FROM playable_tags WHERE tag_id = ?)
        {playables_order_clause(order_by)};
        """,
        (int(tag_id),),
    )
    return [row_to_playable(r) for r in await cursor.fetchall()]


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------


async def like(conn: aiosqlite.Connection, playable_id: int) -> None:
    await _require_playable(conn, playable_id)
    await conn.execute("INSERT OR IGNORE INTO likes (playable_id) VALUES (?);", (int(playable_id),))
    logger.debug("like: %d", playable_id)


async def unlike(conn: aiosqlite.Connection, playable_id: int) -> None:
    await conn.execute("DELETE FROM likes WHERE playable_id = ?;", (int(playable_id),))
    logger.debug("unlike: %d", playable_id)


async def is_liked(conn: aiosqlite.Connection, playable_id: int) -> bool:
    cursor = await conn.execute("SELECT 1 FROM likes WHERE playable_id = ?;", (int(playable_id),))
    return await cursor.fetchone() is not None


async def liked_playables(
    conn: aiosqlite.Connection, *, order_by: PlayablesOrderBy = "title"
) -> list[PlayableRow]:
    cursor = await conn.execute(
        f"""
        {PLAYABLE_SELECT}
        WHERE p.id IN (SELECT playable_id FROM likes)
        {playables_order_clause(order_by)};
        """
    )
    return [row_to_playable(r) for r in await cursor.fetchall()]
