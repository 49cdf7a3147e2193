"""
Playlist DB queries: the folder tree, static membership and smart playlists.

Playlist kinds:
- static: explicit members in `playlist_playables`, ordered by `position`
- dynamic: members computed at read time from `smart_playlist_tags`
- folder: no members, only nests other playlists via `parent_id`

Position policy:
- Static members use dense positions `0..n-1`, unique per playlist (enforced
  by a UNIQUE index). Removal closes the gap; insert/reorder shift only the
  rows between the old and new slots.
- Sibling display positions in the tree follow the same dense policy.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`.
- Validation happens before the first write: a KindMismatchError or
  OrderingConflictError leaves the playlist untouched.
"""

from __future__ import annotations

import logging
from typing import Iterable

import aiosqlite

from cadence.core import (
    DuplicateEntryError,
    KindMismatchError,
    NotFoundError,
    OrderingConflictError,
    ReferentialIntegrityError,
)
from cadence.core.db import queries_tags
from cadence.core.db.models import (
    FolderDeletePolicy,
    MatchMode,
    PlayableId,
    PlaylistId,
    PlaylistKind,
    PlaylistRow,
    TagId,
    require_name,
)
from cadence.core.db.ordering import playlists_order_clause

logger = logging.getLogger(__name__)


def _row_to_playlist(row: aiosqlite.Row) -> PlaylistRow:
    return PlaylistRow(
        id=PlaylistId(int(row["id"])),
        name=row["name"],
        kind=PlaylistKind(row["kind"]),
        parent_id=row["parent_id"],
        position=int(row["position"]),
        match_mode=MatchMode(row["match_mode"]),
    )


def _require_kind(playlist: PlaylistRow, kind: PlaylistKind, action: str) -> None:
    if playlist.kind is not kind:
        raise KindMismatchError(
            f"cannot {action} on {playlist.kind.value} playlist {playlist.name!r}"
        )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


async def get_playlist_by_id(conn: aiosqlite.Connection, playlist_id: int) -> PlaylistRow | None:
    cursor = await conn.execute(
        "SELECT id, parent_id, name, kind, position, match_mode FROM playlists WHERE id = ?;",
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return _row_to_playlist(row) if row else None


async def require_playlist(conn: aiosqlite.Connection, playlist_id: int) -> PlaylistRow:
    playlist = await get_playlist_by_id(conn, playlist_id)
    if playlist is None:
        raise NotFoundError(f"playlist {playlist_id} not found")
    return playlist


async def find_playlist_by_name(conn: aiosqlite.Connection, name: str) -> PlaylistRow | None:
    cursor = await conn.execute(
        "SELECT id, parent_id, name, kind, position, match_mode FROM playlists WHERE name = ?;",
        (name.strip(),),
    )
    row = await cursor.fetchone()
    return _row_to_playlist(row) if row else None


async def list_playlists(conn: aiosqlite.Connection) -> list[PlaylistRow]:
    """All playlist nodes, grouped by parent and ordered by display position."""
    cursor = await conn.execute(
        f"""
        SELECT pl.id, pl.parent_id, pl.name, pl.kind, pl.position, pl.match_mode
        FROM playlists pl
        {playlists_order_clause()};
        """
    )
    return [_row_to_playlist(r) for r in await cursor.fetchall()]


async def list_children(
    conn: aiosqlite.Connection, parent_id: int | None
) -> list[PlaylistRow]:
    """Direct children of a folder (or the root nodes when `parent_id` is None)."""
    cursor = await conn.execute(
        """
        SELECT id, parent_id, name, kind, position, match_mode
        FROM playlists
        WHERE parent_id IS ?
        ORDER BY position ASC, id ASC;
        """,
        (parent_id if parent_id is None else int(parent_id),),
    )
    return [_row_to_playlist(r) for r in await cursor.fetchall()]


# ---------------------------------------------------------------------------
# Tree: create / rename / move / delete
# ---------------------------------------------------------------------------


async def _check_parent(conn: aiosqlite.Connection, parent_id: int | None) -> None:
    if parent_id is None:
        return
    parent = await require_playlist(conn, parent_id)
    _require_kind(parent, PlaylistKind.FOLDER, "nest playlists")


async def _sibling_count(conn: aiosqlite.Connection, parent_id: int | None) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlists WHERE parent_id IS ?;",
        (parent_id if parent_id is None else int(parent_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def _shift_siblings(
    conn: aiosqlite.Connection, parent_id: int | None, *, start: int, delta: int
) -> None:
    # Sibling positions carry no UNIQUE index, so a single UPDATE is safe.
    await conn.execute(
        "UPDATE playlists SET position = position + ? WHERE parent_id IS ? AND position >= ?;",
        (int(delta), parent_id if parent_id is None else int(parent_id), int(start)),
    )


async def create_playlist(
    conn: aiosqlite.Connection,
    name: str,
    *,
    kind: PlaylistKind = PlaylistKind.STATIC,
    parent_id: int | None = None,
    match_mode: MatchMode = MatchMode.ALL,
) -> PlaylistId:
    """Create a playlist node appended after its siblings. Names are unique (NOCASE)."""
    name = require_name(name, "playlist")
    kind = PlaylistKind(kind)
    if await find_playlist_by_name(conn, name) is not None:
        raise DuplicateEntryError(f"playlist {name!r} already exists")
    await _check_parent(conn, parent_id)

    position = await _sibling_count(conn, parent_id)
    cursor = await conn.execute(
        """
        INSERT INTO playlists (name, kind, parent_id, position, match_mode)
        VALUES (?, ?, ?, ?, ?);
        """,
        (name, kind.value, parent_id, position, MatchMode(match_mode).value),
    )
    playlist_id = PlaylistId(int(cursor.lastrowid))
    logger.debug(
        "create_playlist: %r kind=%s parent=%s as %d", name, kind.value, parent_id, playlist_id
    )
    return playlist_id


async def rename_playlist(conn: aiosqlite.Connection, playlist_id: int, name: str) -> None:
    name = require_name(name, "playlist")
    await require_playlist(conn, playlist_id)
    clash = await find_playlist_by_name(conn, name)
    if clash is not None and clash.id != playlist_id:
        raise DuplicateEntryError(f"playlist {name!r} already exists")
    await conn.execute("UPDATE playlists SET name = ? WHERE id = ?;", (name, int(playlist_id)))


async def _ancestor_ids(conn: aiosqlite.Connection, playlist_id: int) -> set[int]:
    """Ids of `playlist_id` and all its ancestors."""
    cursor = await conn.execute(
        """
        WITH RECURSIVE chain(id, parent_id) AS (
            SELECT id, parent_id FROM playlists WHERE id = ?
            UNION ALL
            SELECT pl.id, pl.parent_id FROM playlists pl JOIN chain c ON pl.id = c.parent_id
        )
        SELECT id FROM chain;
        """,
        (int(playlist_id),),
    )
    return {int(r["id"]) for r in await cursor.fetchall()}


async def move_playlist(
    conn: aiosqlite.Connection,
    playlist_id: int,
    parent_id: int | None,
    *,
    position: int | None = None,
) -> None:
    """
    Move a node under `parent_id` (None = root) at `position` among its new
    siblings (None = last). Moving a folder into itself or a descendant is
    rejected.
    """
    node = await require_playlist(conn, playlist_id)
    await _check_parent(conn, parent_id)
    if parent_id is not None and int(playlist_id) in await _ancestor_ids(conn, parent_id):
        raise ReferentialIntegrityError(
            f"cannot move playlist {node.name!r} into itself or one of its descendants"
        )

    same_parent = node.parent_id == parent_id
    count = await _sibling_count(conn, parent_id) - (1 if same_parent else 0)
    target = count if position is None else int(position)
    if not 0 <= target <= count:
        raise OrderingConflictError(f"position {position} out of range 0..{count}")

    # Detach, close the old gap, open the new one, attach.
    await conn.execute("UPDATE playlists SET position = -1 WHERE id = ?;", (int(playlist_id),))
    await _shift_siblings(conn, node.parent_id, start=node.position + 1, delta=-1)
    await _shift_siblings(conn, parent_id, start=target, delta=1)
    await conn.execute(
        "UPDATE playlists SET parent_id = ?, position = ? WHERE id = ?;",
        (parent_id, target, int(playlist_id)),
    )
    logger.debug("move_playlist: %d -> parent=%s position=%d", playlist_id, parent_id, target)


async def delete_playlist(
    conn: aiosqlite.Connection,
    playlist_id: int,
    *,
    policy: FolderDeletePolicy | None = None,
) -> None:
    """
    Delete a playlist node.

    A folder that still has children requires an explicit `policy`:
    - CASCADE deletes the whole subtree (via ON DELETE CASCADE on parent_id)
    - REPARENT moves the children to the folder's parent, after its existing
      children, keeping their relative order
    """
    node = await require_playlist(conn, playlist_id)
    children = await list_children(conn, playlist_id)

    if children:
        if policy is None:
            raise ReferentialIntegrityError(
                f"folder {node.name!r} is not empty; choose to cascade or reparent its children"
            )
        if FolderDeletePolicy(policy) is FolderDeletePolicy.REPARENT:
            base = await _sibling_count(conn, node.parent_id)
            for offset, child in enumerate(children):
                await conn.execute(
                    "UPDATE playlists SET parent_id = ?, position = ? WHERE id = ?;",
                    (node.parent_id, base + offset, int(child.id)),
                )

    await conn.execute("DELETE FROM playlists WHERE id = ?;", (int(playlist_id),))
    await _shift_siblings(conn, node.parent_id, start=node.position + 1, delta=-1)
    logger.debug(
        "delete_playlist: %d (%s) children=%d policy=%s",
        playlist_id,
        node.kind.value,
        len(children),
        policy,
    )


# ---------------------------------------------------------------------------
# Static membership
# ---------------------------------------------------------------------------


async def require_static(
    conn: aiosqlite.Connection, playlist_id: int, action: str
) -> PlaylistRow:
    playlist = await require_playlist(conn, playlist_id)
    _require_kind(playlist, PlaylistKind.STATIC, action)
    return playlist


async def _entry_count(conn: aiosqlite.Connection, playlist_id: int) -> int:
    cursor = await conn.execute(
        "SELECT COUNT(*) AS c FROM playlist_playables WHERE playlist_id = ?;",
        (int(playlist_id),),
    )
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def _entry_position(
    conn: aiosqlite.Connection, playlist_id: int, playable_id: int
) -> int | None:
    cursor = await conn.execute(
        "SELECT position FROM playlist_playables WHERE playlist_id = ? AND playable_id = ?;",
        (int(playlist_id), int(playable_id)),
    )
    row = await cursor.fetchone()
    return int(row["position"]) if row else None


async def _shift_entries(
    conn: aiosqlite.Connection, playlist_id: int, lo: int, hi: int, delta: int
) -> None:
    """
    Add `delta` to every position in [lo, hi].

    SQLite checks UNIQUE(playlist_id, position) row by row, so the shift goes
    through negative scratch values: p -> -(p + delta) - 1 -> p + delta.
    """
    if lo > hi:
        return
    await conn.execute(
        """
        UPDATE playlist_playables SET position = -(position + ?) - 1
        WHERE playlist_id = ? AND position BETWEEN ? AND ?;
        """,
        (int(delta), int(playlist_id), int(lo), int(hi)),
    )
    await conn.execute(
        "UPDATE playlist_playables SET position = -position - 1 "
        "WHERE playlist_id = ? AND position < 0;",
        (int(playlist_id),),
    )


async def add_to_playlist(
    conn: aiosqlite.Connection,
    playlist_id: int,
    playable_id: int,
    *,
    position: int | None = None,
) -> int:
    """
    Insert a playable into a static playlist. Returns the position used.

    `position=None` appends; otherwise `0 <= position <= len` inserts before
    the current occupant. A playable can appear only once per playlist.
    """
    await require_static(conn, playlist_id, "add playables")
    cursor = await conn.execute("SELECT 1 FROM playables WHERE id = ?;", (int(playable_id),))
    if await cursor.fetchone() is None:
        raise ReferentialIntegrityError(f"playable {playable_id} does not exist")
    if await _entry_position(conn, playlist_id, playable_id) is not None:
        raise DuplicateEntryError(f"playable {playable_id} is already in playlist {playlist_id}")

    count = await _entry_count(conn, playlist_id)
    target = count if position is None else int(position)
    if not 0 <= target <= count:
        raise OrderingConflictError(f"position {position} out of range 0..{count}")

    await _shift_entries(conn, playlist_id, target, count - 1, 1)
    await conn.execute(
        "INSERT INTO playlist_playables (playlist_id, playable_id, position) VALUES (?, ?, ?);",
        (int(playlist_id), int(playable_id), target),
    )
    logger.debug("add_to_playlist: playable %d -> %d @%d", playable_id, playlist_id, target)
    return target


async def add_many_to_playlist(
    conn: aiosqlite.Connection, playlist_id: int, playable_ids: Iterable[int]
) -> int:
    """Append playables in order, skipping ones already present. Returns the count added."""
    await require_static(conn, playlist_id, "add playables")
    added = 0
    for pid in playable_ids:
        if await _entry_position(conn, playlist_id, pid) is not None:
            continue
        await add_to_playlist(conn, playlist_id, pid)
        added += 1
    return added


async def remove_from_playlist(
    conn: aiosqlite.Connection, playlist_id: int, playable_id: int
) -> None:
    """Remove a member and close the gap so positions stay dense."""
    await require_static(conn, playlist_id, "remove playables")
    old = await _entry_position(conn, playlist_id, playable_id)
    if old is None:
        raise NotFoundError(f"playable {playable_id} is not in playlist {playlist_id}")
    count = await _entry_count(conn, playlist_id)
    await conn.execute(
        "DELETE FROM playlist_playables WHERE playlist_id = ? AND playable_id = ?;",
        (int(playlist_id), int(playable_id)),
    )
    await _shift_entries(conn, playlist_id, old + 1, count - 1, -1)
    logger.debug("remove_from_playlist: playable %d from %d @%d", playable_id, playlist_id, old)


async def remove_many_from_playlist(
    conn: aiosqlite.Connection, playlist_id: int, playable_ids: Iterable[int]
) -> int:
    """Remove several members; ids that are not members are skipped. Returns the count removed."""
    await require_static(conn, playlist_id, "remove playables")
    removed = 0
    for pid in dict.fromkeys(int(i) for i in playable_ids):
        if await _entry_position(conn, playlist_id, pid) is None:
            continue
        await remove_from_playlist(conn, playlist_id, pid)
        removed += 1
    return removed


async def clear_playlist(conn: aiosqlite.Connection, playlist_id: int) -> None:
    await require_static(conn, playlist_id, "clear")
    await conn.execute("DELETE FROM playlist_playables WHERE playlist_id = ?;", (int(playlist_id),))


async def detach_playable(conn: aiosqlite.Connection, playable_id: int) -> int:
    """
    Remove a playable from every static playlist, closing each gap.

    Called before deleting a playable; ON DELETE CASCADE alone would leave
    holes in the positions. Returns the number of playlists touched.
    """
    cursor = await conn.execute(
        "SELECT playlist_id FROM playlist_playables WHERE playable_id = ?;",
        (int(playable_id),),
    )
    playlist_ids = [int(r["playlist_id"]) for r in await cursor.fetchall()]
    for playlist_id in playlist_ids:
        await remove_from_playlist(conn, playlist_id, playable_id)
    return len(playlist_ids)


async def reorder(
    conn: aiosqlite.Connection, playlist_id: int, playable_id: int, new_position: int
) -> None:
    """
    Move a member to `new_position` (0..len-1).

    Only the rows between the old and the new slot are renumbered.
    """
    await require_static(conn, playlist_id, "reorder")
    old = await _entry_position(conn, playlist_id, playable_id)
    if old is None:
        raise NotFoundError(f"playable {playable_id} is not in playlist {playlist_id}")
    count = await _entry_count(conn, playlist_id)
    new = int(new_position)
    if not 0 <= new < count:
        raise OrderingConflictError(f"position {new_position} out of range 0..{count - 1}")
    if new == old:
        return

    await conn.execute(
        "DELETE FROM playlist_playables WHERE playlist_id = ? AND playable_id = ?;",
        (int(playlist_id), int(playable_id)),
    )
    if new < old:
        await _shift_entries(conn, playlist_id, new, old - 1, 1)
    else:
        await _shift_entries(conn, playlist_id, old + 1, new, -1)
    await conn.execute(
        "INSERT INTO playlist_playables (playlist_id, playable_id, position) VALUES (?, ?, ?);",
        (int(playlist_id), int(playable_id), new),
    )
    logger.debug("reorder: playable %d in %d %d -> %d", playable_id, playlist_id, old, new)


async def entry_positions(
    conn: aiosqlite.Connection, playlist_id: int
) -> list[tuple[PlayableId, int]]:
    """(playable_id, position) pairs of a static playlist in iteration order."""
    await require_static(conn, playlist_id, "list entries")
    cursor = await conn.execute(
        """
        SELECT playable_id, position FROM playlist_playables
        WHERE playlist_id = ?
        ORDER BY position ASC;
        """,
        (int(playlist_id),),
    )
    rows = await cursor.fetchall()
    return [(PlayableId(int(r["playable_id"])), int(r["position"])) for r in rows]


async def playlist_entry_ids(conn: aiosqlite.Connection, playlist_id: int) -> list[PlayableId]:
    return [pid for pid, _ in await entry_positions(conn, playlist_id)]


# ---------------------------------------------------------------------------
# Dynamic (smart) playlists
# ---------------------------------------------------------------------------


async def set_smart_tags(
    conn: aiosqlite.Connection,
    playlist_id: int,
    tag_ids: Iterable[int],
    *,
    match_mode: MatchMode | None = None,
) -> None:
    """Replace the tag rule of a dynamic playlist."""
    playlist = await require_playlist(conn, playlist_id)
    _require_kind(playlist, PlaylistKind.DYNAMIC, "set smart tags")
    wanted = sorted({int(t) for t in tag_ids})
    for tag_id in wanted:
        if await queries_tags.get_tag_by_id(conn, tag_id) is None:
            raise ReferentialIntegrityError(f"tag {tag_id} does not exist")

    await conn.execute(
        "DELETE FROM smart_playlist_tags WHERE playlist_id = ?;", (int(playlist_id),)
    )
    await conn.executemany(
        "INSERT INTO smart_playlist_tags (playlist_id, tag_id) VALUES (?, ?);",
        [(int(playlist_id), tag_id) for tag_id in wanted],
    )
    if match_mode is not None:
        await conn.execute(
            "UPDATE playlists SET match_mode = ? WHERE id = ?;",
            (MatchMode(match_mode).value, int(playlist_id)),
        )
    logger.debug("set_smart_tags: %d tags=%s match=%s", playlist_id, wanted, match_mode)


async def smart_tags(conn: aiosqlite.Connection, playlist_id: int) -> set[TagId]:
    playlist = await require_playlist(conn, playlist_id)
    _require_kind(playlist, PlaylistKind.DYNAMIC, "read smart tags")
    cursor = await conn.execute(
        "SELECT tag_id FROM smart_playlist_tags WHERE playlist_id = ?;", (int(playlist_id),)
    )
    return {TagId(int(r["tag_id"])) for r in await cursor.fetchall()}


async def _order_by_title(conn: aiosqlite.Connection, ids: set[PlayableId]) -> list[PlayableId]:
    if not ids:
        return []
    wanted = sorted(ids)
    placeholders = ", ".join("?" for _ in wanted)
    cursor = await conn.execute(
        f"""
        SELECT id FROM playables
        WHERE id IN ({placeholders})
        ORDER BY title COLLATE NOCASE ASC, id ASC;
        """,
        wanted,
    )
    return [PlayableId(int(r["id"])) for r in await cursor.fetchall()]


async def resolve(conn: aiosqlite.Connection, playlist_id: int) -> list[PlayableId]:
    """
    Current members of a playlist, in playback order.

    - static: stored entries by position
    - dynamic: recomputed now from the tag rule, ordered by title then id
    - folder: KindMismatchError
    """
    playlist = await require_playlist(conn, playlist_id)
    if playlist.kind is PlaylistKind.FOLDER:
        raise KindMismatchError(f"folder {playlist.name!r} has no members")
    if playlist.kind is PlaylistKind.STATIC:
        return await playlist_entry_ids(conn, playlist_id)

    tags = await smart_tags(conn, playlist_id)
    if playlist.match_mode is MatchMode.ANY:
        ids = await queries_tags.playables_with_any_tags(conn, tags)
    else:
        ids = await queries_tags.playables_with_all_tags(conn, tags)
    return await _order_by_title(conn, ids)
