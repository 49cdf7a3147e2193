"""
Text search index over playable title / artist name / album name.

`search_index` is an FTS5 table using the `trigram` tokenizer, keyed by
playable id (the FTS rowid). It is a derived, denormalized copy of three
fields per playable and is not authoritative: every write path that changes
a playable's title, artist reference or album reference (or renames an
artist/album) must call into this module on the same connection, inside the
same transaction. There are no triggers and no FK cascade on a virtual
table, so deleting a playable must call `remove` as well.

Stored values are normalized with `normalize_search_text` so matching is
case- and accent-insensitive. Every query token of three or more characters
becomes a quoted FTS phrase, which the trigram index answers as a substring
match without visiting unrelated rows. Shorter tokens have no trigram; they
are checked in Python against the rows the longer tokens selected. A query
made only of one- or two-character tokens falls back to `LIKE` over the
index table.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`.
- These functions assume `conn.row_factory = aiosqlite.Row`.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass

import aiosqlite

from cadence.core.db.models import PlayableId

logger = logging.getLogger(__name__)

# Field weights for relevance scoring.
TITLE_WEIGHT = 3
ARTIST_WEIGHT = 2
ALBUM_WEIGHT = 1
WORD_START_BONUS = 1
EXACT_TITLE_BONUS = 5

# Tokens shorter than this have no trigram and cannot use the FTS index.
MIN_INDEXED_TOKEN = 3

# bm25 column weights, same order as the table columns.
_BM25_WEIGHTS = f"{float(TITLE_WEIGHT)}, {float(ARTIST_WEIGHT)}, {float(ALBUM_WEIGHT)}"

_SELECT_SOURCE = """
    SELECT p.id AS playable_id, p.title AS title, ar.name AS artist_name, al.name AS album_name
    FROM playables p
    LEFT JOIN artists ar ON ar.id = p.artist_id
    LEFT JOIN albums al ON al.id = p.album_id
"""


def normalize_search_text(value: str | None) -> str:
    """
    Fold text for matching:
    - NFKD decomposition with combining marks dropped ("Beyoncé" -> "beyonce")
    - casefold
    - collapse runs of whitespace
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


def tokenize_query(query: str) -> list[str]:
    """Split a query into unique normalized tokens, preserving order."""
    seen: set[str] = set()
    tokens: list[str] = []
    for tok in normalize_search_text(query).split():
        if tok not in seen:
            seen.add(tok)
            tokens.append(tok)
    return tokens


def _escape_like(token: str) -> str:
    return token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _starts_word(field: str, token: str) -> bool:
    return field.startswith(token) or f" {token}" in field


@dataclass(frozen=True, slots=True)
class _Candidate:
    playable_id: int
    title: str
    artist_name: str
    album_name: str


def score_candidate(candidate: _Candidate, tokens: list[str], normalized_query: str) -> int:
    """
    Relevance of one indexed row for the given tokens.

    Each token contributes the weight of the best field it occurs in, plus a
    bonus when it starts a word there. A title equal to the whole query gets
    an extra bonus.
    """
    fields = (
        (candidate.title, TITLE_WEIGHT),
        (candidate.artist_name, ARTIST_WEIGHT),
        (candidate.album_name, ALBUM_WEIGHT),
    )
    score = 0
    for tok in tokens:
        best = 0
        for text, weight in fields:
            if tok not in text:
                continue
            value = weight + (WORD_START_BONUS if _starts_word(text, tok) else 0)
            best = max(best, value)
        score += best
    if candidate.title == normalized_query:
        score += EXACT_TITLE_BONUS
    return score


# ---------------------------------------------------------------------------
# Maintenance (write path)
# ---------------------------------------------------------------------------


async def index(
    conn: aiosqlite.Connection,
    playable_id: int,
    title: str,
    artist_name: str | None = None,
    album_name: str | None = None,
) -> None:
    """Write (or overwrite) the index entry for one playable."""
    await remove(conn, playable_id)
    await conn.execute(
        """
        INSERT INTO search_index (rowid, title, artist_name, album_name)
        VALUES (?, ?, ?, ?)
        """,
        (
            int(playable_id),
            normalize_search_text(title),
            normalize_search_text(artist_name),
            normalize_search_text(album_name),
        ),
    )


async def _index_rows(conn: aiosqlite.Connection, where: str, params: tuple) -> int:
    cursor = await conn.execute(f"{_SELECT_SOURCE} WHERE {where};", params)
    rows = await cursor.fetchall()
    for r in rows:
        await index(conn, int(r["playable_id"]), r["title"], r["artist_name"], r["album_name"])
    return len(rows)


async def reindex(conn: aiosqlite.Connection, playable_id: int) -> None:
    """
    Recompute the entry for one playable from current catalog state.

    If the playable no longer exists, its entry is removed.
    """
    count = await _index_rows(conn, "p.id = ?", (int(playable_id),))
    if count == 0:
        await remove(conn, playable_id)


async def reindex_artist(conn: aiosqlite.Connection, artist_id: int) -> int:
    """Reindex every playable that references an artist. Returns the count."""
    count = await _index_rows(conn, "p.artist_id = ?", (int(artist_id),))
    logger.debug("reindex_artist: %d entries for artist %d", count, artist_id)
    return count


async def reindex_album(conn: aiosqlite.Connection, album_id: int) -> int:
    """Reindex every playable that references an album. Returns the count."""
    count = await _index_rows(conn, "p.album_id = ?", (int(album_id),))
    logger.debug("reindex_album: %d entries for album %d", count, album_id)
    return count


async def remove(conn: aiosqlite.Connection, playable_id: int) -> None:
    await conn.execute("DELETE FROM search_index WHERE rowid = ?;", (int(playable_id),))


async def rebuild(conn: aiosqlite.Connection) -> int:
    """Drop and recompute the whole index. Returns the number of entries."""
    await conn.execute("DELETE FROM search_index;")
    count = await _index_rows(conn, "1 = 1", ())
    logger.info("Rebuilt search index with %d entries", count)
    return count


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


def _fts_phrase(token: str) -> str:
    return '"' + token.replace('"', '""') + '"'


async def _candidates(conn: aiosqlite.Connection, tokens: list[str]) -> list[aiosqlite.Row]:
    indexed = [tok for tok in tokens if len(tok) >= MIN_INDEXED_TOKEN]
    if indexed:
        cursor = await conn.execute(
            f"""
            SELECT rowid AS playable_id, title, artist_name, album_name,
                   bm25(search_index, {_BM25_WEIGHTS}) AS relevance
            FROM search_index
            WHERE search_index MATCH ?;
            """,
            (" AND ".join(_fts_phrase(tok) for tok in indexed),),
        )
        return await cursor.fetchall()

    clauses: list[str] = []
    params: list[str] = []
    for tok in tokens:
        pattern = f"%{_escape_like(tok)}%"
        clauses.append(
            "(title LIKE ? ESCAPE '\\' OR artist_name LIKE ? ESCAPE '\\' "
            "OR album_name LIKE ? ESCAPE '\\')"
        )
        params.extend((pattern, pattern, pattern))
    cursor = await conn.execute(
        f"""
        SELECT rowid AS playable_id, title, artist_name, album_name, 0.0 AS relevance
        FROM search_index
        WHERE {" AND ".join(clauses)};
        """,
        params,
    )
    return await cursor.fetchall()


async def search(
    conn: aiosqlite.Connection,
    query: str,
    *,
    limit: int | None = None,
) -> list[PlayableId]:
    """
    Return playable ids matching `query`, most relevant first.

    Every token must occur (as a substring) in the title, artist or album.
    Ties on score are broken by the FTS bm25 rank, then title, then id.
    A blank query matches nothing.
    """
    tokens = tokenize_query(query)
    if not tokens:
        return []

    normalized_query = normalize_search_text(query)
    scored: list[tuple[int, float, str, int]] = []
    for r in await _candidates(conn, tokens):
        cand = _Candidate(
            playable_id=int(r["playable_id"]),
            title=r["title"],
            artist_name=r["artist_name"],
            album_name=r["album_name"],
        )
        # Short tokens were not part of the MATCH; LIKE folds ASCII case only.
        if not all(
            tok in cand.title or tok in cand.artist_name or tok in cand.album_name
            for tok in tokens
        ):
            continue
        score = score_candidate(cand, tokens, normalized_query)
        scored.append((score, float(r["relevance"]), cand.title, cand.playable_id))

    scored.sort(key=lambda s: (-s[0], s[1], s[2], s[3]))
    if limit is not None:
        scored = scored[: max(0, int(limit))]
    return [PlayableId(pid) for _, _, _, pid in scored]
