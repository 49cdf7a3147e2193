"""
Shared ORDER BY clause helpers for library queries.

These helpers centralize the translation from higher-level sort keys into
SQL snippets (including reasonable COLLATE/NULLS handling) so the logic
doesn't get duplicated across query modules.

Important:
- The returned strings are intended to be *static SQL fragments* selected
  from a small whitelist. Do NOT concatenate user input into ORDER BY.
- Playable queries must alias tables as `p` (playables), `ar` (artists),
  `al` (albums) and `g` (genres).
"""

from __future__ import annotations

from typing import Literal

PlayablesOrderBy = Literal[
    "title",
    "artist",
    "album",
    "genre",
    "duration",
    "date_added",
    "id",
]


def playables_order_clause(order_by: PlayablesOrderBy | str) -> str:
    """
    Return an ORDER BY clause for playable list queries.

    Expected order_by values are a small whitelist (see PlayablesOrderBy),
    but we accept `str` to keep call sites ergonomic. Unknown values
    fall back to title ordering.

    Every clause ends with `p.id` so paging is stable.
    """
    if order_by == "artist":
        # Unknown artists sort last.
        return (
            "ORDER BY "
            "ar.name IS NULL ASC, "
            "ar.name COLLATE NOCASE ASC, "
            "al.name COLLATE NOCASE ASC, "
            "p.title COLLATE NOCASE ASC, "
            "p.id ASC"
        )
    if order_by == "album":
        return (
            "ORDER BY "
            "al.name IS NULL ASC, "
            "al.name COLLATE NOCASE ASC, "
            "p.title COLLATE NOCASE ASC, "
            "p.id ASC"
        )
    if order_by == "genre":
        return (
            "ORDER BY "
            "g.name IS NULL ASC, "
            "g.name COLLATE NOCASE ASC, "
            "p.title COLLATE NOCASE ASC, "
            "p.id ASC"
        )
    if order_by == "duration":
        return "ORDER BY COALESCE(p.duration, 0) ASC, p.title COLLATE NOCASE ASC, p.id ASC"
    if order_by == "date_added":
        # Newest first: the "recently added" view.
        return "ORDER BY p.date_added DESC, p.id DESC"
    if order_by == "id":
        return "ORDER BY p.id ASC"

    # Default: title
    return "ORDER BY p.title COLLATE NOCASE ASC, p.id ASC"


def playlists_order_clause() -> str:
    """Sidebar order: root nodes first, then by display position within a parent."""
    return "ORDER BY COALESCE(pl.parent_id, 0) ASC, pl.position ASC, pl.id ASC"
