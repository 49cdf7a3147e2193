"""Shared fixtures for the library store tests."""

from __future__ import annotations

import pytest

from cadence.config import StorageConfig
from cadence.core.db.models import ImportRecord, PlayableId
from cadence.core.library_store import LibraryStore


@pytest.fixture
async def store() -> LibraryStore:
    """Create an in-memory library for testing."""
    store = LibraryStore(":memory:", config=StorageConfig())
    await store.open()
    await store.ensure_schema()
    yield store
    await store.close()


async def _add_song(
    store: LibraryStore,
    title: str,
    *,
    artist: str | None = None,
    album: str | None = None,
    genre: str | None = None,
    tags: tuple[str, ...] = (),
    duration: int | None = None,
) -> PlayableId:
    """Import a local-file playable with a source derived from its title."""
    return await store.import_playable(
        ImportRecord(
            title=title,
            source_url=f"/music/{artist or 'unknown'}/{title}.mp3",
            artist=artist,
            album=album,
            genre=genre,
            tags=tags,
            duration=duration,
        )
    )


@pytest.fixture
def add_song(store: LibraryStore):
    """`await add_song("Title", artist=...)` imports into the `store` fixture."""

    async def _add(title: str, **kwargs) -> PlayableId:
        return await _add_song(store, title, **kwargs)

    return _add
