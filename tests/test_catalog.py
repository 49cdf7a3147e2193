"""
Tests for the catalog part of the library store.

These tests verify:
- artist/album/genre upserts (case-insensitive uniqueness) and renames
- playable insert/update/delete, including referential checks
- cascades on playable deletion and orphan pruning
- listing, ordering and paging
"""

from __future__ import annotations

from typing import get_args

import pytest

from cadence.core import DuplicateEntryError, NotFoundError, ReferentialIntegrityError
from cadence.core.db.models import MediaKind, NewPlayable
from cadence.core.db.ordering import PlayablesOrderBy
from cadence.core.library_store import LibraryStore


class TestArtistsAlbumsGenres:
    async def test_upsert_artist_is_case_insensitive(self, store: LibraryStore) -> None:
        first = await store.upsert_artist("Deadmau5")
        second = await store.upsert_artist("  deadmau5 ")
        assert first == second

        artist = await store.get_artist(first)
        assert artist is not None
        assert artist.name == "Deadmau5"
        assert len(await store.list_artists()) == 1

    async def test_blank_names_are_rejected(self, store: LibraryStore) -> None:
        with pytest.raises(ValueError):
            await store.upsert_artist("   ")
        with pytest.raises(ValueError):
            await store.upsert_genre("")

    async def test_albums_are_unique_per_artist(self, store: LibraryStore) -> None:
        a = await store.upsert_artist("Artist A")
        b = await store.upsert_artist("Artist B")

        greatest_a = await store.upsert_album("Greatest Hits", a)
        greatest_b = await store.upsert_album("Greatest Hits", b)
        greatest_none = await store.upsert_album("Greatest Hits")

        assert len({greatest_a, greatest_b, greatest_none}) == 3
        assert await store.upsert_album("greatest hits", a) == greatest_a
        assert await store.upsert_album("GREATEST HITS") == greatest_none

        found = await store.find_album("Greatest Hits", b)
        assert found is not None and found.artist_name == "Artist B"

    async def test_album_requires_existing_artist(self, store: LibraryStore) -> None:
        with pytest.raises(ReferentialIntegrityError):
            await store.upsert_album("Orphan", 999)

    async def test_rename_artist(self, store: LibraryStore) -> None:
        artist_id = await store.upsert_artist("Old Name")
        await store.rename_artist(artist_id, "New Name")
        artist = await store.get_artist(artist_id)
        assert artist is not None and artist.name == "New Name"
        assert await store.find_artist("new name") == artist

    async def test_rename_artist_conflict(self, store: LibraryStore) -> None:
        a = await store.upsert_artist("One")
        await store.upsert_artist("Two")
        with pytest.raises(DuplicateEntryError):
            await store.rename_artist(a, "TWO")

    async def test_rename_missing_raises_not_found(self, store: LibraryStore) -> None:
        with pytest.raises(NotFoundError):
            await store.rename_artist(42, "Nobody")
        with pytest.raises(NotFoundError):
            await store.rename_album(42, "Nothing")
        with pytest.raises(NotFoundError):
            await store.rename_genre(42, "Noise")

    async def test_genres(self, store: LibraryStore) -> None:
        house = await store.upsert_genre("House")
        assert await store.upsert_genre("house") == house
        await store.rename_genre(house, "Deep House")
        genre = await store.get_genre(house)
        assert genre is not None and genre.name == "Deep House"
        assert [g.name for g in await store.list_genres()] == ["Deep House"]


class TestPlayables:
    async def test_insert_and_get(self, store: LibraryStore) -> None:
        artist_id = await store.upsert_artist("Deadmau5")
        album_id = await store.upsert_album("For Lack of a Better Name", artist_id)
        playable_id = await store.insert_playable(
            NewPlayable(
                title="Strobe",
                source_url="/music/strobe.flac",
                artist_id=artist_id,
                album_id=album_id,
                duration=637,
            )
        )

        row = await store.get_playable(playable_id)
        assert row is not None
        assert row.title == "Strobe"
        assert row.artist_name == "Deadmau5"
        assert row.album_name == "For Lack of a Better Name"
        assert row.duration == 637
        assert row.media_kind is MediaKind.LOCAL_FILE
        assert row.date_added > 0
        assert row.has_artwork is False

    async def test_insert_with_unknown_reference_writes_nothing(
        self, store: LibraryStore
    ) -> None:
        with pytest.raises(ReferentialIntegrityError):
            await store.insert_playable(
                NewPlayable(title="Ghost", source_url="/music/ghost.mp3", artist_id=123)
            )
        assert await store.count_playables() == 0
        assert await store.search("ghost") == []

    async def test_duplicate_source_is_rejected(self, store: LibraryStore) -> None:
        await store.insert_playable(NewPlayable(title="A", source_url="/music/a.mp3"))
        with pytest.raises(DuplicateEntryError):
            await store.insert_playable(NewPlayable(title="B", source_url="/music/a.mp3"))
        assert await store.count_playables() == 1

    async def test_stream_playable(self, store: LibraryStore) -> None:
        playable_id = await store.insert_playable(
            NewPlayable(
                title="Radio",
                source_url="https://radio.example/stream",
                media_kind=MediaKind.STREAM,
            )
        )
        row = await store.get_playable(playable_id)
        assert row is not None and row.media_kind is MediaKind.STREAM

    async def test_update_playable(self, store: LibraryStore) -> None:
        playable_id = await store.insert_playable(NewPlayable(title="Old", source_url="/a.mp3"))
        genre_id = await store.upsert_genre("Techno")

        await store.update_playable(playable_id, title="New", genre_id=genre_id, duration=61)

        row = await store.get_playable(playable_id)
        assert row is not None
        assert row.title == "New"
        assert row.genre_name == "Techno"
        assert row.duration == 61

    async def test_update_unknown_field(self, store: LibraryStore) -> None:
        playable_id = await store.insert_playable(NewPlayable(title="X", source_url="/x.mp3"))
        with pytest.raises(ValueError):
            await store.update_playable(playable_id, rating=5)

    async def test_update_missing_playable(self, store: LibraryStore) -> None:
        with pytest.raises(NotFoundError):
            await store.update_playable(99, title="Nope")

    async def test_update_to_unknown_album_is_atomic(self, store: LibraryStore) -> None:
        playable_id = await store.insert_playable(NewPlayable(title="Keep", source_url="/k.mp3"))
        with pytest.raises(ReferentialIntegrityError):
            await store.update_playable(playable_id, title="Changed", album_id=77)
        row = await store.get_playable(playable_id)
        assert row is not None and row.title == "Keep"

    async def test_delete_missing_playable(self, store: LibraryStore) -> None:
        with pytest.raises(NotFoundError):
            await store.delete_playable(5)

    async def test_delete_cascades_everything(self, store: LibraryStore, add_song) -> None:
        playable_id = await add_song("Strobe", artist="Deadmau5", tags=("house",))
        await store.like(playable_id)
        playlist_id = await store.create_playlist("Mix")
        await store.add_to_playlist(playlist_id, playable_id)

        await store.delete_playable(playable_id)

        assert await store.get_playable(playable_id) is None
        assert await store.is_liked(playable_id) is False
        assert await store.tags_for(playable_id) == set()
        assert await store.playlist_entries(playlist_id) == []
        assert await store.search("strobe") == []
        # Catalog rows are kept until pruned.
        assert await store.find_artist("Deadmau5") is not None

    async def test_delete_many(self, store: LibraryStore, add_song) -> None:
        a = await add_song("A")
        b = await add_song("B")
        await add_song("C")
        assert await store.delete_playables([a, b, 404]) == 2
        assert await store.count_playables() == 1

    async def test_get_playables_keeps_requested_order(self, store: LibraryStore, add_song) -> None:
        a = await add_song("A")
        b = await add_song("B")
        c = await add_song("C")
        rows = await store.get_playables([c, 999, a, b])
        assert [r.id for r in rows] == [c, a, b]

    async def test_find_by_source(self, store: LibraryStore, add_song) -> None:
        await add_song("A", artist="X")
        await add_song("B", artist="X")
        rows = await store.find_playables_by_source(["/music/X/B.mp3", "/music/nope.mp3"])
        assert [r.title for r in rows] == ["B"]

    async def test_artwork(self, store: LibraryStore) -> None:
        playable_id = await store.insert_playable(
            NewPlayable(title="Art", source_url="/art.mp3", artwork=b"\x89PNG...")
        )
        row = await store.get_playable(playable_id)
        assert row is not None and row.has_artwork is True
        assert await store.get_artwork(playable_id) == b"\x89PNG..."
        with pytest.raises(NotFoundError):
            await store.get_artwork(999)


class TestListing:
    async def test_list_playables_by_title(self, store: LibraryStore, add_song) -> None:
        for title in ("banana", "Apple", "cherry"):
            await add_song(title)
        rows = await store.list_playables(order_by="title")
        assert [r.title for r in rows] == ["Apple", "banana", "cherry"]

    async def test_list_playables_by_artist_puts_unknown_last(
        self, store: LibraryStore, add_song
    ) -> None:
        await add_song("No Artist")
        await add_song("Song", artist="Zed")
        await add_song("Other", artist="abba")
        rows = await store.list_playables(order_by="artist")
        assert [r.title for r in rows] == ["Other", "Song", "No Artist"]

    async def test_paging(self, store: LibraryStore, add_song) -> None:
        for i in range(5):
            await add_song(f"Track {i}")
        page = await store.list_playables(order_by="title", limit=2, offset=2)
        assert [r.title for r in page] == ["Track 2", "Track 3"]
        with pytest.raises(ValueError):
            await store.list_playables(limit=-1)

    async def test_unknown_order_key_falls_back_to_title(
        self, store: LibraryStore, add_song
    ) -> None:
        await add_song("b")
        await add_song("a")
        rows = await store.list_playables(order_by="no-such-key")
        assert [r.title for r in rows] == ["a", "b"]

    async def test_every_order_key_lists_all_rows(self, store: LibraryStore, add_song) -> None:
        await add_song("One", artist="B", album="X", genre="Rock", duration=200)
        await add_song("Two", artist="A", genre="Jazz", duration=100)
        await add_song("Three")
        for key in get_args(PlayablesOrderBy):
            rows = await store.list_playables(order_by=key)
            assert sorted(r.title for r in rows) == ["One", "Three", "Two"], key

        by_duration = await store.list_playables(order_by="duration")
        assert [r.title for r in by_duration] == ["Three", "Two", "One"]

    async def test_list_by_album_and_genre(self, store: LibraryStore, add_song) -> None:
        await add_song("One", artist="A", album="First", genre="Rock")
        await add_song("Two", artist="A", album="Second", genre="Jazz")
        album = await store.find_album("First", (await store.find_artist("A")).id)
        assert album is not None
        assert [r.title for r in await store.list_playables_by_album(album.id)] == ["One"]

        genres = {g.name: g.id for g in await store.list_genres()}
        assert [r.title for r in await store.list_playables_by_genre(genres["Jazz"])] == ["Two"]

        artist = await store.find_artist("a")
        assert artist is not None
        titles = [r.title for r in await store.list_playables_by_artist(artist.id)]
        assert titles == ["One", "Two"]


class TestPrune:
    async def test_prune_orphans(self, store: LibraryStore, add_song) -> None:
        keep = await add_song("Keep", artist="Kept", album="Kept Album", genre="Kept Genre")
        gone = await add_song(
            "Gone", artist="Lost", album="Lost Album", genre="Lost Genre", tags=("stale",)
        )
        await store.create_tag("unused")
        await store.delete_playable(gone)

        result = await store.prune_orphans()

        assert (result.artists, result.albums, result.genres, result.tags) == (1, 1, 1, 2)
        assert result.total == 5
        assert await store.find_artist("Lost") is None
        assert await store.find_artist("Kept") is not None
        assert await store.get_playable(keep) is not None

    async def test_prune_keeps_tags_used_by_smart_playlists(self, store: LibraryStore) -> None:
        tag_id = await store.create_tag("rule-only")
        await store.create_smart_playlist("Smart", [tag_id])
        result = await store.prune_orphans()
        assert result.tags == 0
        assert await store.get_tag(tag_id) is not None
