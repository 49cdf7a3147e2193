"""
Tests for the LibraryStore facade.

These tests verify:
- lifecycle and error translation
- all-or-nothing writes (including cancellation)
- multi-step imports
- the file-backed layout with a separate reader connection
- the end-to-end tag/like/smart playlist/search scenario
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import pytest

from cadence.config import StorageConfig
from cadence.core import (
    DuplicateEntryError,
    KindMismatchError,
    ReferentialIntegrityError,
    StorageUnavailableError,
    library_store,
)
from cadence.core.db import queries_catalog
from cadence.core.db.models import ImportRecord, NewPlayable
from cadence.core.library_store import LibraryStore, translate_error


def record(title: str, artist: str | None = None, **kwargs) -> ImportRecord:
    return ImportRecord(title=title, source_url=f"/music/{title}.flac", artist=artist, **kwargs)


class TestLifecycle:
    async def test_open_close(self) -> None:
        store = LibraryStore(":memory:", config=StorageConfig())
        assert not store.is_open

        await store.open()
        assert store.is_open

        await store.close()
        assert not store.is_open

    async def test_closed_store_is_unavailable(self) -> None:
        store = LibraryStore(":memory:", config=StorageConfig())
        with pytest.raises(StorageUnavailableError):
            await store.count_playables()
        with pytest.raises(StorageUnavailableError):
            await store.upsert_artist("Nobody")

    async def test_unopenable_path(self, tmp_path: Path) -> None:
        store = LibraryStore(tmp_path / "missing" / "library.db", config=StorageConfig())
        with pytest.raises(StorageUnavailableError):
            await store.open()
        assert not store.is_open

    async def test_ensure_schema_is_idempotent(self, store: LibraryStore) -> None:
        await store.ensure_schema()
        assert await store.count_playables() == 0

    async def test_newer_schema_is_refused(self, store: LibraryStore) -> None:
        async with store._write() as conn:
            await conn.execute("PRAGMA user_version = 99;")
        with pytest.raises(RuntimeError):
            await store.ensure_schema()

    async def test_schema_tables(self, store: LibraryStore) -> None:
        async with store._read() as conn:
            cursor = await conn.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'search\\_index\\_%' ESCAPE '\\';"
            )
            names = {row[0] for row in await cursor.fetchall()}
        assert names == {
            "artists",
            "albums",
            "genres",
            "playables",
            "likes",
            "tags",
            "playable_tags",
            "playlists",
            "smart_playlist_tags",
            "playlist_playables",
            "search_index",
        }


class TestErrorTranslation:
    def test_translate_error(self) -> None:
        unique = translate_error(aiosqlite.IntegrityError("UNIQUE constraint failed: tags.name"))
        assert isinstance(unique, DuplicateEntryError)

        fk = translate_error(aiosqlite.IntegrityError("FOREIGN KEY constraint failed"))
        assert isinstance(fk, ReferentialIntegrityError)
        assert not isinstance(fk, DuplicateEntryError)

        locked = translate_error(aiosqlite.OperationalError("database is locked"))
        assert isinstance(locked, StorageUnavailableError)

    async def test_driver_errors_are_translated(self, store: LibraryStore) -> None:
        with pytest.raises(DuplicateEntryError):
            async with store._write() as conn:
                await conn.execute("INSERT INTO tags (name) VALUES ('x');")
                await conn.execute("INSERT INTO tags (name) VALUES ('X');")
        assert await store.list_tags() == []

        with pytest.raises(ReferentialIntegrityError):
            async with store._write() as conn:
                await conn.execute("INSERT INTO likes (playable_id) VALUES (12345);")


class TestAtomicity:
    async def test_failed_import_leaves_no_trace(self, store: LibraryStore) -> None:
        records = [record("Good", artist="New Artist", tags=("fresh",)), record("  ")]
        with pytest.raises(ValueError):
            await store.import_playables(records, skip_duplicates=False)

        stats = await store.stats()
        assert (stats.playables, stats.artists, stats.tags) == (0, 0, 0)
        assert await store.search("good") == []

    async def test_duplicate_aborts_batch_without_skip(self, store: LibraryStore) -> None:
        with pytest.raises(DuplicateEntryError):
            await store.import_playables([record("A"), record("A")], skip_duplicates=False)
        assert await store.count_playables() == 0

    async def test_cancellation_rolls_back(self, store: LibraryStore) -> None:
        started = asyncio.Event()

        async def slow_write() -> None:
            async with store._write() as conn:
                await queries_catalog.upsert_artist(conn, "Half Done")
                started.set()
                await asyncio.sleep(3600)

        task = asyncio.create_task(slow_write())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await store.find_artist("Half Done") is None
        # The store is still usable afterwards.
        assert await store.upsert_artist("Next") > 0

    async def test_repeated_cancellation_finishes_rollback(
        self, store: LibraryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        rollback = library_store._rollback
        rolling_back = asyncio.Event()

        async def slow_rollback(conn: aiosqlite.Connection) -> None:
            rolling_back.set()
            await asyncio.sleep(0.05)
            await rollback(conn)

        monkeypatch.setattr(library_store, "_rollback", slow_rollback)
        started = asyncio.Event()

        async def slow_write() -> None:
            async with store._write() as conn:
                await queries_catalog.upsert_artist(conn, "Half Done")
                started.set()
                await asyncio.sleep(3600)

        task = asyncio.create_task(slow_write())
        await started.wait()
        task.cancel()
        await rolling_back.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # The lock was held until ROLLBACK completed, so the next write can begin.
        assert not store._require_conn().in_transaction
        assert await store.upsert_artist("Next") > 0
        assert await store.find_artist("Half Done") is None

    async def test_concurrent_writes_are_serialized(self, store: LibraryStore) -> None:
        ids = await asyncio.gather(
            *(store.import_playable(record(f"Song {i}", artist="Same")) for i in range(20))
        )
        assert len(set(ids)) == 20
        stats = await store.stats()
        assert (stats.playables, stats.artists) == (20, 1)


class TestImport:
    async def test_import_playable_upserts_names(self, store: LibraryStore) -> None:
        first = await store.import_playable(
            record("One", artist="Daft Punk", album="Discovery", genre="House", duration=320)
        )
        second = await store.import_playable(
            record("Two", artist="daft punk", album="DISCOVERY", genre="house")
        )
        a = await store.get_playable(first)
        b = await store.get_playable(second)
        assert a is not None and b is not None
        assert a.artist_id == b.artist_id
        assert a.album_id == b.album_id
        assert a.genre_id == b.genre_id
        assert a.duration == 320

    async def test_import_with_tags(self, store: LibraryStore) -> None:
        playable_id = await store.import_playable(record("Tagged", tags=("a", "B", " ")))
        names = {t.name for t in await store.list_tags()}
        assert names == {"a", "B"}
        assert len(await store.tags_for(playable_id)) == 2

    async def test_import_playables_skips_duplicates(self, store: LibraryStore) -> None:
        existing = await store.import_playable(record("Old"))
        added = await store.import_playables([record("Old"), record("New"), record("New")])
        assert len(added) == 1
        assert existing not in added
        assert await store.count_playables() == 2

    async def test_import_to_playlist(self, store: LibraryStore) -> None:
        existing = await store.import_playable(record("Existing"))
        playlist_id = await store.create_playlist("Imported")

        appended = await store.import_to_playlist(
            playlist_id, [record("Fresh"), record("Existing"), record("Fresh")]
        )

        assert len(appended) == 2
        assert appended[1] == existing
        assert await store.playlist_entries(playlist_id) == appended
        assert await store.count_playables() == 2

    async def test_import_to_folder_is_rejected(self, store: LibraryStore) -> None:
        folder_id = await store.create_folder("Folder")
        with pytest.raises(KindMismatchError):
            await store.import_to_playlist(folder_id, [record("Song")])
        assert await store.count_playables() == 0


class TestStats:
    async def test_stats(self, store: LibraryStore, add_song) -> None:
        playable_id = await add_song("Song", artist="A", album="B", genre="C", tags=("t",))
        await store.like(playable_id)
        await store.create_playlist("P")

        stats = await store.stats()

        assert stats.playables == 1
        assert stats.artists == 1
        assert stats.albums == 1
        assert stats.genres == 1
        assert stats.tags == 1
        assert stats.playlists == 1
        assert stats.likes == 1


class TestFileDatabase:
    async def test_reader_connection_sees_committed_writes(self, tmp_path: Path) -> None:
        path = tmp_path / "library.db"
        store = LibraryStore(path, config=StorageConfig())
        await store.open()
        try:
            await store.ensure_schema()
            assert store._reader is not None

            playable_id = await store.import_playable(record("Persisted", artist="Disk"))
            row = await store.get_playable(playable_id)
            assert row is not None and row.artist_name == "Disk"
            assert await store.search("persisted") == [playable_id]
        finally:
            await store.close()

        reopened = LibraryStore(path, config=StorageConfig())
        await reopened.open()
        try:
            await reopened.ensure_schema()
            assert await reopened.count_playables() == 1
        finally:
            await reopened.close()

    async def test_journal_mode_is_wal(self, tmp_path: Path) -> None:
        store = LibraryStore(tmp_path / "library.db", config=StorageConfig())
        await store.open()
        try:
            async with store._read() as conn:
                async with conn.execute("PRAGMA journal_mode;") as cursor:
                    row = await cursor.fetchone()
            assert row[0] == "wal"
        finally:
            await store.close()

    async def test_reads_during_open_write_see_last_commit(self, tmp_path: Path) -> None:
        store = LibraryStore(tmp_path / "library.db", config=StorageConfig())
        await store.open()
        try:
            await store.ensure_schema()
            committed = await store.import_playable(record("Committed"))

            async with store._write() as conn:
                await queries_catalog.insert_playable(
                    conn, NewPlayable(title="Pending", source_url="/music/pending.mp3")
                )
                # Reads neither block on the writer nor see its uncommitted rows.
                assert await asyncio.wait_for(store.count_playables(), 2) == 1
                assert await asyncio.wait_for(store.search("pending"), 2) == []
                assert await asyncio.wait_for(store.search("committed"), 2) == [committed]

            assert await store.count_playables() == 2
            assert len(await store.search("pending")) == 1
        finally:
            await store.close()

    async def test_reader_is_read_only(self, tmp_path: Path) -> None:
        store = LibraryStore(tmp_path / "library.db", config=StorageConfig())
        await store.open()
        try:
            await store.ensure_schema()
            with pytest.raises(StorageUnavailableError):
                async with store._read() as conn:
                    await conn.execute("INSERT INTO tags (name) VALUES ('nope');")
        finally:
            await store.close()

    async def test_without_reader_connection(self, tmp_path: Path) -> None:
        config = StorageConfig(reader_connection=False)
        store = LibraryStore(tmp_path / "library.db", config=config)
        await store.open()
        try:
            await store.ensure_schema()
            assert store._reader is None
            await store.import_playable(record("Solo"))
            assert await store.count_playables() == 1
        finally:
            await store.close()


class TestScenario:
    async def test_strobe(self, store: LibraryStore) -> None:
        strobe = await store.import_playable(record("Strobe", artist="Deadmau5"))
        house = await store.create_tag("house")
        favorite = await store.create_tag("favorite")
        await store.add_tag(strobe, house)
        await store.add_tag(strobe, favorite)
        await store.like(strobe)

        my_house = await store.create_smart_playlist("My House", [house])
        assert [r.title for r in await store.resolve_playables(my_house)] == ["Strobe"]

        await store.remove_tag(strobe, house)
        assert await store.resolve(my_house) == []

        await store.delete_playable(strobe)
        assert await store.is_liked(strobe) is False
        assert await store.search("Strobe") == []
