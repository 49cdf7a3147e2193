"""Tests for text normalization, scoring and search index maintenance."""

from __future__ import annotations

from cadence.core.db.models import NewPlayable
from cadence.core.db.search_index import (
    _Candidate,
    normalize_search_text,
    score_candidate,
    tokenize_query,
)
from cadence.core.library_store import LibraryStore


class TestNormalization:
    def test_folds_case_accents_and_whitespace(self) -> None:
        assert normalize_search_text("  Beyoncé   KNOWLES ") == "beyonce knowles"
        assert normalize_search_text("Sigur Rós") == "sigur ros"
        assert normalize_search_text(None) == ""

    def test_tokenize_dedupes_in_order(self) -> None:
        assert tokenize_query("Strobe strobe DEADMAU5") == ["strobe", "deadmau5"]
        assert tokenize_query("   ") == []

    def test_score_prefers_title_and_word_starts(self) -> None:
        cand = _Candidate(playable_id=1, title="strobe", artist_name="deadmau5", album_name="")
        assert score_candidate(cand, ["strobe"], "strobe") == 3 + 1 + 5
        assert score_candidate(cand, ["mau"], "mau") == 2
        assert score_candidate(cand, ["dead"], "dead") == 2 + 1


class TestSearch:
    async def test_blank_query(self, store: LibraryStore, add_song) -> None:
        await add_song("Strobe")
        assert await store.search("") == []
        assert await store.search("   ") == []

    async def test_matches_title_artist_album(self, store: LibraryStore, add_song) -> None:
        strobe = await add_song("Strobe", artist="Deadmau5", album="For Lack of a Better Name")
        await add_song("Ghosts 'n' Stuff", artist="Deadmau5")
        await add_song("Other", artist="Someone")

        assert await store.search("strobe") == [strobe]
        assert len(await store.search("deadmau5")) == 2
        assert await store.search("better name") == [strobe]
        assert await store.search("strobe someone") == []

    async def test_accent_insensitive(self, store: LibraryStore, add_song) -> None:
        halo = await add_song("Halo", artist="Beyoncé")
        assert await store.search("beyonce") == [halo]
        assert await store.search("BEYONCÉ halo") == [halo]

    async def test_ranking(self, store: LibraryStore, add_song) -> None:
        in_album = await add_song("Intro", artist="X", album="Strobe Remixes")
        exact = await add_song("Strobe", artist="Y")
        in_title = await add_song("Strobe (Club Edit)", artist="Z")

        assert await store.search("strobe") == [exact, in_title, in_album]

    async def test_limit(self, store: LibraryStore, add_song) -> None:
        for i in range(5):
            await add_song(f"Song {i}")
        assert len(await store.search("song", limit=2)) == 2
        rows = await store.search_playables("song 3")
        assert [r.title for r in rows] == ["Song 3"]

    async def test_like_wildcards_are_literal(self, store: LibraryStore, add_song) -> None:
        percent = await add_song("100% Pure")
        await add_song("100 Pure")
        assert await store.search("100%") == [percent]
        assert await store.search("_") == []

    async def test_short_tokens_filter_indexed_matches(
        self, store: LibraryStore, add_song
    ) -> None:
        live = await add_song("Live in Dublin", artist="U2")
        await add_song("Live at Leeds", artist="The Who")
        assert await store.search("live u2") == [live]
        assert await store.search("u2") == [live]
        assert await store.search("zz") == []

    async def test_quotes_in_query(self, store: LibraryStore, add_song) -> None:
        quoted = await add_song('Say "Hello"')
        assert await store.search('say "hel') == [quoted]
        assert await store.search('"nothing"') == []


class TestIndexMaintenance:
    async def test_index_is_trigram_fts_table(self, store: LibraryStore) -> None:
        async with store._read() as conn:
            cursor = await conn.execute(
                "SELECT sql FROM sqlite_master WHERE name = 'search_index';"
            )
            row = await cursor.fetchone()
        assert "fts5" in row[0] and "trigram" in row[0]

    async def test_reindex_keeps_one_entry(self, store: LibraryStore, add_song) -> None:
        playable_id = await add_song("First Take")
        await store.update_playable(playable_id, title="Second Take")
        await store.update_playable(playable_id, title="Third Take")
        async with store._read() as conn:
            cursor = await conn.execute(
                "SELECT rowid, title FROM search_index WHERE search_index MATCH ?;",
                ('"take"',),
            )
            rows = [tuple(r) for r in await cursor.fetchall()]
        assert rows == [(playable_id, "third take")]
    async def test_update_title_reindexes(self, store: LibraryStore, add_song) -> None:
        playable_id = await add_song("Old Title")
        await store.update_playable(playable_id, title="Brand New")
        assert await store.search("old") == []
        assert await store.search("brand") == [playable_id]

    async def test_update_artist_reference_reindexes(self, store: LibraryStore) -> None:
        a = await store.upsert_artist("Alpha")
        b = await store.upsert_artist("Bravo")
        playable_id = await store.insert_playable(
            NewPlayable(title="Song", source_url="/s.mp3", artist_id=a)
        )
        await store.update_playable(playable_id, artist_id=b)
        assert await store.search("alpha") == []
        assert await store.search("bravo") == [playable_id]

    async def test_rename_artist_reindexes_dependents(self, store: LibraryStore, add_song) -> None:
        one = await add_song("One", artist="Old Name")
        two = await add_song("Two", artist="Old Name")
        artist = await store.find_artist("Old Name")
        assert artist is not None

        await store.rename_artist(artist.id, "Fresh Name")

        assert await store.search("old") == []
        assert sorted(await store.search("fresh")) == sorted([one, two])

    async def test_rename_album_reindexes_dependents(self, store: LibraryStore, add_song) -> None:
        song = await add_song("Track", artist="A", album="Draft")
        album = (await store.list_albums())[0]
        await store.rename_album(album.id, "Final Cut")
        assert await store.search("draft") == []
        assert await store.search("final cut") == [song]

    async def test_delete_removes_entry(self, store: LibraryStore, add_song) -> None:
        playable_id = await add_song("Gone Soon")
        await store.delete_playable(playable_id)
        assert await store.search("gone") == []

    async def test_rebuild(self, store: LibraryStore, add_song) -> None:
        first = await add_song("First")
        await add_song("Second")
        async with store._write() as conn:
            await conn.execute("DELETE FROM search_index;")
        assert await store.search("first") == []

        assert await store.rebuild_search_index() == 2
        assert await store.search("first") == [first]
