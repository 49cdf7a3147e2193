"""
Library storage facade.

Goals:
- One async entry point for the catalog, tags, likes, playlists and search.
- SQLite + aiosqlite, async/await friendly.
- Every public call is one unit of work: writes run in a single
  `BEGIN IMMEDIATE` transaction and either fully apply or leave no trace.

Note:
- Models/DTOs and normalization helpers live in `cadence.core.db.models`
- Schema/migrations live in `cadence.core.db.schema`
- Query functions live in `cadence.core.db.queries_*` modules and
  `cadence.core.db.search_index`
- `LibraryStore` is the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, TypeVar

import aiosqlite

from cadence.config import StorageConfig, get_storage_config
from cadence.core import (
    DuplicateEntryError,
    ReferentialIntegrityError,
    StorageError,
    StorageUnavailableError,
)
from cadence.core.db import queries_catalog, queries_playlists, queries_tags, search_index
from cadence.core.db.models import (
    AlbumId,
    AlbumRow,
    ArtistId,
    ArtistRow,
    FolderDeletePolicy,
    GenreId,
    GenreRow,
    ImportRecord,
    LibraryStats,
    MatchMode,
    NewPlayable,
    PlayableId,
    PlayableRow,
    PlaylistId,
    PlaylistKind,
    PlaylistRow,
    PruneResult,
    TagId,
    TagRow,
    normalize_text,
)
from cadence.core.db.ordering import PlayablesOrderBy
from cadence.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_memory_path(db_path: str) -> bool:
    return db_path == ":memory:" or "mode=memory" in db_path


def _validate_paging(limit: int, offset: int) -> tuple[int, int]:
    limit, offset = int(limit), int(offset)
    if limit < 0 or offset < 0:
        raise ValueError(f"limit and offset must be >= 0 (got {limit}, {offset})")
    return limit, offset


def translate_error(exc: aiosqlite.Error) -> StorageError:
    """Map a driver error onto the store's exception hierarchy."""
    message = str(exc)
    if isinstance(exc, aiosqlite.IntegrityError):
        if "UNIQUE" in message.upper():
            return DuplicateEntryError(message)
        return ReferentialIntegrityError(message)
    if isinstance(exc, aiosqlite.OperationalError):
        return StorageUnavailableError(message)
    return StorageError(message)


async def _rollback(conn: aiosqlite.Connection) -> None:
    if conn.in_transaction:
        await conn.execute("ROLLBACK;")


async def _pragma(conn: aiosqlite.Connection, statement: str) -> None:
    # Some pragmas (journal_mode, busy_timeout) return a row; an unread
    # statement stays active and keeps its lock on the database file.
    async with conn.execute(statement) as cursor:
        await cursor.fetchall()


async def _rollback_to_completion(conn: aiosqlite.Connection) -> None:
    """
    Roll back and wait for the ROLLBACK to finish even if the caller is
    cancelled meanwhile, so the write lock is never released mid-transaction.
    A cancellation received while waiting is re-raised afterwards.
    """
    task = asyncio.ensure_future(_rollback(conn))
    pending: asyncio.CancelledError | None = None
    while True:
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError as exc:
            if task.cancelled():
                raise
            pending = exc
            continue
        break
    if pending is not None:
        raise pending


class LibraryStore:
    """
    Async storage facade for the music library.

    Usage:
        store = LibraryStore("cadence.db")
        await store.open()
        await store.ensure_schema()
        ... queries ...
        await store.close()

    Notes:
    - This class is designed to be constructed explicitly and injected into
      other components; there is no module-level instance.
    - Writes go through one connection and are serialized by an asyncio.Lock.
    - File databases get a second read-only connection; each read runs in
      its own snapshot, so readers never observe a half-applied write.
      In-memory databases cannot be shared between connections, so reads
      use the writer connection behind the write lock.
    """

    def __init__(self, db_path: str | Path, config: StorageConfig | None = None) -> None:
        self._db_path = str(db_path)
        self._config = config if config is not None else get_storage_config()
        self._conn: aiosqlite.Connection | None = None
        self._reader: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._read_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def _connect(self, *, read_only: bool) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        try:
            await _pragma(conn, "PRAGMA foreign_keys = ON;")
            for pragma in self._config.pragmas():
                await _pragma(conn, pragma)
            if read_only:
                await _pragma(conn, "PRAGMA query_only = ON;")
        except BaseException:
            await conn.close()
            raise
        return conn

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await self._connect(read_only=False)
            if not _is_memory_path(self._db_path):
                await _pragma(
                    self._conn, f"PRAGMA journal_mode = {self._config.journal_mode.upper()};"
                )
                if self._config.reader_connection:
                    self._reader = await self._connect(read_only=True)
        except aiosqlite.Error as e:
            await self.close()
            raise StorageUnavailableError(f"Cannot open library {self._db_path!r}: {e}") from e
        logger.info(
            "Opened library %s (reader connection: %s)", self._db_path, self._reader is not None
        )

    async def close(self) -> None:
        reader, self._reader = self._reader, None
        conn, self._conn = self._conn, None
        if reader is not None:
            await reader.close()
        if conn is not None:
            await conn.close()
            logger.debug("Closed library %s", self._db_path)

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageUnavailableError(
                "LibraryStore is not open. Call await store.open() first."
            )
        return self._conn

    async def ensure_schema(self) -> None:
        """Create or migrate schema to current version."""
        conn = self._require_conn()
        async with self._write_lock:
            try:
                await ensure_schema_sql(conn)
            except aiosqlite.Error as e:
                raise translate_error(e) from e

    # ===========================================================================
    # Units of work
    # ===========================================================================

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        One write transaction.

        Any exception (cancellation included) rolls the transaction back.
        Driver errors are translated into StorageError subclasses.
        """
        conn = self._require_conn()
        async with self._write_lock:
            try:
                await conn.execute("BEGIN IMMEDIATE;")
            except aiosqlite.Error as e:
                raise translate_error(e) from e
            try:
                yield conn
            except BaseException as exc:
                await _rollback_to_completion(conn)
                if isinstance(exc, aiosqlite.Error):
                    raise translate_error(exc) from exc
                raise
            try:
                await conn.execute("COMMIT;")
            except aiosqlite.Error as e:
                await _rollback_to_completion(conn)
                raise translate_error(e) from e

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        """One consistent read snapshot."""
        conn = self._require_conn()
        if self._reader is None:
            async with self._write_lock:
                try:
                    yield conn
                except aiosqlite.Error as e:
                    raise translate_error(e) from e
            return

        reader = self._reader
        async with self._read_lock:
            try:
                await reader.execute("BEGIN;")
            except aiosqlite.Error as e:
                raise translate_error(e) from e
            try:
                yield reader
            except aiosqlite.Error as e:
                raise translate_error(e) from e
            finally:
                await _rollback_to_completion(reader)

    async def _run_read(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self._read() as conn:
            return await fn(conn, *args, **kwargs)

    async def _run_write(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self._write() as conn:
            return await fn(conn, *args, **kwargs)

    # ===========================================================================
    # Catalog: artists / albums / genres
    # ===========================================================================

    async def upsert_artist(self, name: str) -> ArtistId:
        return await self._run_write(queries_catalog.upsert_artist, name)

    async def rename_artist(self, artist_id: int, name: str) -> None:
        await self._run_write(queries_catalog.rename_artist, artist_id, name)

    async def get_artist(self, artist_id: int) -> ArtistRow | None:
        return await self._run_read(queries_catalog.get_artist_by_id, artist_id)

    async def find_artist(self, name: str) -> ArtistRow | None:
        return await self._run_read(queries_catalog.find_artist_by_name, name)

    async def list_artists(self, *, limit: int = 500, offset: int = 0) -> list[ArtistRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(queries_catalog.list_artists, limit=limit, offset=offset)

    async def upsert_album(self, name: str, artist_id: int | None = None) -> AlbumId:
        return await self._run_write(queries_catalog.upsert_album, name, artist_id)

    async def rename_album(self, album_id: int, name: str) -> None:
        await self._run_write(queries_catalog.rename_album, album_id, name)

    async def get_album(self, album_id: int) -> AlbumRow | None:
        return await self._run_read(queries_catalog.get_album_by_id, album_id)

    async def find_album(self, name: str, artist_id: int | None = None) -> AlbumRow | None:
        return await self._run_read(queries_catalog.find_album, name, artist_id)

    async def list_albums(
        self, *, artist_id: int | None = None, limit: int = 500, offset: int = 0
    ) -> list[AlbumRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(
            queries_catalog.list_albums, artist_id=artist_id, limit=limit, offset=offset
        )

    async def upsert_genre(self, name: str) -> GenreId:
        return await self._run_write(queries_catalog.upsert_genre, name)

    async def rename_genre(self, genre_id: int, name: str) -> None:
        await self._run_write(queries_catalog.rename_genre, genre_id, name)

    async def get_genre(self, genre_id: int) -> GenreRow | None:
        return await self._run_read(queries_catalog.get_genre_by_id, genre_id)

    async def list_genres(self, *, limit: int = 500, offset: int = 0) -> list[GenreRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(queries_catalog.list_genres, limit=limit, offset=offset)

    # ===========================================================================
    # Catalog: playables
    # ===========================================================================

    async def insert_playable(self, playable: NewPlayable) -> PlayableId:
        return await self._run_write(queries_catalog.insert_playable, playable)

    async def update_playable(self, playable_id: int, **fields: Any) -> None:
        """Update whitelisted playable fields, e.g. `update_playable(1, title="New")`."""
        await self._run_write(queries_catalog.update_playable, playable_id, fields)

    @staticmethod
    async def _delete_one(conn: aiosqlite.Connection, playable_id: int) -> None:
        # Close playlist gaps first; the FK cascade would leave holes.
        await queries_playlists.detach_playable(conn, playable_id)
        await queries_catalog.delete_playable(conn, playable_id)

    async def delete_playable(self, playable_id: int) -> None:
        await self._run_write(self._delete_one, playable_id)

    async def delete_playables(self, playable_ids: Iterable[int]) -> int:
        """Delete several playables in one transaction. Unknown ids are skipped."""
        wanted = list(dict.fromkeys(int(i) for i in playable_ids))
        async with self._write() as conn:
            existing = await queries_catalog.get_playables_by_ids(conn, wanted)
            for row in existing:
                await self._delete_one(conn, row.id)
        logger.info("Deleted %d playables", len(existing))
        return len(existing)

    async def get_playable(self, playable_id: int) -> PlayableRow | None:
        return await self._run_read(queries_catalog.get_playable_by_id, playable_id)

    async def get_playables(self, playable_ids: Iterable[int]) -> list[PlayableRow]:
        return await self._run_read(queries_catalog.get_playables_by_ids, list(playable_ids))

    async def find_playables_by_source(self, source_urls: Iterable[str]) -> list[PlayableRow]:
        return await self._run_read(queries_catalog.find_playables_by_source, list(source_urls))

    async def get_artwork(self, playable_id: int) -> bytes | None:
        return await self._run_read(queries_catalog.get_artwork, playable_id)

    async def count_playables(self) -> int:
        return await self._run_read(queries_catalog.count_rows, "playables")

    async def list_playables(
        self,
        *,
        order_by: PlayablesOrderBy = "title",
        limit: int = 100,
        offset: int = 0,
    ) -> list[PlayableRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(
            queries_catalog.list_playables, limit=limit, offset=offset, order_by=order_by
        )

    async def list_playables_by_artist(
        self,
        artist_id: int,
        *,
        order_by: PlayablesOrderBy = "album",
        limit: int = 500,
        offset: int = 0,
    ) -> list[PlayableRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(
            queries_catalog.list_playables,
            limit=limit,
            offset=offset,
            order_by=order_by,
            artist_id=artist_id,
        )

    async def list_playables_by_album(
        self,
        album_id: int,
        *,
        order_by: PlayablesOrderBy = "title",
        limit: int = 500,
        offset: int = 0,
    ) -> list[PlayableRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(
            queries_catalog.list_playables,
            limit=limit,
            offset=offset,
            order_by=order_by,
            album_id=album_id,
        )

    async def list_playables_by_genre(
        self,
        genre_id: int,
        *,
        order_by: PlayablesOrderBy = "title",
        limit: int = 500,
        offset: int = 0,
    ) -> list[PlayableRow]:
        limit, offset = _validate_paging(limit, offset)
        return await self._run_read(
            queries_catalog.list_playables,
            limit=limit,
            offset=offset,
            order_by=order_by,
            genre_id=genre_id,
        )

    # ===========================================================================
    # Import (multi-step, one transaction each)
    # ===========================================================================

    @staticmethod
    async def _import_one(conn: aiosqlite.Connection, record: ImportRecord) -> PlayableId:
        artist_name = normalize_text(record.artist)
        album_name = normalize_text(record.album)
        genre_name = normalize_text(record.genre)

        artist_id = await queries_catalog.upsert_artist(conn, artist_name) if artist_name else None
        album_id = (
            await queries_catalog.upsert_album(conn, album_name, artist_id) if album_name else None
        )
        genre_id = await queries_catalog.upsert_genre(conn, genre_name) if genre_name else None

        playable_id = await queries_catalog.insert_playable(
            conn,
            NewPlayable(
                title=record.title,
                source_url=record.source_url,
                media_kind=record.media_kind,
                artist_id=artist_id,
                album_id=album_id,
                genre_id=genre_id,
                duration=record.duration,
                artwork=record.artwork,
            ),
        )
        for tag in record.tags:
            tag_name = normalize_text(tag)
            if tag_name:
                tag_id = await queries_tags.upsert_tag(conn, tag_name)
                await queries_tags.add_tag(conn, playable_id, tag_id)
        return playable_id

    async def import_playable(self, record: ImportRecord) -> PlayableId:
        """
        Add one playable by names: upsert artist/album/genre, insert the
        playable, create and link its tags. All or nothing.
        """
        return await self._run_write(self._import_one, record)

    async def import_playables(
        self, records: Iterable[ImportRecord], *, skip_duplicates: bool = True
    ) -> list[PlayableId]:
        """
        Bulk import in one transaction. Returns ids of newly inserted playables.

        With `skip_duplicates`, records whose source is already in the library
        are skipped; otherwise the first duplicate aborts the whole batch.
        """
        added: list[PlayableId] = []
        skipped = 0
        async with self._write() as conn:
            for record in records:
                if skip_duplicates:
                    found = await queries_catalog.find_playables_by_source(
                        conn, [record.source_url]
                    )
                    if found:
                        skipped += 1
                        continue
                added.append(await self._import_one(conn, record))
        logger.info("Imported %d playables (%d duplicates skipped)", len(added), skipped)
        return added

    async def import_to_playlist(
        self, playlist_id: int, records: Iterable[ImportRecord]
    ) -> list[PlayableId]:
        """
        Import records and append them to a static playlist in order.

        Records whose source is already in the library reuse the existing
        playable. Returns the ids appended to the playlist.
        """
        appended: list[PlayableId] = []
        async with self._write() as conn:
            await queries_playlists.require_static(conn, playlist_id, "import playables")
            members = set(await queries_playlists.playlist_entry_ids(conn, playlist_id))
            for record in records:
                found = await queries_catalog.find_playables_by_source(conn, [record.source_url])
                playable_id = found[0].id if found else await self._import_one(conn, record)
                if playable_id in members:
                    continue
                await queries_playlists.add_to_playlist(conn, playlist_id, playable_id)
                members.add(playable_id)
                appended.append(playable_id)
        logger.info("Imported %d playables into playlist %d", len(appended), playlist_id)
        return appended

    # ===========================================================================
    # Tags
    # ===========================================================================

    async def create_tag(self, name: str) -> TagId:
        """Create a tag, or return the existing id for the same name."""
        return await self._run_write(queries_tags.upsert_tag, name)

    async def rename_tag(self, tag_id: int, name: str) -> None:
        await self._run_write(queries_tags.rename_tag, tag_id, name)

    async def delete_tag(self, tag_id: int) -> None:
        await self._run_write(queries_tags.delete_tag, tag_id)

    async def get_tag(self, tag_id: int) -> TagRow | None:
        return await self._run_read(queries_tags.get_tag_by_id, tag_id)

    async def find_tag(self, name: str) -> TagRow | None:
        return await self._run_read(queries_tags.find_tag_by_name, name)

    async def list_tags(self) -> list[TagRow]:
        return await self._run_read(queries_tags.list_tags)

    async def add_tag(self, playable_id: int, tag_id: int) -> None:
        await self._run_write(queries_tags.add_tag, playable_id, tag_id)

    async def remove_tag(self, playable_id: int, tag_id: int) -> None:
        await self._run_write(queries_tags.remove_tag, playable_id, tag_id)

    async def tags_for(self, playable_id: int) -> set[TagId]:
        return await self._run_read(queries_tags.tags_for, playable_id)

    async def playables_with_all_tags(self, tag_ids: Iterable[int]) -> set[PlayableId]:
        return await self._run_read(queries_tags.playables_with_all_tags, list(tag_ids))

    async def playables_with_any_tags(self, tag_ids: Iterable[int]) -> set[PlayableId]:
        return await self._run_read(queries_tags.playables_with_any_tags, list(tag_ids))

    async def tag_playables(
        self, tag_id: int, *, order_by: PlayablesOrderBy = "title"
    ) -> list[PlayableRow]:
        return await self._run_read(queries_tags.tag_playables, tag_id, order_by=order_by)

    # ===========================================================================
    # Likes
    # ===========================================================================

    async def like(self, playable_id: int) -> None:
        await self._run_write(queries_tags.like, playable_id)

    async def unlike(self, playable_id: int) -> None:
        await self._run_write(queries_tags.unlike, playable_id)

    async def is_liked(self, playable_id: int) -> bool:
        return await self._run_read(queries_tags.is_liked, playable_id)

    async def liked_playables(self, *, order_by: PlayablesOrderBy = "title") -> list[PlayableRow]:
        return await self._run_read(queries_tags.liked_playables, order_by=order_by)

    # ===========================================================================
    # Search
    # ===========================================================================

    async def search(self, query: str, *, limit: int | None = None) -> list[PlayableId]:
        """Ranked playable ids for `query`; `limit` defaults to the configured cap."""
        if limit is None:
            limit = self._config.search_limit
        return await self._run_read(search_index.search, query, limit=limit)

    async def search_playables(self, query: str, *, limit: int | None = None) -> list[PlayableRow]:
        if limit is None:
            limit = self._config.search_limit
        async with self._read() as conn:
            ids = await search_index.search(conn, query, limit=limit)
            return await queries_catalog.get_playables_by_ids(conn, ids)

    async def rebuild_search_index(self) -> int:
        return await self._run_write(search_index.rebuild)

    # ===========================================================================
    # Playlists: tree
    # ===========================================================================

    async def create_playlist(
        self,
        name: str,
        *,
        kind: PlaylistKind = PlaylistKind.STATIC,
        parent_id: int | None = None,
    ) -> PlaylistId:
        return await self._run_write(
            queries_playlists.create_playlist, name, kind=kind, parent_id=parent_id
        )

    async def create_folder(self, name: str, *, parent_id: int | None = None) -> PlaylistId:
        return await self.create_playlist(name, kind=PlaylistKind.FOLDER, parent_id=parent_id)

    async def create_smart_playlist(
        self,
        name: str,
        tag_ids: Iterable[int],
        *,
        parent_id: int | None = None,
        match_mode: MatchMode = MatchMode.ALL,
    ) -> PlaylistId:
        """Create a dynamic playlist and its tag rule in one transaction."""
        async with self._write() as conn:
            playlist_id = await queries_playlists.create_playlist(
                conn, name, kind=PlaylistKind.DYNAMIC, parent_id=parent_id, match_mode=match_mode
            )
            await queries_playlists.set_smart_tags(conn, playlist_id, tag_ids)
        return playlist_id

    async def get_playlist(self, playlist_id: int) -> PlaylistRow | None:
        return await self._run_read(queries_playlists.get_playlist_by_id, playlist_id)

    async def find_playlist(self, name: str) -> PlaylistRow | None:
        return await self._run_read(queries_playlists.find_playlist_by_name, name)

    async def list_playlists(self, parent_id: int | None = None) -> list[PlaylistRow]:
        """Direct children of `parent_id` (root nodes when None), in display order."""
        return await self._run_read(queries_playlists.list_children, parent_id)

    async def list_all_playlists(self) -> list[PlaylistRow]:
        return await self._run_read(queries_playlists.list_playlists)

    async def rename_playlist(self, playlist_id: int, name: str) -> None:
        await self._run_write(queries_playlists.rename_playlist, playlist_id, name)

    async def move_playlist(
        self, playlist_id: int, parent_id: int | None, *, position: int | None = None
    ) -> None:
        await self._run_write(
            queries_playlists.move_playlist, playlist_id, parent_id, position=position
        )

    async def delete_playlist(
        self, playlist_id: int, *, policy: FolderDeletePolicy | None = None
    ) -> None:
        await self._run_write(queries_playlists.delete_playlist, playlist_id, policy=policy)

    # ===========================================================================
    # Playlists: membership
    # ===========================================================================

    async def add_to_playlist(
        self, playlist_id: int, playable_id: int, *, position: int | None = None
    ) -> int:
        return await self._run_write(
            queries_playlists.add_to_playlist, playlist_id, playable_id, position=position
        )

    async def add_many_to_playlist(self, playlist_id: int, playable_ids: Iterable[int]) -> int:
        return await self._run_write(
            queries_playlists.add_many_to_playlist, playlist_id, list(playable_ids)
        )

    async def remove_from_playlist(self, playlist_id: int, playable_id: int) -> None:
        await self._run_write(queries_playlists.remove_from_playlist, playlist_id, playable_id)

    async def remove_many_from_playlist(
        self, playlist_id: int, playable_ids: Iterable[int]
    ) -> int:
        return await self._run_write(
            queries_playlists.remove_many_from_playlist, playlist_id, list(playable_ids)
        )

    async def clear_playlist(self, playlist_id: int) -> None:
        await self._run_write(queries_playlists.clear_playlist, playlist_id)

    async def reorder(self, playlist_id: int, playable_id: int, new_position: int) -> None:
        await self._run_write(queries_playlists.reorder, playlist_id, playable_id, new_position)

    async def playlist_entries(self, playlist_id: int) -> list[PlayableId]:
        return await self._run_read(queries_playlists.playlist_entry_ids, playlist_id)

    async def set_smart_tags(
        self,
        playlist_id: int,
        tag_ids: Iterable[int],
        *,
        match_mode: MatchMode | None = None,
    ) -> None:
        await self._run_write(
            queries_playlists.set_smart_tags, playlist_id, list(tag_ids), match_mode=match_mode
        )

    async def smart_tags(self, playlist_id: int) -> set[TagId]:
        return await self._run_read(queries_playlists.smart_tags, playlist_id)

    async def resolve(self, playlist_id: int) -> list[PlayableId]:
        return await self._run_read(queries_playlists.resolve, playlist_id)

    async def resolve_playables(self, playlist_id: int) -> list[PlayableRow]:
        async with self._read() as conn:
            ids = await queries_playlists.resolve(conn, playlist_id)
            return await queries_catalog.get_playables_by_ids(conn, ids)

    # ===========================================================================
    # Maintenance
    # ===========================================================================

    async def prune_orphans(self) -> PruneResult:
        """
        Remove artists, albums, genres and tags that nothing references.

        Catalog rows are never deleted implicitly; this is the explicit
        maintenance step.
        """
        async with self._write() as conn:
            artists, albums, genres = await queries_catalog.prune_catalog(conn)
            tags = await queries_tags.prune_unused_tags(conn)
        result = PruneResult(artists=artists, albums=albums, genres=genres, tags=tags)
        logger.info("Pruned %d orphaned rows: %s", result.total, result)
        return result

    async def stats(self) -> LibraryStats:
        async with self._read() as conn:
            counts = {
                table: await queries_catalog.count_rows(conn, table)
                for table in (
                    "playables",
                    "artists",
                    "albums",
                    "genres",
                    "tags",
                    "playlists",
                    "likes",
                )
            }
        return LibraryStats(**counts)
