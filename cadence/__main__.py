"""
Cadence library maintenance tool - Entry Point

Run with: python -m cadence <command>
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cadence.config import StorageConfig, get_storage_config, load_storage_config
from cadence.core import StorageError
from cadence.core.library_store import LibraryStore
from cadence.core.scanner import ScanConfig, scan_music_folder

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cadence",
        description="Cadence - music library store maintenance",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Library database path (default: from storage.toml)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a storage.toml file",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or migrate the library schema")
    sub.add_parser("stats", help="Print row counts")

    search = sub.add_parser("search", help="Search playables by title, artist or album")
    search.add_argument("query", type=str)
    search.add_argument("-n", "--limit", type=int, default=20)

    imp = sub.add_parser("import", help="Scan a folder and import its audio files")
    imp.add_argument("folder", type=Path)
    imp.add_argument(
        "--no-artwork",
        action="store_true",
        help="Do not store embedded artwork",
    )

    sub.add_parser("prune", help="Delete artists, albums, genres and tags nothing references")
    sub.add_parser("reindex", help="Rebuild the search index from the catalog")
    return parser


async def _cmd_stats(store: LibraryStore) -> None:
    stats = await store.stats()
    for name in ("playables", "artists", "albums", "genres", "tags", "playlists", "likes"):
        print(f"{name:>10}: {getattr(stats, name)}")


async def _cmd_search(store: LibraryStore, query: str, limit: int) -> None:
    rows = await store.search_playables(query, limit=limit)
    if not rows:
        print("No matches.")
        return
    for row in rows:
        artist = row.artist_name or "Unknown Artist"
        album = f" [{row.album_name}]" if row.album_name else ""
        print(f"{row.id:>6}  {row.title} - {artist}{album}")


async def _cmd_import(store: LibraryStore, folder: Path, *, read_artwork: bool) -> None:
    result = await scan_music_folder(ScanConfig(root=folder, read_artwork=read_artwork))
    for issue in result.issues:
        logger.warning("Skipped %s: %s", issue.path, issue.message)
    added = await store.import_playables(result.records, skip_duplicates=True)
    print(
        f"Imported {len(added)} of {len(result.records)} files "
        f"({len(result.issues)} unreadable)."
    )


async def run(args: argparse.Namespace, config: StorageConfig) -> None:
    store = LibraryStore(args.db or config.db_path, config=config)
    await store.open()
    try:
        await store.ensure_schema()
        if args.command == "init":
            print(f"Library ready at {store.db_path}")
        elif args.command == "stats":
            await _cmd_stats(store)
        elif args.command == "search":
            await _cmd_search(store, args.query, args.limit)
        elif args.command == "import":
            await _cmd_import(store, args.folder, read_artwork=not args.no_artwork)
        elif args.command == "prune":
            result = await store.prune_orphans()
            print(
                f"Removed {result.artists} artists, {result.albums} albums, "
                f"{result.genres} genres, {result.tags} tags."
            )
        elif args.command == "reindex":
            count = await store.rebuild_search_index()
            print(f"Indexed {count} playables.")
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    config = load_storage_config(args.config) if args.config else get_storage_config()

    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (StorageError, OSError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
