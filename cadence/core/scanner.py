"""
Folder scanner: reads audio tags with mutagen and produces ImportRecords.

The scanner is the import-time metadata supplier. It never touches the
database; persisting is `LibraryStore.import_playables`' job.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mutagen import File as mutagen_file
from mutagen.flac import FLAC
from mutagen.id3 import ID3
from mutagen.mp4 import MP4

from cadence.core.db.models import ImportRecord, MediaKind

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".flac",
        ".ogg",
        ".wav",
        ".m4a",
        ".aac",
        ".aiff",
    }
)


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Configuration for scanning a music folder."""

    root: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    follow_symlinks: bool = False
    max_concurrency: int = 8
    read_artwork: bool = True


@dataclass(frozen=True, slots=True)
class ScanIssue:
    path: Path
    message: str


@dataclass(frozen=True, slots=True)
class ScanResult:
    records: list[ImportRecord]
    issues: list[ScanIssue]


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames
    - lists of strings
    - plain strings
    - objects with `.text`
    We normalize to a single string (first item if multiple).
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    # Mutagen ID3 frames often have `.text` list
    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    if isinstance(value, bytes):
        return _clean_str(value.decode("utf-8", errors="replace"))

    return _clean_str(str(value))


def _parse_genres(value: Any) -> tuple[str, ...]:
    """
    Split a genre tag on ; / and , (but not &).

      "Rock; Pop" -> ("Rock", "Pop")
      "Drum & Bass" -> ("Drum & Bass",)
    """
    s = _first_text(value)
    if not s:
        return ()

    seen: set[str] = set()
    result: list[str] = []
    for part in re.split(r"\s*[;/,]\s*", s):
        cleaned = part.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return tuple(result)


def _tags_get(tags: dict[str, Any] | None, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        if k in tags:
            return tags.get(k)
    return None


def _extract_artwork(audio: Any, tags: dict[str, Any] | None) -> bytes | None:
    """First embedded picture (front cover preferred for ID3), or None."""
    if isinstance(audio, MP4):
        covers = _tags_get(tags, ("covr",))
        return bytes(covers[0]) if covers else None
    if isinstance(audio, FLAC):
        return bytes(audio.pictures[0].data) if audio.pictures else None

    id3 = audio if isinstance(audio, ID3) else getattr(audio, "tags", None)
    if isinstance(id3, ID3):
        frames = id3.getall("APIC")
        if frames:
            cover = next((f for f in frames if f.type == 3), frames[0])
            return bytes(cover.data)
    return None


def _extract_record(path: Path, *, read_artwork: bool = True) -> ImportRecord:
    """
    Extract an ImportRecord using mutagen.

    Synchronous on purpose; scanning runs it in a thread.
    """
    audio = mutagen_file(path)
    if audio is None:
        raise ValueError("unsupported or unreadable audio file")

    tags: dict[str, Any] | None = None
    if getattr(audio, "tags", None) is not None:
        try:
            tags = dict(audio.tags)
        except (TypeError, ValueError):
            tags = audio.tags  # type: ignore[assignment]

    duration: int | None = None
    length = getattr(getattr(audio, "info", None), "length", None)
    if isinstance(length, (int, float)) and length > 0:
        duration = int(round(length))

    # Keys: ID3=TIT2, Vorbis=title, MP4=©nam
    title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam"))) or path.stem
    # Keys: ID3=TPE1, Vorbis=artist, MP4=©ART
    artist = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))
    # Keys: ID3=TALB, Vorbis=album, MP4=©alb
    album = _first_text(_tags_get(tags, ("TALB", "album", "ALBUM", "©alb")))
    # One genre per playable; extra values of a multi-genre tag are dropped.
    genres = _parse_genres(_tags_get(tags, ("TCON", "genre", "GENRE", "©gen")))

    return ImportRecord(
        title=title,
        source_url=str(path),
        artist=artist,
        album=album,
        genre=genres[0] if genres else None,
        duration=duration,
        media_kind=MediaKind.LOCAL_FILE,
        artwork=_extract_artwork(audio, tags) if read_artwork else None,
    )


async def iter_audio_files(config: ScanConfig) -> AsyncIterator[Path]:
    """
    Asynchronously yields audio file paths under `config.root`.

    The walk runs in a thread; filtering is by extension only.
    """
    root = config.root
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    def _walk() -> list[Path]:
        paths: list[Path] = []
        for p in root.rglob("*"):
            try:
                if not config.follow_symlinks and p.is_symlink():
                    continue
                if not p.is_file():
                    continue
                if p.suffix.lower() not in config.extensions:
                    continue
                paths.append(p)
            except OSError:
                # Unreadable entries are skipped; the scan keeps going.
                continue
        return paths

    paths = await asyncio.to_thread(_walk)
    for p in paths:
        yield p


async def scan_music_folder(config: ScanConfig) -> ScanResult:
    """
    Scan a folder for audio files and build ImportRecords.

    Concurrency:
    - filesystem walk: runs in a thread
    - tag extraction: bounded concurrency using threads via asyncio.to_thread
    """
    semaphore = asyncio.Semaphore(max(1, config.max_concurrency))

    records: list[ImportRecord] = []
    issues: list[ScanIssue] = []

    async def _process(path: Path) -> None:
        async with semaphore:
            try:
                record = await asyncio.to_thread(
                    _extract_record, path, read_artwork=config.read_artwork
                )
            except Exception as e:  # noqa: BLE001 - one bad file must not stop the scan
                msg = f"{type(e).__name__}: {e}"
                issues.append(ScanIssue(path=path, message=msg))
                logger.debug("Scan issue for %s: %s", path, msg)
                return
            records.append(record)

    tasks: list[asyncio.Task[None]] = []
    async for path in iter_audio_files(config):
        tasks.append(asyncio.create_task(_process(path)))

    if tasks:
        await asyncio.gather(*tasks)

    records.sort(key=lambda r: r.source_url.lower())
    logger.info("Scanned %s: %d files, %d issues", config.root, len(records), len(issues))
    return ScanResult(records=records, issues=issues)
