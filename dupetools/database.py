"""
Manages the catalog database.

This module owns the SQLite `tracks` table: scanning library folders, reading
tags with mutagen, keeping the table in sync with the file system, and handing
CatalogEntry projections to the duplicate engine. Metadata extraction runs in a
ProcessPoolExecutor so large libraries index in parallel.

CatalogStore is the interface the engine's blocking stage talks to:
- all_entries(): every row
- candidate_entries(): rows that share a blocking signal with some other row
"""

import concurrent.futures
import logging
import os
import re
import sqlite3
from concurrent.futures import ProcessPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Union

from mutagen import File as MutagenFile
from mutagen import MutagenError
from rich.progress import Progress

from .blocking import artist_album_key, duration_bucket, text_prefix
from .config import config, console
from .models import CandidateQueryError, CatalogEntry, MatchConfig

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_EXTENSIONS = {".flac", ".mp3", ".wav", ".m4a", ".ogg", ".opus", ".aiff"}

TRACK_COLUMNS = (
    "path",
    "mtime",
    "title",
    "artist",
    "album",
    "track_number",
    "duration_seconds",
    "bitrate",
)

CREATE_TRACKS_SQL = """
CREATE TABLE IF NOT EXISTS tracks (
    path TEXT PRIMARY KEY,
    mtime INTEGER NOT NULL,
    title TEXT,
    artist TEXT,
    album TEXT,
    track_number INTEGER,
    duration_seconds INTEGER,
    bitrate INTEGER
)
"""

# Blocking keys computed once per row by the Python functions that
# _register_blocking_functions installs, so the pre-filter keeps exactly the
# rows that in-memory blocking would pair up.
BLOCK_KEYS_SQL = """
CREATE TEMP TABLE block_keys AS
SELECT rowid AS id,
       block_title(title) AS title_key,
       block_artist(artist) AS artist_key,
       block_duration(duration_seconds) AS bucket,
       block_artist_album(artist, album) AS artist_album
FROM tracks
"""

BLOCK_KEY_INDEXES_SQL = (
    "CREATE INDEX temp.block_keys_title ON block_keys(title_key)",
    "CREATE INDEX temp.block_keys_artist ON block_keys(artist_key)",
    "CREATE INDEX temp.block_keys_bucket ON block_keys(bucket)",
    "CREATE INDEX temp.block_keys_artist_album ON block_keys(artist_album)",
)

CANDIDATE_PAIRS_SQL = """
SELECT k1.id AS a, k2.id AS b FROM block_keys k1
JOIN block_keys k2 ON k2.title_key = k1.title_key AND k2.id > k1.id
UNION
SELECT k1.id, k2.id FROM block_keys k1
JOIN block_keys k2 ON k2.artist_key = k1.artist_key AND k2.id > k1.id
UNION
SELECT k1.id, k2.id FROM block_keys k1
JOIN block_keys k2 ON k2.bucket BETWEEN k1.bucket - 1 AND k1.bucket + 1 AND k2.id > k1.id
UNION
SELECT k1.id, k2.id FROM block_keys k1
JOIN block_keys k2 ON k2.artist_album = k1.artist_album AND k2.id > k1.id
"""

CANDIDATE_ENTRIES_SQL = f"""
WITH pairs AS ({CANDIDATE_PAIRS_SQL})
SELECT {", ".join(TRACK_COLUMNS)} FROM tracks
WHERE rowid IN (SELECT a FROM pairs UNION SELECT b FROM pairs)
ORDER BY path
"""

TRACK_NUMBER_RE = re.compile(r"^\s*(\d{1,3})")


################################################################################
# METADATA EXTRACTION
################################################################################


def parse_filename_structure(p: Union[Path, str]) -> Dict[str, Any]:
    """Guess artist/album/title/track number from a path like
    ``Artist/Album/01 - Title.flac`` or ``Artist - Album/02. Title.flac``.
    """
    path = Path(p)
    title = path.stem
    artist = None
    album = None
    track_number = None

    m = re.match(r"^(\d{1,3})[\s_.-]+(.+)$", title)
    if m:
        track_number = int(m.group(1))
        title = m.group(2).strip()

    if " - " in title:
        first, rest = title.split(" - ", 1)
        if len(first) <= 80 and rest.strip():
            artist = first.strip() or None
            title = rest.strip()

    parent_name = path.parent.name if path.parent else ""
    if " - " in parent_name:
        a, b = parent_name.split(" - ", 1)
        artist = artist or a.strip() or None
        album = b.strip() or None
    else:
        if parent_name:
            album = parent_name
        if not artist and len(path.parts) >= 3:
            artist = path.parent.parent.name or None

    return {
        "artist": artist or "",
        "album": album or "",
        "title": title or "",
        "track_number": track_number,
    }


def _first_tag(tags: Any, key: str) -> Optional[str]:
    if not tags:
        return None
    try:
        value = tags.get(key)
    except (KeyError, ValueError):
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return str(value).strip() if value else None


def _parse_track_number(value: Optional[str]) -> Optional[int]:
    # "3/12" and "03" both mean track 3
    if not value:
        return None
    m = TRACK_NUMBER_RE.match(value)
    return int(m.group(1)) if m else None


def gather_metadata(p: Union[Path, str]) -> Optional[tuple]:
    """Read one audio file and return a row in TRACK_COLUMNS order.

    Tags come from mutagen's easy interface; anything missing is filled from
    the file and folder names. Returns None when the file is not readable.
    """
    path = Path(p)
    try:
        mtime = int(path.stat().st_mtime)
    except OSError as e:
        logger.warning(f"Cannot stat {path}: {e}")
        return None

    tags = None
    duration = None
    bitrate = None
    try:
        audio = MutagenFile(str(path), easy=True)
    except (MutagenError, OSError) as e:
        logger.debug(f"mutagen could not read {path}: {e}")
        audio = None
    if audio is not None:
        tags = audio.tags
        info = getattr(audio, "info", None)
        length = getattr(info, "length", None)
        if length:
            duration = int(round(length))
        rate = getattr(info, "bitrate", None)
        if rate:
            bitrate = int(rate) // 1000

    fallback = parse_filename_structure(path)
    title = _first_tag(tags, "title") or fallback["title"]
    artist = _first_tag(tags, "artist") or _first_tag(tags, "albumartist") or fallback["artist"]
    album = _first_tag(tags, "album") or fallback["album"]
    track_number = _parse_track_number(_first_tag(tags, "tracknumber")) or fallback["track_number"]

    return (str(path), mtime, title, artist, album, track_number, duration, bitrate)


################################################################################
# DATABASE MANAGEMENT
################################################################################


def _normalize_path(path_input: Union[str, Path]) -> Path:
    """Expand and resolve a path, rejecting parent-directory traversal."""
    cleaned = str(path_input).strip("'\"")
    if any(part == ".." for part in Path(cleaned).parts):
        raise ValueError(f"Path traversal detected in path: {path_input}")
    return Path(cleaned).expanduser().resolve()


def _ensure_directory_exists(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except OSError as e:
        logger.warning(f"Failed to create directory {path}: {e}")
        return False


@contextmanager
def get_db_connection(
    db_path: Optional[Union[str, Path]] = None
) -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for catalog connections.

    Args:
        db_path: Path to database file, uses config default if None

    Yields:
        sqlite3.Connection: connection with WAL journaling and the tracks table in place
    """
    if db_path is None:
        db_path = config["DB_PATH"]

    normalized_path = _normalize_path(db_path)
    if not _ensure_directory_exists(normalized_path.parent):
        raise OSError(f"Cannot create database directory: {normalized_path.parent}")

    conn = None
    try:
        conn = sqlite3.connect(str(normalized_path))
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = OFF")
        conn.execute(CREATE_TRACKS_SQL)
        yield conn
    except Exception as e:
        if conn:
            conn.rollback()
        logger.error(f"Database connection error: {e}")
        raise
    finally:
        if conn:
            conn.close()


def scan_audio_files(
    library_dir: Path, extensions: Optional[set] = None
) -> Generator[Path, None, None]:
    """
    Walk a directory and yield audio files.

    Raises:
        OSError: If library_dir is missing or not a directory
    """
    if extensions is None:
        extensions = DEFAULT_AUDIO_EXTENSIONS

    if not library_dir.exists():
        raise OSError(f"Library directory does not exist: {library_dir}")
    if not library_dir.is_dir():
        raise OSError(f"Library path is not a directory: {library_dir}")

    for root, _, files in os.walk(library_dir):
        for file in files:
            file_path = Path(root) / file
            if file_path.suffix.lower() in extensions:
                yield file_path


def _safe_get_mtime(file_path: Path) -> Optional[int]:
    try:
        return int(file_path.stat().st_mtime)
    except OSError:
        logger.debug(f"Cannot access file {file_path}")
        return None


def _purge_vanished_files(
    cursor: sqlite3.Cursor, conn: sqlite3.Connection, library_dir: Path
) -> int:
    """Delete rows under ``library_dir`` whose file is gone. Returns the count."""
    cursor.execute("SELECT path FROM tracks WHERE path LIKE ?", (str(library_dir) + "%",))
    vanished = [row[0] for row in cursor.fetchall() if not Path(row[0]).exists()]
    if vanished:
        cursor.executemany("DELETE FROM tracks WHERE path = ?", [(p,) for p in vanished])
        conn.commit()
        logger.info(f"Purged {len(vanished)} vanished files")
    return len(vanished)


def _find_files_to_scan(
    library_dir: Path, cursor: sqlite3.Cursor, batch_size: int = 1000
) -> Generator[List[Path], None, None]:
    """Yield batches of files that are new or whose mtime changed."""
    batch = []
    for file_path in scan_audio_files(library_dir):
        file_mtime = _safe_get_mtime(file_path)
        if file_mtime is None:
            continue
        cursor.execute("SELECT mtime FROM tracks WHERE path = ?", (str(file_path),))
        row = cursor.fetchone()
        if row is None or row[0] != file_mtime:
            batch.append(file_path)
            if len(batch) >= batch_size:
                yield batch
                batch = []
    if batch:
        yield batch


def refresh_library(db_path_str: Union[str, Path], library_dir_str: Union[str, Path]) -> int:
    """
    Sync the catalog with one library folder.

    Vanished files are purged, then new or modified files are read in parallel
    and upserted.

    Returns:
        int: number of rows written

    Raises:
        OSError: If the library directory is missing
        ValueError: If a path is invalid
    """
    db_path = _normalize_path(db_path_str)
    library_dir = _normalize_path(library_dir_str)
    if not library_dir.exists():
        raise OSError(f"Library directory does not exist: {library_dir}")

    console.print(f"[cyan]Using database:[/] {db_path}")
    console.print(f"[cyan]Scanning for audio files in:[/] {library_dir}")

    total_updated = 0
    with get_db_connection(db_path) as conn:
        cur = conn.cursor()
        purged = _purge_vanished_files(cur, conn, library_dir)
        if purged:
            console.print(f"[yellow]Purged {purged} vanished files from this library.[/yellow]")

        for batch in _find_files_to_scan(library_dir, cur):
            rows = []
            with Progress(console=console) as progress:
                task = progress.add_task("[green]Indexing tracks:", total=len(batch))
                with ProcessPoolExecutor(max_workers=os.cpu_count()) as executor:
                    futures = [executor.submit(gather_metadata, p) for p in batch]
                    for future in concurrent.futures.as_completed(futures):
                        try:
                            row = future.result()
                            if row:
                                rows.append(row)
                        except Exception as e:
                            logger.error(f"Error processing file: {e}")
                        finally:
                            progress.update(task, advance=1)
            if rows:
                cur.executemany(
                    f"REPLACE INTO tracks ({', '.join(TRACK_COLUMNS)}) VALUES (?,?,?,?,?,?,?,?)",
                    rows,
                )
                conn.commit()
                total_updated += len(rows)

    if total_updated:
        console.print(f"[green]Updated {total_updated} tracks in the catalog.[/green]")
    else:
        console.print("[green]No new or updated files found.[/green]")
    return total_updated


def _row_to_entry(row: sqlite3.Row) -> CatalogEntry:
    return CatalogEntry(
        key=row["path"],
        title=row["title"] or "",
        artist=row["artist"] or "",
        album=row["album"] or "",
        track_number=row["track_number"],
        duration=row["duration_seconds"],
        bitrate=row["bitrate"],
    )


def _register_blocking_functions(conn: sqlite3.Connection, match_config: MatchConfig) -> None:
    """Expose the in-memory blocking signals to SQL; empty keys become NULL."""

    def title_key(title):
        return text_prefix(title, match_config, "title") or None

    def artist_key(artist):
        return text_prefix(artist, match_config, "artist") or None

    def artist_album(artist, album):
        key = artist_album_key(artist, album, match_config)
        return "\x1f".join(key) if key else None

    conn.create_function("block_title", 1, title_key, deterministic=True)
    conn.create_function("block_artist", 1, artist_key, deterministic=True)
    conn.create_function("block_duration", 1, duration_bucket, deterministic=True)
    conn.create_function("block_artist_album", 2, artist_album, deterministic=True)


class CatalogStore:
    """Read side of the catalog, as consumed by the duplicate engine."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = db_path if db_path is not None else config["DB_PATH"]

    def _query(self, sql: str, params: tuple = ()) -> List[CatalogEntry]:
        with get_db_connection(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            return [_row_to_entry(row) for row in conn.execute(sql, params)]

    def all_entries(self) -> List[CatalogEntry]:
        return self._query(f"SELECT {', '.join(TRACK_COLUMNS)} FROM tracks ORDER BY path")

    def candidate_entries(self, match_config: Optional[MatchConfig] = None) -> List[CatalogEntry]:
        """Rows that in-memory blocking under ``match_config`` pairs with at least one other row."""
        match_config = match_config or MatchConfig()
        try:
            with get_db_connection(self.db_path) as conn:
                _register_blocking_functions(conn, match_config)
                conn.execute(BLOCK_KEYS_SQL)
                for sql in BLOCK_KEY_INDEXES_SQL:
                    conn.execute(sql)
                conn.row_factory = sqlite3.Row
                return [_row_to_entry(row) for row in conn.execute(CANDIDATE_ENTRIES_SQL)]
        except sqlite3.Error as e:
            raise CandidateQueryError(str(e)) from e

    def get_entry(self, key: str) -> Optional[CatalogEntry]:
        rows = self._query(
            f"SELECT {', '.join(TRACK_COLUMNS)} FROM tracks WHERE path = ?", (key,)
        )
        return rows[0] if rows else None

    def count(self) -> int:
        with get_db_connection(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]
