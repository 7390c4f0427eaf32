import sqlite3

import pytest

from dupetools.database import CREATE_TRACKS_SQL, TRACK_COLUMNS
from dupetools.models import CatalogEntry, MatchConfig


@pytest.fixture
def balanced():
    return MatchConfig.balanced()


@pytest.fixture
def make_entry():
    """Factory for catalog entries with unique keys by default."""
    counter = {"n": 0}

    def _make(key=None, **fields):
        counter["n"] += 1
        return CatalogEntry(key=key or f"/music/track{counter['n']:04d}.flac", **fields)

    return _make


@pytest.fixture
def catalog_db(tmp_path):
    """Temporary catalog database; returns (path, insert) where insert adds rows."""
    db_path = tmp_path / "catalog.db"
    conn = sqlite3.connect(db_path)
    conn.execute(CREATE_TRACKS_SQL)
    conn.commit()
    conn.close()

    def insert(*rows):
        with sqlite3.connect(db_path) as c:
            c.executemany(
                f"INSERT INTO tracks ({', '.join(TRACK_COLUMNS)}) VALUES (?,?,?,?,?,?,?,?)",
                rows,
            )

    return db_path, insert
