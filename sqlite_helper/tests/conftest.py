import sys
import sqlite3
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from sqlite_helper import db  # noqa: E402
from sqlite_helper import SQLiteHelper  # noqa: E402

SCHEMA = """
CREATE TABLE t (id INTEGER, name TEXT);
CREATE TABLE parent (id INTEGER PRIMARY KEY);
CREATE TABLE child (id INTEGER PRIMARY KEY, parent_id INTEGER NOT NULL REFERENCES parent(id));
"""


@pytest.fixture()
def tmp_db_path(tmp_path, monkeypatch):
    path = tmp_path / "helper_test.db"
    # Point sqlite_helper to this temp DB and away from any real config.yaml
    monkeypatch.setenv("SQLITE_HELPER_DB_PATH", str(path))
    monkeypatch.setenv("SQLITE_HELPER_CONFIG", str(tmp_path / "missing-config.yaml"))
    return str(path)


@pytest.fixture()
def seeded_db_path(tmp_db_path):
    conn = sqlite3.connect(tmp_db_path)
    try:
        conn.executescript(SCHEMA)
        conn.execute("INSERT INTO t VALUES (1, 'a')")
        conn.execute("INSERT INTO t VALUES (2, 'b')")
        conn.execute("INSERT INTO t VALUES (3, 'c')")
        conn.commit()
    finally:
        conn.close()
    return tmp_db_path


@pytest.fixture()
def helper(seeded_db_path):
    with SQLiteHelper(seeded_db_path) as h:
        yield h


class ConnTracker:
    """Records every connection opened through sqlite_helper.db."""

    def __init__(self):
        self.opened = []

    def open_count(self) -> int:
        return sum(1 for c in self.opened if db.is_open(c))


@pytest.fixture()
def conn_tracker(monkeypatch):
    tracker = ConnTracker()
    real_connect = db.connect
    real_connect_async = db.connect_async

    def connect(*args, **kwargs):
        conn = real_connect(*args, **kwargs)
        tracker.opened.append(conn)
        return conn

    async def connect_async(*args, **kwargs):
        conn = await real_connect_async(*args, **kwargs)
        tracker.opened.append(conn)
        return conn

    monkeypatch.setattr(db, "connect", connect)
    monkeypatch.setattr(db, "connect_async", connect_async)
    return tracker


@pytest.fixture()
def count_rows(seeded_db_path):
    """Count rows of table t on a separate raw connection."""
    def _count(where: str = "1=1") -> int:
        conn = sqlite3.connect(seeded_db_path)
        try:
            return conn.execute(f"SELECT COUNT(1) FROM t WHERE {where}").fetchone()[0]
        finally:
            conn.close()
    return _count
