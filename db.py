"""
db.py
SQLite helpers backing the local cache (a single key/value table, like browser localStorage).
"""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

DB_FILE = Path(os.getenv("GYMHQ_DB_FILE") or Path(__file__).with_name("gymhq.db"))


@contextmanager
def get_conn(db_file: Path | str | None = None):
    conn = sqlite3.connect(db_file or DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = (), db_file: Path | str | None = None) -> int:
    with get_conn(db_file) as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def fetch_one(sql: str, params: tuple = (), db_file: Path | str | None = None):
    with get_conn(db_file) as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def init_db(db_file: Path | str | None = None) -> None:
    """
    Create the key/value table if it does not exist yet (safe to call on every start).
    """
    execute(
        """
        CREATE TABLE IF NOT EXISTS local_storage (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """,
        db_file=db_file,
    )


def get_item(key: str, db_file: Path | str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM local_storage WHERE key = ?", (key,), db_file=db_file)
    if row:
        return str(row["value"])
    return None


def set_item(key: str, value: str, db_file: Path | str | None = None) -> None:
    execute(
        """
        INSERT INTO local_storage(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
        db_file=db_file,
    )


def remove_item(key: str, db_file: Path | str | None = None) -> None:
    execute("DELETE FROM local_storage WHERE key = ?", (key,), db_file=db_file)
