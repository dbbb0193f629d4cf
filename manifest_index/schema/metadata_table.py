"""Reserved key/value area inside the index file.

Holds the schema version and the last write time. Values are stored with
SQLite's dynamic typing, so integers round-trip as integers.
"""
from __future__ import annotations
import sqlite3
from typing import Any, Callable, Optional

from ..errors import MissingMetadataError

TABLE_NAME = "metadata"

MAJOR_VERSION = "majorVersion"
MINOR_VERSION = "minorVersion"
LAST_WRITE_TIME = "lastwritetime"


def create(conn: sqlite3.Connection) -> None:
    conn.execute(f"CREATE TABLE [{TABLE_NAME}] (name TEXT PRIMARY KEY NOT NULL, value NOT NULL)")


def exists(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?", (TABLE_NAME,)
    ).fetchone()
    return row is not None


def get_named_value(conn: sqlite3.Connection, name: str, convert: Callable[[Any], Any] = int) -> Any:
    """Return the value stored under ``name``; raises MissingMetadataError if absent."""
    value = try_get_named_value(conn, name, convert)
    if value is None:
        raise MissingMetadataError(name)
    return value


def try_get_named_value(conn: sqlite3.Connection, name: str, convert: Callable[[Any], Any] = int) -> Optional[Any]:
    if not exists(conn):
        return None
    row = conn.execute(f"SELECT value FROM [{TABLE_NAME}] WHERE name = ?", (name,)).fetchone()
    if row is None:
        return None
    return convert(row[0])


def set_named_value(conn: sqlite3.Connection, name: str, value: Any) -> None:
    conn.execute(
        f"INSERT INTO [{TABLE_NAME}] (name, value) VALUES (?, ?) "
        "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
        (name, value),
    )
