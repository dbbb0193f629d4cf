"""Schema version token.

A version is an ordered (major, minor) pair. ``SchemaVersion.latest()`` is a
sentinel that the dispatcher resolves to the newest version this build knows.
"""
from __future__ import annotations
import sqlite3
from dataclasses import dataclass

from . import metadata_table

_LATEST = 0xFFFFFFFF


@dataclass(frozen=True, order=True)
class SchemaVersion:
    major: int
    minor: int = 0

    @classmethod
    def latest(cls) -> "SchemaVersion":
        return cls(_LATEST, _LATEST)

    def is_latest(self) -> bool:
        return self.major == _LATEST

    @classmethod
    def parse(cls, text: str) -> "SchemaVersion":
        """Parse ``"1"``, ``"1.0"`` or ``"latest"``."""
        raw = text.strip().lower()
        if raw == "latest":
            return cls.latest()
        parts = raw.split(".")
        if len(parts) > 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid schema version: {text!r}")
        return cls(int(parts[0]), int(parts[1]) if len(parts) == 2 else 0)

    @classmethod
    def read(cls, conn: sqlite3.Connection) -> "SchemaVersion":
        """Read the version persisted in the metadata area."""
        major = metadata_table.get_named_value(conn, metadata_table.MAJOR_VERSION)
        minor = metadata_table.get_named_value(conn, metadata_table.MINOR_VERSION)
        return cls(major, minor)

    def write(self, conn: sqlite3.Connection) -> None:
        if self.is_latest():
            raise ValueError("The latest sentinel must be resolved before it is persisted")
        metadata_table.set_named_value(conn, metadata_table.MAJOR_VERSION, self.major)
        metadata_table.set_named_value(conn, metadata_table.MINOR_VERSION, self.minor)

    def __str__(self) -> str:
        if self.is_latest():
            return "latest"
        return f"{self.major}.{self.minor}"
