"""Backend capability interface.

One implementation exists per schema version. The facade owns transactions
and the last-write-time bookkeeping; a backend only does the structural and
query work against the connection it is handed.
"""
from __future__ import annotations
import sqlite3
from typing import List, Optional, Protocol

from ..manifest import Manifest
from ..search import SearchRequest, SearchResult, VersionAndChannel
from .version import SchemaVersion


class IndexBackend(Protocol):
    @property
    def version(self) -> SchemaVersion:
        """The exact schema version this implementation owns."""
        ...

    def create_tables(self, conn: sqlite3.Connection) -> None: ...

    def add_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> None:
        """Insert a manifest. Raises if (id, version, channel) or the path is already present."""
        ...

    def update_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> bool:
        """Rewrite an existing manifest. False when there is no matching row or nothing changed."""
        ...

    def remove_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> None: ...

    def prepare_for_packaging(self, conn: sqlite3.Connection) -> None: ...

    def search(self, conn: sqlite3.Connection, request: SearchRequest) -> SearchResult: ...

    def get_id_string_by_id(self, conn: sqlite3.Connection, id: int) -> Optional[str]: ...

    def get_name_string_by_id(self, conn: sqlite3.Connection, id: int) -> Optional[str]: ...

    def get_path_string_by_key(self, conn: sqlite3.Connection, id: int, version: str, channel: str) -> Optional[str]: ...

    def get_versions_by_id(self, conn: sqlite3.Connection, id: int) -> List[VersionAndChannel]: ...
