"""Transactional facade over a manifest index file.

``ManifestIndex`` owns one connection, the resolved schema version and the
backend for that version. Every mutation runs inside a savepoint and, when it
changes something, stamps the ``lastwritetime`` metadata value before
committing. Reads go straight to the backend.

Usage:
    index = ManifestIndex.create_new("index.db")
    index.add_manifest(manifest, "manifests/c/Contoso/App/1.0.yaml")

    reader = ManifestIndex.open("index.db", OpenDisposition.IMMUTABLE)
    result = reader.search(SearchRequest(query=RequestMatch("contoso")))
"""
from __future__ import annotations
import os, sqlite3, time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from .connection import ConnectionConfig, OpenMode, Savepoint, open_connection
from .errors import InvalidDispositionError, UplevelIndexError
from .logging_util import info, warn
from .manifest import Manifest, PathLike, load_manifest
from .schema import metadata_table
from .schema.dispatch import create_backend
from .schema.interface import IndexBackend
from .schema.version import SchemaVersion
from .search import SearchRequest, SearchResult, VersionAndChannel
from .uri import to_immutable_uri

ManifestSource = Union[Manifest, PathLike]


class OpenDisposition(Enum):
    READ = "Read"
    READ_WRITE = "ReadWrite"
    IMMUTABLE = "ImmutableRead"


def current_unix_epoch() -> int:
    return int(time.time())


class ManifestIndex:
    """Facade over an index file. Build with ``create_new`` or ``open``."""

    def __init__(self, conn: sqlite3.Connection, version: SchemaVersion, backend: IndexBackend):
        self._conn = conn
        self._version = version
        self._backend = backend

    # --- Lifecycle ------------------------------------------------------------------
    @classmethod
    def create_new(cls, file_path: PathLike, version: SchemaVersion = SchemaVersion.latest(),
                   config: Optional[ConnectionConfig] = None) -> "ManifestIndex":
        """Create a new index file; fails if ``file_path`` already exists.

        Schema, version and the initial last write time are committed as one
        unit. On failure the partially written file is removed.
        """
        path = os.fspath(file_path)
        info("index_create", path=path, version=str(version))
        backend = create_backend(version)
        conn = open_connection(path, OpenMode.CREATE, config=config)
        try:
            index = cls(conn, backend.version, backend)
            with Savepoint(conn, "manifestindex_createnew") as savepoint:
                metadata_table.create(conn)
                # Use the backend's version; the request may have been the latest sentinel.
                index._version.write(conn)
                backend.create_tables(conn)
                index._set_last_write_time()
                savepoint.commit()
        except BaseException:
            conn.close()
            try:
                os.remove(path)
            except OSError as e:
                warn("index_create_cleanup_failed", path=path, error=str(e))
            raise
        return index

    @classmethod
    def open(cls, file_path: PathLike, disposition: OpenDisposition,
             config: Optional[ConnectionConfig] = None) -> "ManifestIndex":
        path = os.fspath(file_path)
        if not isinstance(disposition, OpenDisposition):
            raise InvalidDispositionError(f"Unknown open disposition: {disposition!r}")
        info("index_open", path=path, disposition=disposition.value)
        if disposition is OpenDisposition.READ:
            conn = open_connection(path, OpenMode.READ_ONLY, config=config)
        elif disposition is OpenDisposition.READ_WRITE:
            conn = open_connection(path, OpenMode.READ_WRITE, config=config)
        else:
            conn = open_connection(to_immutable_uri(path), OpenMode.READ_ONLY, uri=True, config=config)

        try:
            on_disk = SchemaVersion.read(conn)
            backend = create_backend(on_disk)
            # A writer must fully understand the schema it writes to.
            if disposition is OpenDisposition.READ_WRITE and backend.version != on_disk:
                raise UplevelIndexError(on_disk, backend.version)
            index = cls(conn, on_disk, backend)
            info("index_opened", path=path, version=str(on_disk),
                 backend_version=str(backend.version), last_write=index.get_last_write_time())
        except BaseException:
            conn.close()
            raise
        return index

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "ManifestIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def version(self) -> SchemaVersion:
        return self._version

    @property
    def backend(self) -> IndexBackend:
        return self._backend

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    # --- Mutations ------------------------------------------------------------------
    def add_manifest(self, manifest: ManifestSource, relative_path: PathLike) -> None:
        manifest = self._resolve_manifest(manifest)
        info("manifest_add", manifest=str(manifest), relative_path=os.fspath(relative_path))
        with Savepoint(self._conn, "manifestindex_addmanifest") as savepoint:
            self._backend.add_manifest(self._conn, manifest, os.fspath(relative_path))
            self._set_last_write_time()
            savepoint.commit()

    def update_manifest(self, manifest: ManifestSource, relative_path: PathLike) -> bool:
        """Returns False, without touching the last write time, when nothing was updated."""
        manifest = self._resolve_manifest(manifest)
        info("manifest_update", manifest=str(manifest), relative_path=os.fspath(relative_path))
        with Savepoint(self._conn, "manifestindex_updatemanifest") as savepoint:
            result = self._backend.update_manifest(self._conn, manifest, os.fspath(relative_path))
            if result:
                self._set_last_write_time()
                savepoint.commit()
        return result

    def remove_manifest(self, manifest: ManifestSource, relative_path: PathLike) -> None:
        manifest = self._resolve_manifest(manifest)
        info("manifest_remove", manifest=str(manifest), relative_path=os.fspath(relative_path))
        with Savepoint(self._conn, "manifestindex_removemanifest") as savepoint:
            self._backend.remove_manifest(self._conn, manifest, os.fspath(relative_path))
            self._set_last_write_time()
            savepoint.commit()

    def prepare_for_packaging(self) -> None:
        info("index_prepare_packaging")
        self._backend.prepare_for_packaging(self._conn)

    # --- Queries --------------------------------------------------------------------
    def search(self, request: SearchRequest) -> SearchResult:
        info("index_search", request=str(request))
        return self._backend.search(self._conn, request)

    def get_id_string_by_id(self, id: int) -> Optional[str]:
        return self._backend.get_id_string_by_id(self._conn, id)

    def get_name_string_by_id(self, id: int) -> Optional[str]:
        return self._backend.get_name_string_by_id(self._conn, id)

    def get_path_string_by_key(self, id: int, version: str, channel: str = "") -> Optional[str]:
        return self._backend.get_path_string_by_key(self._conn, id, version, channel)

    def get_versions_by_id(self, id: int) -> List[VersionAndChannel]:
        return self._backend.get_versions_by_id(self._conn, id)

    def get_last_write_time(self) -> datetime:
        epoch = metadata_table.get_named_value(self._conn, metadata_table.LAST_WRITE_TIME)
        return datetime.fromtimestamp(epoch, tz=timezone.utc)

    # --- Internal -------------------------------------------------------------------
    def _set_last_write_time(self) -> None:
        # POSIX epoch seconds, so the value means the same thing on every system.
        metadata_table.set_named_value(self._conn, metadata_table.LAST_WRITE_TIME, current_unix_epoch())

    @staticmethod
    def _resolve_manifest(manifest: ManifestSource) -> Manifest:
        if isinstance(manifest, Manifest):
            return manifest
        info("manifest_load", path=os.fspath(manifest))
        return load_manifest(manifest)
