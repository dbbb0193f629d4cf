"""SQLite connection primitive for the manifest index.

Responsibilities:
    - Open a store in one of four modes (exclusive create, read-only,
      read-write, or an explicit URI target such as the immutable form)
    - Environment driven tuning with clamping + sanity logging
    - Savepoint scopes that roll back unless explicitly committed
    - Health check helper + optional integrity_check (VERIFY_ON_CONNECT=1)
    - Clearer error messages for missing files, existing files on create,
      and directory path misuse

Connections are opened with ``isolation_level=None`` so the sqlite3 module
never issues its own BEGIN/COMMIT; transaction boundaries belong to
``Savepoint``.
"""
from __future__ import annotations
import sqlite3, os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .logging_util import warn, debug
from .uri import to_uri

MAX_CACHE_KIB = 512 * 1024        # 512 MiB upper clamp
MIN_CACHE_KIB = 16                # SQLite minimum practical
DEFAULT_CACHE_KIB = 16 * 1024     # 16 MiB
MAX_BUSY_TIMEOUT_MS = 600_000
DEFAULT_BUSY_TIMEOUT_MS = 30_000
DEFAULT_JOURNAL_MODE = "DELETE"
JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "WAL", "MEMORY", "OFF"}


class OpenMode(Enum):
    CREATE = "create"
    READ_ONLY = "ro"
    READ_WRITE = "rw"


@dataclass
class ConnectionConfig:
    cache_kib: int = DEFAULT_CACHE_KIB
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    journal_mode: str = DEFAULT_JOURNAL_MODE
    verify_on_connect: bool = False

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        def _int(name: str, default: int) -> int:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                warn("invalid_env_int", key=name, value=raw, default=default)
                return default
        cache_kib = _int("MANIFEST_INDEX_CACHE_KIB", DEFAULT_CACHE_KIB)
        busy = _int("MANIFEST_INDEX_BUSY_TIMEOUT_MS", DEFAULT_BUSY_TIMEOUT_MS)
        journal = os.environ.get("MANIFEST_INDEX_JOURNAL_MODE", DEFAULT_JOURNAL_MODE).strip().upper()
        verify = os.environ.get("MANIFEST_INDEX_VERIFY_ON_CONNECT", "0") == "1"
        # Clamp
        adjusted = {}
        if cache_kib < MIN_CACHE_KIB or cache_kib > MAX_CACHE_KIB:
            adjusted["cache_kib"] = cache_kib
            cache_kib = min(MAX_CACHE_KIB, max(MIN_CACHE_KIB, cache_kib))
        if busy < 0 or busy > MAX_BUSY_TIMEOUT_MS:
            adjusted["busy_timeout_ms"] = busy
            busy = min(MAX_BUSY_TIMEOUT_MS, max(0, busy))
        if journal not in JOURNAL_MODES:
            adjusted["journal_mode"] = journal
            journal = DEFAULT_JOURNAL_MODE
        if adjusted:
            final_values = {"cache_kib": cache_kib, "busy_timeout_ms": busy, "journal_mode": journal}
            warn("connection_config_clamped", original=adjusted, clamped=final_values)
        return cls(cache_kib=cache_kib, busy_timeout_ms=busy, journal_mode=journal, verify_on_connect=verify)


class Savepoint:
    """Named savepoint that rolls back on scope exit unless ``commit()`` ran.

    Usage::

        with Savepoint(conn, "add_manifest") as sp:
            ...
            sp.commit()
    """

    def __init__(self, conn: sqlite3.Connection, name: str):
        self._conn = conn
        self._name = '"' + name.replace('"', '""') + '"'
        self._conn.execute(f"SAVEPOINT {self._name}")
        self._in_progress = True

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def commit(self) -> None:
        if not self._in_progress:
            return
        self._conn.execute(f"RELEASE {self._name}")
        self._in_progress = False

    def rollback(self) -> None:
        if not self._in_progress:
            return
        self._in_progress = False
        self._conn.execute(f"ROLLBACK TO {self._name}")
        self._conn.execute(f"RELEASE {self._name}")

    def __enter__(self) -> "Savepoint":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._in_progress:
            return
        try:
            self.rollback()
        except sqlite3.Error as e:
            if exc is None:
                raise
            # Keep the original failure; the rollback error is secondary.
            warn("savepoint_rollback_failed", savepoint=self._name, error=str(e))


def _check_not_directory(path: str) -> None:
    if os.path.isdir(path):
        raise sqlite3.OperationalError(f"Path points to a directory, expected file: {path}")


def open_connection(target: str, mode: OpenMode, uri: bool = False,
                    config: Optional[ConnectionConfig] = None) -> sqlite3.Connection:
    """Return a configured sqlite3.Connection for ``target``.

    With ``uri=False`` the target is a file path: CREATE requires the file to
    be absent, READ_ONLY/READ_WRITE require it to exist. With ``uri=True`` the
    target is passed through to SQLite as a ``file:`` URI (mode must be
    READ_ONLY); ``mode=ro`` is added to its query so the engine never opens it
    for writing.
    """
    config = config or ConnectionConfig.from_env()
    write = mode is not OpenMode.READ_ONLY
    if uri:
        if write:
            raise ValueError("URI targets can only be opened read-only")
        connect_target = target + ("&" if "?" in target else "?") + "mode=ro"
    else:
        _check_not_directory(target)
        exists = os.path.exists(target)
        if mode is OpenMode.CREATE:
            try:
                # Exclusive create; SQLite treats a zero-length file as an empty database.
                fd = os.open(target, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError as e:
                raise sqlite3.OperationalError(f"Database already exists and create requested: {target}") from e
            except OSError as e:
                raise sqlite3.OperationalError(f"Unable to create database file: {target} ({e.strerror})") from e
            os.close(fd)
            connect_target = to_uri(target, "mode=rw")
        else:
            if not exists:
                raise sqlite3.OperationalError(f"Database not found and {mode.value} open requested: {target}")
            connect_target = to_uri(target, f"mode={mode.value}")

    try:
        conn = _connect(connect_target, uri, target)
        try:
            conn.row_factory = sqlite3.Row
            _apply_pragmas(conn, write, config, target)
        except BaseException:
            conn.close()
            raise
    except BaseException:
        if mode is OpenMode.CREATE:
            _discard_created(target)
        raise

    if config.verify_on_connect and write and mode is not OpenMode.CREATE:
        try:
            res = conn.execute("PRAGMA integrity_check").fetchone()[0]
            if res != "ok":
                warn("integrity_check_failed", target=target, result=res)
        except sqlite3.Error as e:  # pragma: no cover - unexpected
            warn("integrity_check_error", target=target, error=str(e))
    return conn


def _connect(connect_target: str, uri: bool, target: str) -> sqlite3.Connection:
    try:
        return sqlite3.connect(connect_target, uri=True, isolation_level=None)
    except sqlite3.OperationalError as e:
        if uri:
            # Augment message for operators
            raise sqlite3.OperationalError(str(e) + f" (database not found and immutable read requested: {target})") from e
        raise


def _discard_created(target: str) -> None:
    # The file was created exclusively above, so it is ours to remove.
    try:
        os.remove(target)
    except OSError as e:
        warn("create_cleanup_failed", target=target, error=str(e))


def _apply_pragmas(conn: sqlite3.Connection, write: bool, config: ConnectionConfig, target: str) -> None:
    mode = "write" if write else "read"
    conn.execute(f"PRAGMA busy_timeout={int(config.busy_timeout_ms)}")
    conn.execute("PRAGMA foreign_keys=ON")
    if write:
        try:
            jm = conn.execute(f"PRAGMA journal_mode={config.journal_mode}").fetchone()[0]
            if jm.upper() != config.journal_mode:
                warn("journal_mode_unexpected", got=jm, wanted=config.journal_mode, target=target)
        except sqlite3.Error as e:
            warn("pragma_failed", pragma="journal_mode", mode=mode, target=target, error=str(e))
        pragmas = [
            (f"cache_size=-{config.cache_kib}", "cache_size"),  # negative => KiB
            ("synchronous=NORMAL", "synchronous"),
            ("trusted_schema=OFF", "trusted_schema"),
        ]
        for p, tag in pragmas:
            try:
                conn.execute(f"PRAGMA {p}")
            except sqlite3.Error as e:
                warn("pragma_failed", pragma=p, tag=tag, mode=mode, target=target, error=str(e))
    else:
        try:
            conn.execute("PRAGMA query_only=ON")
        except sqlite3.Error as e:
            debug("pragma_query_only_failed", mode=mode, target=target, error=str(e))


def health_check(path: str, config: Optional[ConnectionConfig] = None) -> Dict[str, Any]:
    """Return core pragma values for the store at ``path`` and basic status."""
    try:
        conn = open_connection(path, OpenMode.READ_ONLY, config=config)
    except sqlite3.Error as e:
        return {"ok": False, "path": path, "error": str(e)}
    try:
        rows = {
            "foreign_keys": conn.execute("PRAGMA foreign_keys").fetchone()[0],
            "journal_mode": conn.execute("PRAGMA journal_mode").fetchone()[0],
            "page_count": conn.execute("PRAGMA page_count").fetchone()[0],
            "page_size": conn.execute("PRAGMA page_size").fetchone()[0],
            "freelist_count": conn.execute("PRAGMA freelist_count").fetchone()[0],
            "query_only": conn.execute("PRAGMA query_only").fetchone()[0],
        }
        return {"ok": True, "path": path, **rows}
    finally:
        conn.close()
