"""Schema 1.0 backend.

Layout:
    ids, names, monikers, versions, channels, paths
        one-to-one value tables; the rowid is the key other tables refer to
    manifest
        one row per (id, version, channel) pointing at the value tables
    tags + tags_map, commands + commands_map
        one-to-many values attached to a manifest row

The package identifier handed out to callers (``IdType``) is the rowid in
``ids``, which is AUTOINCREMENT so a removed package key is never reused.
Value rows no longer referenced by any manifest are removed after updates
and removals so the packaged file stays minimal.
"""
from __future__ import annotations
import sqlite3
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..errors import ManifestNotFoundError
from ..manifest import Manifest
from ..search import (
    MatchType,
    PackageMatchField,
    PackageMatchFilter,
    SearchRequest,
    SearchResult,
    VersionAndChannel,
)
from .version import SchemaVersion

# table -> value column; manifest.<column> holds the rowid
_ONE_TO_ONE = {
    "ids": "id",
    "names": "name",
    "monikers": "moniker",
    "versions": "version",
    "channels": "channel",
    "paths": "path",
}
# table -> (value column, map table)
_ONE_TO_MANY = {
    "tags": ("tag", "tags_map"),
    "commands": ("command", "commands_map"),
}

_FIELD_QUERIES = {
    PackageMatchField.ID: "SELECT ids.rowid FROM ids WHERE ids.id {cond}",
    PackageMatchField.NAME: (
        "SELECT DISTINCT manifest.id FROM manifest "
        "JOIN names ON manifest.name = names.rowid WHERE names.name {cond}"
    ),
    PackageMatchField.MONIKER: (
        "SELECT DISTINCT manifest.id FROM manifest "
        "JOIN monikers ON manifest.moniker = monikers.rowid "
        "WHERE monikers.moniker <> '' AND monikers.moniker {cond}"
    ),
    PackageMatchField.TAG: (
        "SELECT DISTINCT manifest.id FROM tags "
        "JOIN tags_map ON tags_map.tag = tags.rowid "
        "JOIN manifest ON manifest.rowid = tags_map.manifest WHERE tags.tag {cond}"
    ),
    PackageMatchField.COMMAND: (
        "SELECT DISTINCT manifest.id FROM commands "
        "JOIN commands_map ON commands_map.command = commands.rowid "
        "JOIN manifest ON manifest.rowid = commands_map.manifest WHERE commands.command {cond}"
    ),
}

_SELECT_MANIFEST = (
    "SELECT manifest.rowid AS rowid, manifest.name, manifest.moniker, manifest.path, paths.path AS path_value "
    "FROM manifest "
    "JOIN ids ON manifest.id = ids.rowid "
    "JOIN versions ON manifest.version = versions.rowid "
    "JOIN channels ON manifest.channel = channels.rowid "
    "JOIN paths ON manifest.path = paths.rowid "
    "WHERE ids.id = ? AND versions.version = ? AND channels.channel = ?"
)


def normalize_relative_path(relative_path) -> str:
    return str(relative_path).replace("\\", "/")


def version_sort_key(version: str) -> Tuple:
    """Order dotted versions numerically where possible ("1.10" > "1.9")."""
    key = []
    for part in version.replace("-", ".").split("."):
        if part.isdigit():
            key.append((1, int(part), ""))
        else:
            key.append((0, 0, part.lower()))
    return tuple(key)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _condition(match_type: MatchType, value: str) -> Tuple[str, str]:
    if match_type is MatchType.EXACT:
        return "= ?", value
    if match_type is MatchType.CASE_INSENSITIVE:
        return "= ? COLLATE NOCASE", value
    if match_type is MatchType.STARTS_WITH:
        return "LIKE ? ESCAPE '\\'", _escape_like(value) + "%"
    if match_type is MatchType.SUBSTRING:
        return "LIKE ? ESCAPE '\\'", "%" + _escape_like(value) + "%"
    raise ValueError(f"Unknown match type: {match_type}")


class IndexBackendV1_0:
    """Schema 1.0 implementation of the backend interface."""

    _version = SchemaVersion(1, 0)

    @property
    def version(self) -> SchemaVersion:
        return self._version

    # --- Structure ------------------------------------------------------------------
    def create_tables(self, conn: sqlite3.Connection) -> None:
        for table, column in _ONE_TO_ONE.items():
            if table == "ids":
                # Package keys are handed out to callers and must never be reused.
                conn.execute("CREATE TABLE [ids] (rowid INTEGER PRIMARY KEY AUTOINCREMENT, [id] TEXT NOT NULL UNIQUE)")
            else:
                conn.execute(f"CREATE TABLE [{table}] ([{column}] TEXT NOT NULL UNIQUE)")
        conn.execute(
            "CREATE TABLE [manifest] ("
            "rowid INTEGER PRIMARY KEY, "
            "id INT64 NOT NULL, name INT64 NOT NULL, moniker INT64 NOT NULL, "
            "version INT64 NOT NULL, channel INT64 NOT NULL, path INT64 NOT NULL UNIQUE, "
            "UNIQUE(id, version, channel))"
        )
        for table, (column, map_table) in _ONE_TO_MANY.items():
            conn.execute(f"CREATE TABLE [{table}] ([{column}] TEXT NOT NULL UNIQUE)")
            conn.execute(
                f"CREATE TABLE [{map_table}] (manifest INT64 NOT NULL, [{column}] INT64 NOT NULL, "
                f"PRIMARY KEY([{column}], manifest)) WITHOUT ROWID"
            )
            conn.execute(f"CREATE INDEX [{map_table}_manifest_index] ON [{map_table}](manifest)")

    def prepare_for_packaging(self, conn: sqlite3.Connection) -> None:
        conn.execute("ANALYZE")
        conn.execute("VACUUM")

    # --- Mutations ------------------------------------------------------------------
    def add_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> None:
        refs = {
            "id": self._ensure_value(conn, "ids", manifest.id),
            "name": self._ensure_value(conn, "names", manifest.name),
            "moniker": self._ensure_value(conn, "monikers", manifest.moniker),
            "version": self._ensure_value(conn, "versions", manifest.version),
            "channel": self._ensure_value(conn, "channels", manifest.channel),
            "path": self._ensure_value(conn, "paths", normalize_relative_path(relative_path)),
        }
        cur = conn.execute(
            "INSERT INTO manifest (id, name, moniker, version, channel, path) "
            "VALUES (:id, :name, :moniker, :version, :channel, :path)",
            refs,
        )
        manifest_row = cur.lastrowid
        for table in _ONE_TO_MANY:
            self._set_many(conn, table, manifest_row, getattr(manifest, table))

    def update_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> bool:
        row = self._find_manifest(conn, manifest)
        if row is None:
            return False
        manifest_row = row["rowid"]
        changed = False
        for column, table, value in (
            ("name", "names", manifest.name),
            ("moniker", "monikers", manifest.moniker),
            ("path", "paths", normalize_relative_path(relative_path)),
        ):
            value_row = self._ensure_value(conn, table, value)
            if value_row != row[column]:
                conn.execute(f"UPDATE manifest SET [{column}] = ? WHERE rowid = ?", (value_row, manifest_row))
                changed = True
        for table in _ONE_TO_MANY:
            desired = list(getattr(manifest, table))
            if set(desired) != set(self._get_many(conn, table, manifest_row)):
                self._clear_many(conn, table, manifest_row)
                self._set_many(conn, table, manifest_row, desired)
                changed = True
        if changed:
            self._remove_orphans(conn)
        return changed

    def remove_manifest(self, conn: sqlite3.Connection, manifest: Manifest, relative_path: str) -> None:
        row = self._find_manifest(conn, manifest)
        if row is None:
            raise ManifestNotFoundError(f"Manifest not found in index: {manifest}")
        path = normalize_relative_path(relative_path)
        if row["path_value"] != path:
            raise ManifestNotFoundError(
                f"Manifest {manifest} is indexed at {row['path_value']!r}, not {path!r}"
            )
        for table in _ONE_TO_MANY:
            self._clear_many(conn, table, row["rowid"])
        conn.execute("DELETE FROM manifest WHERE rowid = ?", (row["rowid"],))
        self._remove_orphans(conn)

    # --- Queries --------------------------------------------------------------------
    def search(self, conn: sqlite3.Connection, request: SearchRequest) -> SearchResult:
        candidates: Dict[int, Optional[PackageMatchFilter]] = {}
        if request.is_for_everything():
            for r in conn.execute("SELECT rowid FROM ids"):
                candidates[r[0]] = None
        else:
            if request.query is not None:
                for field in PackageMatchField:
                    match = PackageMatchFilter.of(field, request.query)
                    for rowid in self._ids_matching(conn, match):
                        candidates.setdefault(rowid, match)
            for inclusion in request.inclusions:
                for rowid in self._ids_matching(conn, inclusion):
                    candidates.setdefault(rowid, inclusion)
        for flt in request.filters:
            allowed = self._ids_matching(conn, flt)
            candidates = {k: (v or flt) for k, v in candidates.items() if k in allowed}

        ordered = sorted(candidates.items())
        result = SearchResult(matches=ordered)
        if request.maximum_results and len(ordered) > request.maximum_results:
            result.matches = ordered[:request.maximum_results]
            result.truncated = True
        return result

    def get_id_string_by_id(self, conn: sqlite3.Connection, id: int) -> Optional[str]:
        row = conn.execute("SELECT id FROM ids WHERE rowid = ?", (id,)).fetchone()
        return row[0] if row else None

    def get_name_string_by_id(self, conn: sqlite3.Connection, id: int) -> Optional[str]:
        rows = conn.execute(
            "SELECT versions.version, names.name FROM manifest "
            "JOIN versions ON manifest.version = versions.rowid "
            "JOIN names ON manifest.name = names.rowid WHERE manifest.id = ?",
            (id,),
        ).fetchall()
        if not rows:
            return None
        # Name of the newest version wins.
        return max(rows, key=lambda r: version_sort_key(r[0]))[1]

    def get_path_string_by_key(self, conn: sqlite3.Connection, id: int, version: str, channel: str) -> Optional[str]:
        row = conn.execute(
            "SELECT paths.path FROM manifest "
            "JOIN versions ON manifest.version = versions.rowid "
            "JOIN channels ON manifest.channel = channels.rowid "
            "JOIN paths ON manifest.path = paths.rowid "
            "WHERE manifest.id = ? AND versions.version = ? AND channels.channel = ?",
            (id, version, channel),
        ).fetchone()
        return row[0] if row else None

    def get_versions_by_id(self, conn: sqlite3.Connection, id: int) -> List[VersionAndChannel]:
        rows = conn.execute(
            "SELECT versions.version, channels.channel FROM manifest "
            "JOIN versions ON manifest.version = versions.rowid "
            "JOIN channels ON manifest.channel = channels.rowid WHERE manifest.id = ?",
            (id,),
        ).fetchall()
        found = [VersionAndChannel(r[0], r[1]) for r in rows]
        return sorted(found, key=lambda vc: (version_sort_key(vc.version), vc.channel), reverse=True)

    # --- Internal -------------------------------------------------------------------
    def _find_manifest(self, conn: sqlite3.Connection, manifest: Manifest) -> Optional[sqlite3.Row]:
        return conn.execute(_SELECT_MANIFEST, (manifest.id, manifest.version, manifest.channel)).fetchone()

    def _ids_matching(self, conn: sqlite3.Connection, flt: PackageMatchFilter) -> Set[int]:
        cond, param = _condition(flt.type, flt.value)
        sql = _FIELD_QUERIES[flt.field].format(cond=cond)
        return {r[0] for r in conn.execute(sql, (param,))}

    @staticmethod
    def _ensure_value(conn: sqlite3.Connection, table: str, value: str) -> int:
        column = _ONE_TO_ONE[table] if table in _ONE_TO_ONE else _ONE_TO_MANY[table][0]
        row = conn.execute(f"SELECT rowid FROM [{table}] WHERE [{column}] = ?", (value,)).fetchone()
        if row is not None:
            return row[0]
        return conn.execute(f"INSERT INTO [{table}] ([{column}]) VALUES (?)", (value,)).lastrowid

    def _set_many(self, conn: sqlite3.Connection, table: str, manifest_row: int, values: Iterable[str]) -> None:
        column, map_table = _ONE_TO_MANY[table]
        for value in dict.fromkeys(values):
            value_row = self._ensure_value(conn, table, value)
            conn.execute(
                f"INSERT INTO [{map_table}] (manifest, [{column}]) VALUES (?, ?)", (manifest_row, value_row)
            )

    @staticmethod
    def _get_many(conn: sqlite3.Connection, table: str, manifest_row: int) -> Sequence[str]:
        column, map_table = _ONE_TO_MANY[table]
        rows = conn.execute(
            f"SELECT [{table}].[{column}] FROM [{map_table}] "
            f"JOIN [{table}] ON [{map_table}].[{column}] = [{table}].rowid "
            f"WHERE [{map_table}].manifest = ?",
            (manifest_row,),
        )
        return [r[0] for r in rows]

    @staticmethod
    def _clear_many(conn: sqlite3.Connection, table: str, manifest_row: int) -> None:
        map_table = _ONE_TO_MANY[table][1]
        conn.execute(f"DELETE FROM [{map_table}] WHERE manifest = ?", (manifest_row,))

    @staticmethod
    def _remove_orphans(conn: sqlite3.Connection) -> None:
        for table, column in _ONE_TO_ONE.items():
            conn.execute(
                f"DELETE FROM [{table}] WHERE rowid NOT IN (SELECT [{column}] FROM manifest)"
            )
        for table, (column, map_table) in _ONE_TO_MANY.items():
            conn.execute(
                f"DELETE FROM [{table}] WHERE rowid NOT IN (SELECT [{column}] FROM [{map_table}])"
            )
