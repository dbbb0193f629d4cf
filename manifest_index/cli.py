"""Command line entry point: ``manifest-index <command> ...``.

Every command prints a JSON document on stdout. Failures print
``{"success": false, "error": ...}`` on stderr and exit with status 1.
"""
from __future__ import annotations
import argparse, json, sqlite3, sys
from typing import Any, Dict, List, Optional

from . import PACKAGE_VERSION
from .connection import health_check
from .errors import ManifestIndexError
from .index import ManifestIndex, OpenDisposition
from .schema.version import SchemaVersion
from .search import MatchType, PackageMatchField, PackageMatchFilter, RequestMatch, SearchRequest

_DISPOSITIONS = {
    "read": OpenDisposition.READ,
    "readwrite": OpenDisposition.READ_WRITE,
    "immutable": OpenDisposition.IMMUTABLE,
}


def _cmd_create(args) -> Dict[str, Any]:
    with ManifestIndex.create_new(args.index, SchemaVersion.parse(args.schema_version)) as index:
        return {"success": True, "path": args.index, "version": str(index.version)}


def _cmd_add(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.READ_WRITE) as index:
        index.add_manifest(args.manifest, args.relative_path)
    return {"success": True}


def _cmd_update(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.READ_WRITE) as index:
        updated = index.update_manifest(args.manifest, args.relative_path)
    return {"success": True, "updated": updated}


def _cmd_remove(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.READ_WRITE) as index:
        index.remove_manifest(args.manifest, args.relative_path)
    return {"success": True}


def _cmd_search(args) -> Dict[str, Any]:
    match_type = MatchType(args.match)
    request = SearchRequest(
        query=RequestMatch(args.query, match_type) if args.query else None,
        filters=[PackageMatchFilter(PackageMatchField(f), match_type, v) for f, v in args.filter or []],
        maximum_results=args.max,
    )
    with ManifestIndex.open(args.index, _DISPOSITIONS[args.disposition]) as index:
        result = index.search(request)
        matches = [
            {
                "id": index.get_id_string_by_id(rowid),
                "name": index.get_name_string_by_id(rowid),
                "key": rowid,
                "matched_field": match.field.value if match else None,
            }
            for rowid, match in result.matches
        ]
    return {"success": True, "matches": matches, "truncated": result.truncated}


def _cmd_versions(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.IMMUTABLE) as index:
        versions = [
            {"version": vc.version, "channel": vc.channel,
             "path": index.get_path_string_by_key(args.key, vc.version, vc.channel)}
            for vc in index.get_versions_by_id(args.key)
        ]
        return {"success": True, "id": index.get_id_string_by_id(args.key), "versions": versions}


def _cmd_package(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.READ_WRITE) as index:
        index.prepare_for_packaging()
    return {"success": True}


def _cmd_info(args) -> Dict[str, Any]:
    with ManifestIndex.open(args.index, OpenDisposition.IMMUTABLE) as index:
        out = {
            "success": True,
            "version": str(index.version),
            "backend_version": str(index.backend.version),
            "last_write_time": index.get_last_write_time().isoformat(),
        }
    out["health_check"] = health_check(args.index)
    return out


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="manifest-index", description="Manage a SQLite manifest index")
    ap.add_argument("--version", action="version", version=f"%(prog)s {PACKAGE_VERSION}")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create a new, empty index")
    p.add_argument("index", help="Path of the index file to create")
    p.add_argument("--schema-version", default="latest", help="Schema version, e.g. 1.0 (default: latest)")
    p.set_defaults(func=_cmd_create)

    for name, func, text in (
        ("add", _cmd_add, "Add a manifest"),
        ("update", _cmd_update, "Update an existing manifest"),
        ("remove", _cmd_remove, "Remove a manifest"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("index", help="Path to the index file")
        p.add_argument("manifest", help="Path to the YAML manifest")
        p.add_argument("relative_path", help="Manifest path relative to the repository root")
        p.set_defaults(func=func)

    p = sub.add_parser("search", help="Search packages")
    p.add_argument("index", help="Path to the index file")
    p.add_argument("query", nargs="?", help="Value matched against every field")
    p.add_argument("--match", choices=[m.value for m in MatchType], default=MatchType.SUBSTRING.value)
    p.add_argument("--filter", nargs=2, action="append", metavar=("FIELD", "VALUE"),
                   help="Require FIELD (id, name, moniker, tag, command) to match VALUE")
    p.add_argument("--max", type=int, default=0, help="Maximum results (0 = unlimited)")
    p.add_argument("--disposition", choices=sorted(_DISPOSITIONS), default="immutable")
    p.set_defaults(func=_cmd_search)

    p = sub.add_parser("versions", help="List versions for a package key")
    p.add_argument("index", help="Path to the index file")
    p.add_argument("key", type=int, help="Package key as returned by search")
    p.set_defaults(func=_cmd_versions)

    p = sub.add_parser("package", help="Compact the index for distribution")
    p.add_argument("index", help="Path to the index file")
    p.set_defaults(func=_cmd_package)

    p = sub.add_parser("info", help="Show version, last write time and health")
    p.add_argument("index", help="Path to the index file")
    p.set_defaults(func=_cmd_info)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        out = args.func(args)
    except (ManifestIndexError, sqlite3.Error, ValueError) as e:
        print(json.dumps({"success": False, "error": str(e), "type": type(e).__name__}), file=sys.stderr)
        return 1
    print(json.dumps(out, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
