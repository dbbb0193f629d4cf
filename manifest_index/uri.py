"""Local path -> SQLite ``file:`` URI conversion.

Follows the conversion described at https://sqlite.org/uri.html (3.1):
drive letters get a leading slash, separators are normalized, and the two
characters that would otherwise start the query or fragment are escaped.
This is a textual transform; ``.``/``..`` segments are left alone.

``to_uri`` also escapes ``%`` because SQLite percent-decodes the path, so
any file name opens unchanged. ``encode_path`` and ``to_immutable_uri``
keep the exact two-character escaping.
"""
from __future__ import annotations

IMMUTABLE_SUFFIX = "?immutable=1"
_SEPARATORS = ("/", "\\")
_ESCAPES = {"?": "%3f", "#": "%23"}
_FULL_ESCAPES = {**_ESCAPES, "%": "%25"}


def _has_drive_prefix(path: str) -> bool:
    return len(path) >= 2 and path[1] == ":" and path[0].isascii() and path[0].isalpha()


def _encode(path: str, escapes: dict) -> str:
    out = []
    last_was_slash = False
    if _has_drive_prefix(path):
        out.append("/")
        last_was_slash = True
    for ch in path:
        is_slash = ch in _SEPARATORS
        if is_slash:
            if not last_was_slash:
                out.append("/")
        else:
            out.append(escapes.get(ch, ch))
        last_was_slash = is_slash
    return "".join(out)


def encode_path(path: str) -> str:
    """Return the URI path component for ``path`` (no scheme, no query)."""
    return _encode(path, _ESCAPES)


def to_uri(path: str, query: str = "") -> str:
    target = "file:" + _encode(path, _FULL_ESCAPES)
    if query:
        target += "?" + query
    return target


def to_immutable_uri(path: str) -> str:
    """URI that opens ``path`` read-only without taking any locks."""
    return "file:" + encode_path(path) + IMMUTABLE_SUFFIX
