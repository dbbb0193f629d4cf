"""Schema version -> backend dispatch.

Backends are looked up by version tag. A request is served by the newest
known backend with the same major version whose minor does not exceed the
requested one, so an index written by a newer minor release can still be
read. Whether that partial understanding is acceptable is the caller's
decision (see ``ManifestIndex.open``).
"""
from __future__ import annotations
from typing import Callable, Dict, List

from ..errors import UnsupportedVersionError
from .interface import IndexBackend
from .v1_0 import IndexBackendV1_0
from .version import SchemaVersion

BACKENDS: Dict[SchemaVersion, Callable[[], IndexBackend]] = {
    SchemaVersion(1, 0): IndexBackendV1_0,
}


def known_versions() -> List[SchemaVersion]:
    return sorted(BACKENDS)


def latest_version() -> SchemaVersion:
    return max(BACKENDS)


def resolve_version(requested: SchemaVersion) -> SchemaVersion:
    """Return the known version that serves ``requested``."""
    if requested.is_latest():
        return latest_version()
    candidates = [v for v in BACKENDS if v.major == requested.major and v.minor <= requested.minor]
    if not candidates:
        raise UnsupportedVersionError(requested)
    return max(candidates)


def create_backend(requested: SchemaVersion) -> IndexBackend:
    return BACKENDS[resolve_version(requested)]()
