"""SQLite manifest index package.

Single source of truth for the package version so that code, tests, and
scripts can import without duplicating literals. The schema versions this
build understands live in ``manifest_index.schema.dispatch``.
"""

PACKAGE_VERSION = "0.1.0"  # Keep in sync with pyproject version.

from .errors import (  # noqa: E402
    ManifestIndexError,
    UnsupportedVersionError,
    UplevelIndexError,
    InvalidDispositionError,
    StorageEngineError,
    MissingMetadataError,
    ManifestNotFoundError,
    ManifestError,
)
from .index import ManifestIndex, OpenDisposition  # noqa: E402
from .manifest import Manifest, load_manifest  # noqa: E402
from .schema.version import SchemaVersion  # noqa: E402
from .uri import to_immutable_uri  # noqa: E402

__all__ = [
    "PACKAGE_VERSION",
    "ManifestIndex",
    "OpenDisposition",
    "Manifest",
    "load_manifest",
    "SchemaVersion",
    "to_immutable_uri",
    "ManifestIndexError",
    "UnsupportedVersionError",
    "UplevelIndexError",
    "InvalidDispositionError",
    "StorageEngineError",
    "MissingMetadataError",
    "ManifestNotFoundError",
    "ManifestError",
]
