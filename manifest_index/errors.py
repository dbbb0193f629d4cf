"""Error taxonomy for the manifest index.

Engine failures are never wrapped: anything raised by sqlite3 reaches the
caller as-is, so ``StorageEngineError`` is simply an alias for catching them.
"""
from __future__ import annotations
import sqlite3

StorageEngineError = sqlite3.Error


class ManifestIndexError(Exception):
    """Base class for errors raised by this package."""


class UnsupportedVersionError(ManifestIndexError):
    """No backend in this build handles the requested or on-disk schema version."""

    def __init__(self, version):
        super().__init__(f"Unsupported index schema version: {version}")
        self.version = version


class UplevelIndexError(ManifestIndexError):
    """A read-write open targeted a schema newer than the backend fully owns."""

    def __init__(self, on_disk, backend_version):
        super().__init__(
            f"Cannot open index for writing: on-disk schema {on_disk} is newer than "
            f"supported schema {backend_version}"
        )
        self.on_disk = on_disk
        self.backend_version = backend_version


class InvalidDispositionError(ManifestIndexError, ValueError):
    pass


class MissingMetadataError(ManifestIndexError):
    """A required metadata entry is absent; the file is not a manifest index."""

    def __init__(self, name: str):
        super().__init__(f"Metadata value not found: {name}")
        self.name = name


class ManifestNotFoundError(ManifestIndexError):
    pass


class ManifestError(ManifestIndexError, ValueError):
    """Manifest document could not be read or failed validation."""
