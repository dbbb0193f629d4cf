"""Manifest model and YAML loader.

Only the fields the index stores are modelled. Both the short keys
(``Id``/``Name``/``Version``) and the package-prefixed keys
(``PackageIdentifier``/``PackageName``/``PackageVersion``) are accepted.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Union

import yaml

from .errors import ManifestError

PathLike = Union[str, "os.PathLike[str]"]

_KEY_ALIASES = {
    "id": ("Id", "PackageIdentifier"),
    "name": ("Name", "PackageName"),
    "version": ("Version", "PackageVersion"),
}


@dataclass
class Manifest:
    id: str
    name: str
    version: str
    channel: str = ""
    moniker: str = ""
    tags: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.id} {self.version}" + (f" [{self.channel}]" if self.channel else "")


def load_manifest(path: PathLike) -> Manifest:
    """Parse a YAML manifest file.

    Raises:
        ManifestError: file unreadable, not YAML, or missing required keys.
    """
    manifest_file = Path(path).expanduser()
    try:
        text = manifest_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"Failed to read manifest at {manifest_file}: {e}") from e
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"Failed to parse YAML manifest at {manifest_file}: {e}") from e
    if not isinstance(payload, Mapping):
        raise ManifestError(f"Manifest at {manifest_file} must be a mapping")
    return manifest_from_mapping(payload, source=str(manifest_file))


def manifest_from_mapping(payload: Mapping[str, Any], source: str = "<mapping>") -> Manifest:
    values = {}
    for attr, keys in _KEY_ALIASES.items():
        raw = next((payload[k] for k in keys if payload.get(k) not in (None, "")), None)
        if raw is None:
            raise ManifestError(f"Manifest {source} is missing required field {keys[0]}")
        values[attr] = str(raw)
    return Manifest(
        channel=_optional_str(payload, "Channel", source),
        moniker=_optional_str(payload, "Moniker", source),
        tags=_str_list(payload, "Tags", source),
        commands=_str_list(payload, "Commands", source),
        **values,
    )


def _optional_str(payload: Mapping[str, Any], key: str, source: str) -> str:
    raw = payload.get(key)
    if raw is None:
        return ""
    if isinstance(raw, (list, dict)):
        raise ManifestError(f"Manifest {source}: {key} must be a string")
    return str(raw)


def _str_list(payload: Mapping[str, Any], key: str, source: str) -> List[str]:
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ManifestError(f"Manifest {source}: {key} must be a list")
    # Dedupe while keeping the author's order.
    return list(dict.fromkeys(str(v) for v in raw if v is not None))
