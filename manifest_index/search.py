"""Search request/result types shared by the facade and the backends."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple


class MatchType(Enum):
    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    STARTS_WITH = "starts_with"
    SUBSTRING = "substring"


class PackageMatchField(Enum):
    ID = "id"
    NAME = "name"
    MONIKER = "moniker"
    TAG = "tag"
    COMMAND = "command"


@dataclass(frozen=True)
class RequestMatch:
    value: str
    type: MatchType = MatchType.SUBSTRING


@dataclass(frozen=True)
class PackageMatchFilter:
    field: PackageMatchField
    type: MatchType
    value: str

    @classmethod
    def of(cls, field: PackageMatchField, match: RequestMatch) -> "PackageMatchFilter":
        return cls(field, match.type, match.value)


@dataclass
class SearchRequest:
    """What to look for.

    ``query`` is tried against every field; each of ``inclusions`` adds its
    own matches. With neither, every package is a candidate. Every entry in
    ``filters`` must also match. ``maximum_results`` of 0 means unlimited.
    """
    query: Optional[RequestMatch] = None
    inclusions: List[PackageMatchFilter] = field(default_factory=list)
    filters: List[PackageMatchFilter] = field(default_factory=list)
    maximum_results: int = 0

    def is_for_everything(self) -> bool:
        """True when every package is a candidate before ``filters`` apply."""
        return self.query is None and not self.inclusions

    def __str__(self) -> str:
        parts = []
        if self.query is not None:
            parts.append(f"query={self.query.type.value}:{self.query.value!r}")
        for inc in self.inclusions:
            parts.append(f"include[{inc.field.value}]={inc.type.value}:{inc.value!r}")
        for flt in self.filters:
            parts.append(f"filter[{flt.field.value}]={flt.type.value}:{flt.value!r}")
        if self.maximum_results:
            parts.append(f"max={self.maximum_results}")
        return " ".join(parts) or "<everything>"


@dataclass
class SearchResult:
    matches: List[Tuple[int, Optional[PackageMatchFilter]]] = field(default_factory=list)
    truncated: bool = False


class VersionAndChannel(NamedTuple):
    version: str
    channel: str
