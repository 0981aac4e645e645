"""TSDB base abstractions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Protocol, Tuple


class FieldType(str, Enum):
    FLOAT = "float"
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"

    @classmethod
    def parse(cls, text: str) -> "FieldType":
        try:
            return cls(str(text).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown field type: {text!r}") from None


@dataclass(frozen=True)
class TagKey:
    name: str


@dataclass(frozen=True)
class FieldKey:
    name: str
    field_type: FieldType


@dataclass(frozen=True)
class Schema:
    """Tag and field keys of one measurement, fetched once per run."""

    measurement: str
    tag_keys: FrozenSet[str]
    field_types: Dict[str, FieldType]

    @classmethod
    def from_keys(cls, measurement: str, tags: List[TagKey], fields: List[FieldKey]) -> "Schema":
        return cls(
            measurement=measurement,
            tag_keys=frozenset(t.name for t in tags),
            field_types={f.name: f.field_type for f in fields},
        )


@dataclass
class Point:
    """A single timeseries point rebuilt from a query row."""

    name: str
    timestamp_ns: int = 0
    tags: Dict[str, Any] = field(default_factory=dict)
    fields: Dict[str, Tuple[Any, FieldType]] = field(default_factory=dict)


@dataclass
class Series:
    """One series of a query result, as returned by the store."""

    name: str
    columns: List[str]
    values: List[List[Any]]

    def rows(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.values]


@dataclass(frozen=True)
class WriteRequest:
    """A rendered, timestamped write for exactly one point."""

    measurement: str
    timestamp_ns: int
    line: str


class StoreClient(Protocol):
    """Protocol for the measurement store consumed by the migration."""

    async def metadata_query(self, query: str) -> List[Dict[str, Any]]:
        ...

    async def read_query(self, query: str) -> List[Series]:
        ...

    async def write(self, request: WriteRequest) -> None:
        ...
