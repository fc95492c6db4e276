"""TSDB base abstractions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Protocol, Union

from netstats.errors import PointError

FieldValue = Union[bool, int, float, str]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _check_field(key: str, value: object) -> FieldValue:
    if not isinstance(key, str) or not key:
        raise PointError(f"invalid field key: {key!r}")
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, int):
        if value < INT64_MIN or value > INT64_MAX:
            raise PointError(f"field {key!r}: integer {value} outside signed 64-bit range")
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise PointError(f"field {key!r}: non-finite float {value}")
        return value
    raise PointError(f"field {key!r}: unsupported type {type(value).__name__}")


def _check_tags(tags: Mapping[str, str]) -> Dict[str, str]:
    checked: Dict[str, str] = {}
    for key, value in tags.items():
        if not isinstance(key, str) or not key:
            raise PointError(f"invalid tag key: {key!r}")
        if not isinstance(value, str):
            raise PointError(f"tag {key!r}: value must be a string, got {type(value).__name__}")
        checked[key] = value
    return checked


def _as_utc(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return datetime.now(timezone.utc)
    if not isinstance(ts, datetime):
        raise PointError(f"timestamp must be a datetime, got {type(ts).__name__}")
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class Point:
    """A single immutable timeseries sample.

    Build points with :meth:`create`; it validates tags and fields against the
    store's wire format and freezes both mappings.
    """

    series: str
    tags: Mapping[str, str]
    fields: Mapping[str, FieldValue]
    ts: datetime

    @classmethod
    def create(
        cls,
        series: str,
        tags: Optional[Mapping[str, str]],
        fields: Mapping[str, object],
        timestamp: Optional[datetime] = None,
    ) -> "Point":
        if not isinstance(series, str) or not series:
            raise PointError(f"invalid series name: {series!r}")
        if not fields:
            raise PointError(f"point {series!r} has no fields")
        checked_fields = {key: _check_field(key, value) for key, value in fields.items()}
        checked_tags = _check_tags(tags or {})
        return cls(
            series=series,
            tags=MappingProxyType(checked_tags),
            fields=MappingProxyType(checked_fields),
            ts=_as_utc(timestamp),
        )


@dataclass
class Batch:
    """Points accumulated for one write to one database."""

    database: str
    retention_policy: str = ""
    points: List[Point] = field(default_factory=list)

    def append(self, point: Point) -> None:
        self.points.append(point)

    def is_empty(self) -> bool:
        return not self.points

    def __len__(self) -> int:
        return len(self.points)


class TimeseriesStore(Protocol):
    """Protocol for TSDB backends."""

    def ping(self, timeout: float) -> None:
        ...

    def database_exists(self, database: str) -> bool:
        ...

    def write_batch(self, batch: Batch) -> None:
        ...
