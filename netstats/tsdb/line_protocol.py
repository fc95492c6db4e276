"""InfluxDB line protocol encoding."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from netstats.tsdb.base import FieldValue, Point

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _escape_measurement(val: str) -> str:
    return val.replace(",", "\\,").replace(" ", "\\ ")


def _escape_key(val: str) -> str:
    return val.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _encode_field(value: FieldValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def timestamp_ns(ts: datetime) -> int:
    # integer arithmetic keeps nanosecond values exact for current dates
    delta = ts - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def point_to_line(point: Point) -> str:
    key = _escape_measurement(point.series)
    tags = ",".join(
        f"{_escape_key(k)}={_escape_key(v)}" for k, v in sorted(point.tags.items()) if v != ""
    )
    if tags:
        key = f"{key},{tags}"
    fields = ",".join(f"{_escape_key(k)}={_encode_field(v)}" for k, v in point.fields.items())
    return f"{key} {fields} {timestamp_ns(point.ts)}"


def encode_points(points: Iterable[Point]) -> bytes:
    return "\n".join(point_to_line(p) for p in points).encode("utf-8")
