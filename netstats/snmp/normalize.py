"""Coerce raw reply values into store field values."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from netstats.tsdb.base import INT64_MAX, FieldValue


@dataclass
class ValueNormalizer:
    """Map raw protocol values onto bool/int/float/str.

    Unsigned 64-bit counters can exceed the store's signed integer range;
    integers above ``max_int`` are written as floats instead. Set
    ``ints_as_float`` to write every integer as a float, which keeps a series'
    field type stable when a device mixes gauge and counter types.
    """

    max_int: int = INT64_MAX
    ints_as_float: bool = False

    def __post_init__(self) -> None:
        if self.max_int <= 0 or self.max_int > INT64_MAX:
            self.max_int = INT64_MAX

    def normalize(self, value: object) -> Optional[FieldValue]:
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        if isinstance(value, str):
            return value
        if isinstance(value, int):
            if self.ints_as_float or value > self.max_int or value < -INT64_MAX - 1:
                return float(value)
            return value
        if isinstance(value, float):
            return value if math.isfinite(value) else None
        # pysnmp-style values expose the number through int()
        try:
            return self.normalize(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return None
