"""Per-target liveness statistics and the registry the status view reads."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from netstats.errors import ConfigError


@dataclass(frozen=True)
class TargetStats:
    """Point-in-time copy of one poller's counters."""

    get_count: int = 0
    error_count: int = 0
    request_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_poll_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "get_count": self.get_count,
            "error_count": self.error_count,
            "request_count": self.request_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "last_poll_time": self.last_poll_time.isoformat() if self.last_poll_time else None,
        }


class StatsCounter:
    """Mutable TargetStats guarded by a private lock.

    Writers replace the frozen value under the lock; readers copy the current
    reference under the same lock, so a snapshot is always one whole state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = TargetStats()

    def record_request(self, when: datetime) -> None:
        with self._lock:
            self._value = replace(
                self._value, request_count=self._value.request_count + 1, last_poll_time=when
            )

    def record_get(self) -> None:
        with self._lock:
            self._value = replace(self._value, get_count=self._value.get_count + 1)

    def record_error(self, error: BaseException, when: datetime) -> None:
        with self._lock:
            self._value = replace(
                self._value,
                error_count=self._value.error_count + 1,
                last_error=str(error) or type(error).__name__,
                last_error_time=when,
            )

    def snapshot(self) -> TargetStats:
        with self._lock:
            return self._value


StatsAccessor = Callable[[], TargetStats]


class StatsRegistry:
    """Directory of ``<host>/<query>`` to snapshot accessor."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accessors: Dict[str, StatsAccessor] = {}

    def register(self, name: str, accessor: StatsAccessor) -> None:
        with self._lock:
            if name in self._accessors:
                raise ConfigError(f"duplicate stats key: {name}")
            self._accessors[name] = accessor

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._accessors)

    def snapshot(self) -> Dict[str, TargetStats]:
        with self._lock:
            accessors = list(self._accessors.items())
        return {name: accessor() for name, accessor in accessors}

    def __len__(self) -> int:
        with self._lock:
            return len(self._accessors)
