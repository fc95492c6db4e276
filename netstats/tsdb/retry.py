"""Fixed-interval retry policy for batch writes."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

# Returns True when the wait was cut short and retrying should stop.
SleepFn = Callable[[float], bool]

DEFAULT_RETRY_INTERVAL_SECONDS = 30.0


@dataclass
class RetryPolicy:
    """Wait a fixed interval (plus optional jitter) between write attempts.

    Attempts are unbounded: the caller keeps the same batch and retries until
    the write succeeds or the injected sleep reports a shutdown.
    """

    interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS
    jitter_seconds: float = 0.0
    sleep: Optional[SleepFn] = None
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            self.interval_seconds = DEFAULT_RETRY_INTERVAL_SECONDS
        if self.jitter_seconds < 0:
            self.jitter_seconds = 0.0

    def delay(self) -> float:
        if self.jitter_seconds:
            return self.interval_seconds + self.rng.uniform(0.0, self.jitter_seconds)
        return self.interval_seconds

    def wait(self, stop: Optional[threading.Event] = None) -> bool:
        """Sleep one cool-down period; return True if retrying should stop."""

        delay = self.delay()
        if self.sleep is not None:
            return bool(self.sleep(delay))
        if stop is not None:
            return stop.wait(delay)
        time.sleep(delay)
        return False
