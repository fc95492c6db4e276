"""Background point sender with batching and retry-until-success writes."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from netstats.errors import SenderError
from netstats.tsdb.base import Batch, Point, TimeseriesStore
from netstats.tsdb.retry import DEFAULT_RETRY_INTERVAL_SECONDS, RetryPolicy

DEFAULT_BATCH_SIZE = 4096
DEFAULT_QUEUE_SIZE = 65535
DEFAULT_FLUSH_INTERVAL_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 5.0

ErrorCallback = Callable[[Exception, Batch], None]

_STOP = object()
_FLUSH = object()


@dataclass
class SenderConfig:
    """Connection and batching settings for one store connection."""

    name: str = "*"
    url: str = "http://localhost:8086"
    username: str = ""
    password: str = field(default="", repr=False)
    database: str = ""
    retention_policy: str = ""
    consistency: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE
    queue_size: int = DEFAULT_QUEUE_SIZE
    flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            self.batch_size = DEFAULT_BATCH_SIZE
        if self.queue_size <= 0:
            self.queue_size = DEFAULT_QUEUE_SIZE
        if self.flush_interval_seconds <= 0:
            self.flush_interval_seconds = DEFAULT_FLUSH_INTERVAL_SECONDS
        if self.timeout_seconds <= 0:
            self.timeout_seconds = DEFAULT_TIMEOUT_SECONDS
        if self.retry_interval_seconds <= 0:
            self.retry_interval_seconds = DEFAULT_RETRY_INTERVAL_SECONDS


@dataclass
class SenderStats:
    sent_batches: int = 0
    sent_points: int = 0
    write_errors: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    queue_depth: int = 0
    pending: int = 0

    def to_dict(self) -> dict:
        return {
            "sent_batches": self.sent_batches,
            "sent_points": self.sent_points,
            "write_errors": self.write_errors,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "queue_depth": self.queue_depth,
            "pending": self.pending,
        }


class Sender:
    """Queue points from many producers and write them in batches.

    Producers call :meth:`submit`; a single background thread drains the
    bounded queue into the current :class:`Batch` and writes it when it holds
    ``batch_size`` points or when the flush interval ticks with a non-empty
    batch. A failed write is retried with the same batch until it succeeds,
    so accepted points are never dropped while the process runs. A full queue
    blocks producers.
    """

    def __init__(
        self,
        config: SenderConfig,
        store: TimeseriesStore,
        on_error: Optional[ErrorCallback] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self._on_error = on_error or self._log_write_error
        self._retry = retry_policy or RetryPolicy(interval_seconds=config.retry_interval_seconds)
        self._clock = clock
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=config.queue_size)
        self._stop = threading.Event()
        self._final_flush = False
        self._thread: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()
        self._stats = SenderStats()
        self._batch = self._new_batch()
        self._connect()

    def _connect(self) -> None:
        url = self.config.url
        self.logger.info("Connecting to %s", url)
        try:
            self.store.ping(self.config.timeout_seconds)
        except Exception as exc:  # pylint: disable=broad-except
            raise SenderError(f"failed connecting to {url}: {exc}") from exc
        try:
            exists = self.store.database_exists(self.config.database)
        except Exception as exc:  # pylint: disable=broad-except
            raise SenderError(f"failed listing databases on {url}: {exc}") from exc
        if not exists:
            raise SenderError(f"database {self.config.database!r} does not exist on {url}")
        self.logger.info("Connected to %s (database %s)", url, self.config.database)

    def _new_batch(self) -> Batch:
        return Batch(database=self.config.database, retention_policy=self.config.retention_policy)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread:
            return
        self._thread = threading.Thread(target=self._run, name=f"sender-{self.config.name}", daemon=True)
        self._thread.start()

    def stop(self, flush: bool = True, timeout: Optional[float] = None) -> None:
        """Stop the flush thread; optionally write whatever is still pending once.

        The final write runs on the flush thread after it leaves its loop, so
        it never overlaps a write already in flight. If ``timeout`` expires
        first, the pending points stay with that thread.
        """

        self._final_flush = flush
        self._stop.set()
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # a full queue wakes the thread at once; it then sees the stop flag
            pass
        if self._thread is None:
            if flush:
                self._drain_and_write()
            return
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            self.logger.warning(
                "Sender %s still writing after %ss; leaving %d pending points to its thread",
                self.config.name,
                timeout,
                len(self._batch),
            )

    def submit(
        self,
        series: str,
        tags: Optional[Mapping[str, str]],
        fields: Mapping[str, object],
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Build a point and queue it; raises PointError for malformed input."""

        self.submit_point(Point.create(series, tags, fields, timestamp))

    def submit_point(self, point: Point) -> None:
        if self._stop.is_set():
            raise SenderError(f"sender {self.config.name!r} is stopped")
        # blocks while the queue is full
        self._queue.put(point)

    def request_flush(self) -> None:
        """Ask the flush thread to write the current batch once it reaches this request."""

        self._queue.put(_FLUSH)

    def stats(self) -> SenderStats:
        with self._stats_lock:
            snapshot = SenderStats(**vars(self._stats))
        snapshot.queue_depth = self._queue.qsize()
        snapshot.pending = len(self._batch)
        return snapshot

    def _log_write_error(self, exc: Exception, batch: Batch) -> None:
        self.logger.warning(
            "influxdb write error (%s, %d points): %s; retrying in %.0fs",
            self.config.url,
            len(batch),
            exc,
            self._retry.interval_seconds,
        )

    def _advance_tick(self, next_tick: float) -> float:
        interval = self.config.flush_interval_seconds
        now = self._clock()
        while next_tick <= now:
            next_tick += interval
        return next_tick

    def _run(self) -> None:
        next_tick = self._clock() + self.config.flush_interval_seconds
        while not self._stop.is_set():
            timeout = next_tick - self._clock()
            if timeout <= 0:
                next_tick = self._advance_tick(next_tick)
                if not self._batch.is_empty():
                    self._flush()
                continue
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                continue
            if item is _STOP:
                break
            if item is _FLUSH:
                if not self._batch.is_empty():
                    self._flush()
                continue
            self._batch.append(item)  # type: ignore[arg-type]
            if len(self._batch) >= self.config.batch_size:
                self._flush()
        if self._final_flush:
            self._drain_and_write()

    def _flush(self) -> bool:
        batch = self._batch
        while True:
            try:
                self.store.write_batch(batch)
                break
            except Exception as exc:  # pylint: disable=broad-except
                self._record_error(exc)
                try:
                    self._on_error(exc, batch)
                except Exception:  # pylint: disable=broad-except
                    self.logger.exception("Sender error callback failed")
                if self._retry.wait(self._stop):
                    self.logger.warning(
                        "Sender %s stopping with %d unsent points", self.config.name, len(batch)
                    )
                    return False
        with self._stats_lock:
            self._stats.sent_batches += 1
            self._stats.sent_points += len(batch)
        self._batch = self._new_batch()
        return True

    def _record_error(self, exc: Exception) -> None:
        with self._stats_lock:
            self._stats.write_errors += 1
            self._stats.last_error = str(exc)
            self._stats.last_error_time = datetime.now(timezone.utc)

    def _drain_and_write(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP and item is not _FLUSH:
                self._batch.append(item)  # type: ignore[arg-type]
        batch = self._batch
        if batch.is_empty():
            return
        try:
            self.store.write_batch(batch)
        except Exception as exc:  # pylint: disable=broad-except
            self._record_error(exc)
            self.logger.warning("Final flush failed, %d points not written: %s", len(batch), exc)
            return
        with self._stats_lock:
            self._stats.sent_batches += 1
            self._stats.sent_points += len(batch)
        self._batch = self._new_batch()
