"""Per-target polling loop: replies to points, with liveness counters."""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Tuple

from netstats.errors import ConfigError, PointError
from netstats.logging_setup import close_debug_logger, open_debug_logger
from netstats.snmp.mib import MibTable
from netstats.snmp.normalize import ValueNormalizer
from netstats.snmp.pdu import DeviceProfile, PduSource, PduValue, QueryDefinition
from netstats.stats import StatsCounter, StatsRegistry, TargetStats
from netstats.tsdb.base import Point
from netstats.tsdb.sender import Sender

_CMD_DEBUG = "debug"
_CMD_STOP = "stop"


class TargetPoller:
    """Poll one device for one query definition and feed a sender.

    A failed cycle is counted and logged; the loop carries on at the next
    tick. Debug toggles arrive on a command queue and are applied by the
    polling thread itself.
    """

    def __init__(
        self,
        profile: DeviceProfile,
        query: QueryDefinition,
        source: PduSource,
        sender: Sender,
        mib: MibTable,
        normalizer: Optional[ValueNormalizer] = None,
        static_tags: Optional[Mapping[str, str]] = None,
        log_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if profile.freq_seconds <= 0:
            raise ConfigError(
                f"polling frequency for {profile.host}/{query.name} must be positive, got {profile.freq_seconds}"
            )
        self.profile = profile
        self.query = query
        self.sender = sender
        self.key = f"{profile.host}/{query.name}"
        self.logger = logger or logging.getLogger(__name__)
        self._source = source
        self._mib = mib
        self._normalizer = normalizer or ValueNormalizer()
        self._static_tags: Dict[str, str] = dict(static_tags or {})
        self._log_dir = log_dir
        self._clock = clock
        self._index_pattern = query.index_pattern()
        self._counter = StatsCounter()
        self._commands: "queue.Queue[Tuple[str, object]]" = queue.Queue()
        self._debug_logger: Optional[logging.Logger] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Stats
    def stats(self) -> TargetStats:
        return self._counter.snapshot()

    def register(self, registry: StatsRegistry) -> None:
        registry.register(self.key, self.stats)

    # Control
    @property
    def debug_enabled(self) -> bool:
        return self._debug_logger is not None

    def set_debug(self, enabled: bool) -> None:
        """Queue a debug toggle; applied by the polling loop."""

        self._commands.put((_CMD_DEBUG, bool(enabled)))

    def _apply_command(self, command: str, arg: object) -> bool:
        if command == _CMD_STOP:
            return False
        if command == _CMD_DEBUG:
            if arg and self._debug_logger is None:
                if self._log_dir is not None:
                    self._debug_logger = open_debug_logger(self._log_dir, self.profile.host, self.key)
                else:
                    self._debug_logger = self.logger
                self.logger.info("SNMP debugging enabled for %s", self.key)
            elif not arg and self._debug_logger is not None:
                if self._log_dir is not None:
                    close_debug_logger(self._debug_logger)
                self._debug_logger = None
                self.logger.info("SNMP debugging disabled for %s", self.key)
        return True

    def _drain_commands(self) -> bool:
        while True:
            try:
                command, arg = self._commands.get_nowait()
            except queue.Empty:
                return True
            if not self._apply_command(command, arg):
                return False

    # Naming
    def series_name(self, oid: str) -> Optional[str]:
        """Return the series for a reply, or None when it is not of interest."""

        base, _, index = oid.lstrip(".").rpartition(".")
        if not base:
            base, index = index, ""
        name = self._mib.name_for(base) or base
        if name not in self.query.columns:
            return None
        if self._index_pattern is not None and index and not self._index_pattern.search(index):
            return None
        if self.query.scalars:
            column = ""
        elif self.query.aliases:
            column = self.query.aliases.get(index)
            if column is None:
                return None
        elif index in ("", "0"):
            column = ""
        else:
            column = index
        series = f"{self.query.prefix}{name}"
        return f"{series}.{column}" if column else series

    def _to_point(self, pdu: PduValue) -> Optional[Point]:
        series = self.series_name(pdu.name)
        if series is None:
            return None
        value = self._normalizer.normalize(pdu.value)
        if value is None:
            self.logger.debug("%s: dropping %s (unsupported value %r)", self.key, pdu.name, pdu.value)
            return None
        fields: Dict[str, object] = {"value": value}
        if self.query.elapsed:
            fields["elapsed_ms"] = (pdu.received_at - pdu.sent_at).total_seconds() * 1000.0
        tags = dict(self._static_tags)
        tags.update(pdu.tags)
        # identity tags win over configured and reply tags
        tags["host"] = self.profile.host
        tags["query"] = self.query.name
        try:
            return Point.create(series, tags, fields, pdu.received_at)
        except PointError as exc:
            self.logger.warning("%s: dropping %s: %s", self.key, pdu.name, exc)
            return None

    # Polling
    def poll_once(self) -> int:
        """Run one cycle; return the number of points handed to the sender."""

        self._drain_commands()
        self._counter.record_request(datetime.now(timezone.utc))
        submitted = 0
        try:
            for pdu in self._source.fetch(self.profile, self.query):
                if self._debug_logger is not None:
                    self._debug_logger.info("%s %s = %r", self.key, pdu.name, pdu.value)
                point = self._to_point(pdu)
                if point is None:
                    continue
                self.sender.submit_point(point)
                submitted += 1
        except Exception as exc:  # pylint: disable=broad-except
            self._counter.record_error(exc, datetime.now(timezone.utc))
            self.logger.warning("SNMP (%s) get error: %s", self.key, exc)
            return submitted
        self._counter.record_get()
        return submitted

    def _wait_until(self, deadline: float) -> bool:
        while True:
            timeout = deadline - self._clock()
            if timeout <= 0:
                return True
            try:
                command, arg = self._commands.get(timeout=timeout)
            except queue.Empty:
                continue
            if not self._apply_command(command, arg):
                return False

    def run(self, count: int = 0) -> None:
        """Poll every ``freq_seconds``; forever when count is 0, else count cycles."""

        freq = self.profile.freq_seconds
        remaining = count
        next_tick = self._clock()
        self.logger.info("Polling %s every %ss (%d oids)", self.key, freq, len(self.query.oids))
        while not self._stop.is_set():
            self.poll_once()
            if remaining > 0:
                remaining -= 1
                if remaining == 0:
                    break
            if self._stop.is_set():
                break
            next_tick += freq
            now = self._clock()
            if next_tick < now:
                # skip ticks missed by a slow cycle
                next_tick = now + freq - ((now - next_tick) % freq)
            if not self._wait_until(next_tick):
                break
        if self._debug_logger is not None and self._log_dir is not None:
            close_debug_logger(self._debug_logger)
            self._debug_logger = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, count: int = 0) -> None:
        if self._thread:
            return
        self._thread = threading.Thread(
            target=self.run, args=(count,), name=f"poller-{self.key}", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._commands.put((_CMD_STOP, None))
        self.join(timeout=timeout)
