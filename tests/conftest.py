import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import pytest

from netstats.config import GeneralConfig, HttpConfig, MibConfig, NetstatsConfig, TargetConfig
from netstats.logging_setup import close_debug_logger
from netstats.snmp.mib import MibTable
from netstats.snmp.pdu import PduValue
from netstats.tsdb.base import Batch, Point
from netstats.tsdb.sender import SenderConfig

IF_IN = "1.3.6.1.2.1.31.1.1.1.6"
IF_OUT = "1.3.6.1.2.1.31.1.1.1.10"
SYS_UPTIME = "1.3.6.1.2.1.1.3"

OIDS_TEXT = """\
# name  oid
ifHCInOctets   .1.3.6.1.2.1.31.1.1.1.6
ifHCOutOctets  .1.3.6.1.2.1.31.1.1.1.10
sysUpTime      .1.3.6.1.2.1.1.3
"""


class FakeStore:
    def __init__(self, fail_times: int = 0, always_fail: bool = False, databases=("snmp",), ping_error=None):
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.databases = set(databases)
        self.ping_error = ping_error
        self.ping_timeout: Optional[float] = None
        self.attempts: List[List[Point]] = []
        self.batches: List[List[Point]] = []
        self.written = threading.Event()
        self._lock = threading.Lock()

    def ping(self, timeout: float) -> None:
        self.ping_timeout = timeout
        if self.ping_error:
            raise self.ping_error

    def database_exists(self, database: str) -> bool:
        return database in self.databases

    def write_batch(self, batch: Batch) -> None:
        with self._lock:
            self.attempts.append(list(batch.points))
            if self.always_fail or self.fail_times > 0:
                self.fail_times -= 1
                raise ConnectionError("store unavailable")
            self.batches.append(list(batch.points))
        self.written.set()

    @property
    def delivered(self) -> List[Point]:
        with self._lock:
            return [p for batch in self.batches for p in batch]


class CapturingSender:
    def __init__(self, name: str = "*"):
        self.config = SenderConfig(name=name, database="snmp")
        self.points: List[Point] = []

    def submit_point(self, point: Point) -> None:
        self.points.append(point)


class FakeSource:
    """Replays scripted poll cycles: each entry is a list of replies or an exception."""

    def __init__(self, cycles: Iterable[object]):
        self.cycles = list(cycles)
        self.calls = 0

    def fetch(self, profile, query):
        index = min(self.calls, len(self.cycles) - 1)
        self.calls += 1
        cycle = self.cycles[index]
        if isinstance(cycle, Exception):
            raise cycle
        return iter(cycle)


def pdu(name: str, value: object, elapsed_ms: float = 0.0, tags=None) -> PduValue:
    sent = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    return PduValue(
        name=name,
        value=value,
        sent_at=sent,
        received_at=sent + timedelta(milliseconds=elapsed_ms),
        tags=dict(tags or {}),
    )


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def mib_table() -> MibTable:
    return MibTable([("ifHCInOctets", IF_IN), ("ifHCOutOctets", IF_OUT), ("sysUpTime", SYS_UPTIME)])


def collector_config(log_dir: Path) -> NetstatsConfig:
    """Two hosts, two queries, one wildcard sender."""

    return NetstatsConfig(
        general=GeneralConfig(log_dir=log_dir, oid_file=log_dir / "oids.txt"),
        http=HttpConfig(port=0),
        mibs={
            "ifstats": MibConfig(name="ifstats", columns=["ifHCInOctets", "ifHCOutOctets"]),
            "system": MibConfig(name="system", columns=["sysUpTime"], scalars=True),
        },
        influx={"*": SenderConfig(name="*", database="snmp", flush_interval_seconds=0.05)},
        snmp={
            "core": TargetConfig(
                name="core",
                hosts=["10.0.0.1", "10.0.0.2"],
                freq=60.0,
                queries=["ifstats", "system"],
                tags={"site": "lon"},
            )
        },
    )


def silent_source() -> FakeSource:
    """``module:callable`` target for command line tests."""

    return FakeSource([[]])


@pytest.fixture(autouse=True)
def close_debug_loggers():
    yield
    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("netstats.debug.") and isinstance(logger, logging.Logger):
            close_debug_logger(logger)
