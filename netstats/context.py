"""Explicit wiring of senders, pollers and the stats registry."""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from netstats.config import NetstatsConfig, build_query, mibs_for, sender_name_for
from netstats.errors import ConfigError
from netstats.snmp.mib import MibTable
from netstats.snmp.normalize import ValueNormalizer
from netstats.snmp.pdu import PduSource
from netstats.snmp.poller import TargetPoller
from netstats.stats import StatsRegistry, TargetStats
from netstats.tsdb.base import TimeseriesStore
from netstats.tsdb.influx import InfluxHttpStore
from netstats.tsdb.noop import LoggingTimeseriesStore
from netstats.tsdb.sender import Sender, SenderConfig

StoreFactory = Callable[[SenderConfig], TimeseriesStore]


def influx_store_factory(config: SenderConfig) -> TimeseriesStore:
    return InfluxHttpStore(
        config.url,
        username=config.username,
        password=config.password,
        consistency=config.consistency,
        timeout=max(config.timeout_seconds, 10.0),
    )


def logging_store_factory(config: SenderConfig) -> TimeseriesStore:  # noqa: ARG001
    return LoggingTimeseriesStore()


def load_pdu_source(spec: str) -> PduSource:
    """Instantiate a PDU source from ``module:callable``."""

    if not spec or ":" not in spec:
        raise ConfigError(f"general.pdu_source must look like 'module:callable', got {spec!r}")
    module_name, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import PDU source module {module_name!r}: {exc}") from exc
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigError(f"PDU source {spec!r} is not callable")
    return factory()


@dataclass
class CollectorContext:
    """Everything the running collector shares, passed explicitly."""

    config: NetstatsConfig
    registry: StatsRegistry
    senders: Dict[str, Sender]
    pollers: Dict[str, TargetPoller]
    started: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def start(self, count: int = 0) -> None:
        for sender in self.senders.values():
            sender.start()
        for poller in self.pollers.values():
            poller.start(count)

    def wait(self, timeout: Optional[float] = None) -> None:
        for poller in self.pollers.values():
            poller.join(timeout=timeout)

    def stop(self, flush: bool = True) -> None:
        for poller in self.pollers.values():
            poller.stop()
        for sender in self.senders.values():
            sender.stop(flush=flush)

    def set_debug(self, key: str, enabled: bool) -> None:
        try:
            poller = self.pollers[key]
        except KeyError:
            raise KeyError(f"unknown target: {key}") from None
        poller.set_debug(enabled)

    def sender_for(self, key: str) -> Sender:
        return self.pollers[key].sender

    def snapshot(self) -> Dict[str, TargetStats]:
        return self.registry.snapshot()

    def series_names(self) -> Dict[str, List[str]]:
        names: Dict[str, List[str]] = {}
        for key, poller in self.pollers.items():
            names[key] = [poller.series_name(oid) or oid for oid in poller.query.oids]
        return names


def build_context(
    config: NetstatsConfig,
    source: PduSource,
    store_factory: StoreFactory = influx_store_factory,
    mib: Optional[MibTable] = None,
    logger: Optional[logging.Logger] = None,
) -> CollectorContext:
    """Connect every referenced sender and build one poller per host and query.

    Sender construction failures (store unreachable, missing database) and
    configuration errors propagate; nothing is started here.
    """

    logger = logger or logging.getLogger(__name__)
    table = mib if mib is not None else MibTable.from_file(config.general.oid_file)
    registry = StatsRegistry()
    senders: Dict[str, Sender] = {}
    pollers: Dict[str, TargetPoller] = {}

    for target in config.snmp.values():
        sender_name = sender_name_for(config, target)
        if sender_name not in senders:
            sender_config = config.influx[sender_name]
            senders[sender_name] = Sender(sender_config, store_factory(sender_config))
        sender = senders[sender_name]
        normalizer = ValueNormalizer(max_int=target.max_int, ints_as_float=target.ints_as_float)
        for mib_config in mibs_for(config, target):
            query = build_query(mib_config, table, target.aliases)
            for host in target.hosts:
                poller = TargetPoller(
                    target.profile(host),
                    query,
                    source,
                    sender,
                    table,
                    normalizer=normalizer,
                    static_tags=target.tags,
                    log_dir=config.general.log_dir,
                )
                poller.register(registry)
                pollers[poller.key] = poller
                logger.debug("Configured %s -> %s", poller.key, sender_name)

    return CollectorContext(config=config, registry=registry, senders=senders, pollers=pollers, logger=logger)
