from pathlib import Path

import pytest

from conftest import IF_IN, IF_OUT, SYS_UPTIME, CapturingSender, FakeSource, pdu, wait_for
from netstats.errors import ConfigError, PduError
from netstats.snmp.normalize import ValueNormalizer
from netstats.snmp.pdu import DeviceProfile, QueryDefinition
from netstats.snmp.poller import TargetPoller
from netstats.stats import StatsRegistry


def _query(**overrides) -> QueryDefinition:
    values = {
        "name": "ifstats",
        "oids": [f"{IF_IN}.1", f"{IF_IN}.2"],
        "columns": frozenset({"ifHCInOctets"}),
    }
    values.update(overrides)
    return QueryDefinition(**values)


def _poller(mib_table, source, query=None, sender=None, **kwargs) -> TargetPoller:
    profile = kwargs.pop("profile", DeviceProfile(host="10.0.0.1", freq_seconds=0.01))
    return TargetPoller(profile, query or _query(), source, sender or CapturingSender(), mib_table, **kwargs)


def test_non_positive_frequency_is_rejected(mib_table):
    for freq in (0, -5):
        with pytest.raises(ConfigError):
            _poller(mib_table, FakeSource([[]]), profile=DeviceProfile(host="r1", freq_seconds=freq))


def test_series_names_use_mib_names_and_aliases(mib_table):
    poller = _poller(mib_table, FakeSource([[]]), query=_query(aliases={"1": "uplink"}))
    assert poller.series_name(f".{IF_IN}.1") == "ifHCInOctets.uplink"
    assert poller.series_name(f"{IF_IN}.2") is None
    assert poller.series_name(f"{IF_OUT}.1") is None


def test_series_names_without_aliases(mib_table):
    table = _poller(mib_table, FakeSource([[]]), query=_query(prefix="net_"))
    assert table.series_name(f"{IF_IN}.7") == "net_ifHCInOctets.7"
    scalar = _poller(
        mib_table,
        FakeSource([[]]),
        query=_query(columns=frozenset({"sysUpTime"}), scalars=True, oids=[f"{SYS_UPTIME}.0"]),
    )
    assert scalar.series_name(f"{SYS_UPTIME}.0") == "sysUpTime"


def test_index_regexp_filters_indexes(mib_table):
    poller = _poller(mib_table, FakeSource([[]]), query=_query(index_regexp=r"^1\d$"))
    assert poller.series_name(f"{IF_IN}.12") == "ifHCInOctets.12"
    assert poller.series_name(f"{IF_IN}.2") is None


def test_poll_once_emits_tagged_points(mib_table):
    sender = CapturingSender()
    source = FakeSource(
        [[pdu(f"{IF_IN}.1", 100), pdu(f"{IF_IN}.2", b"up"), pdu(f"{IF_OUT}.1", 5), pdu(f"{IF_IN}.3", None)]]
    )
    poller = _poller(mib_table, source, sender=sender, static_tags={"site": "hq"})
    assert poller.poll_once() == 2
    first, second = sender.points
    assert first.series == "ifHCInOctets.1"
    assert dict(first.tags) == {"host": "10.0.0.1", "query": "ifstats", "site": "hq"}
    assert dict(first.fields) == {"value": 100}
    assert second.fields["value"] == "up"
    stats = poller.stats()
    assert (stats.get_count, stats.error_count, stats.request_count) == (1, 0, 1)


def test_elapsed_field_from_request_timestamps(mib_table):
    sender = CapturingSender()
    source = FakeSource([[pdu(f"{IF_IN}.1", 1, elapsed_ms=250)]])
    poller = _poller(mib_table, source, query=_query(elapsed=True), sender=sender)
    poller.poll_once()
    assert sender.points[0].fields["elapsed_ms"] == pytest.approx(250.0)


def test_large_counters_are_coerced_to_float(mib_table):
    sender = CapturingSender()
    source = FakeSource([[pdu(f"{IF_IN}.1", 2**64 - 1), pdu(f"{IF_IN}.2", 1000)]])
    poller = _poller(mib_table, source, sender=sender, normalizer=ValueNormalizer(max_int=500))
    poller.poll_once()
    assert sender.points[0].fields["value"] == float(2**64 - 1)
    assert sender.points[1].fields["value"] == 1000.0
    assert isinstance(sender.points[1].fields["value"], float)


def test_failed_cycle_is_counted_and_polling_continues(mib_table):
    sender = CapturingSender()
    source = FakeSource([PduError("request timeout"), [pdu(f"{IF_IN}.1", 1)]])
    poller = _poller(mib_table, source, sender=sender)
    poller.run(count=2)
    stats = poller.stats()
    assert stats.request_count == 2
    assert stats.error_count == 1
    assert stats.get_count == 1
    assert stats.last_error == "request timeout"
    assert stats.last_error_time is not None
    assert len(sender.points) == 1


def test_register_adds_one_accessor(mib_table):
    registry = StatsRegistry()
    poller = _poller(mib_table, FakeSource([[pdu(f"{IF_IN}.1", 1)]]))
    poller.register(registry)
    assert registry.names() == ["10.0.0.1/ifstats"]
    poller.poll_once()
    assert registry.snapshot()["10.0.0.1/ifstats"].get_count == 1
    with pytest.raises(ConfigError):
        poller.register(registry)


def test_debug_toggle_writes_replies_to_debug_log(mib_table, tmp_path: Path):
    source = FakeSource([[pdu(f"{IF_IN}.1", 42)]])
    poller = _poller(mib_table, source, log_dir=tmp_path)
    poller.set_debug(True)
    assert poller.debug_enabled is False
    poller.poll_once()
    assert poller.debug_enabled is True
    log_file = tmp_path / "debug_10-0-0-1.log"
    assert "= 42" in log_file.read_text(encoding="utf-8")
    poller.set_debug(False)
    poller.poll_once()
    assert poller.debug_enabled is False


def test_start_and_stop_background_loop(mib_table):
    source = FakeSource([[pdu(f"{IF_IN}.1", 1)]])
    poller = _poller(mib_table, source, profile=DeviceProfile(host="r1", freq_seconds=30))
    poller.start()
    assert wait_for(lambda: poller.stats().request_count == 1)
    poller.stop(timeout=2)
    assert not poller.running
    assert source.calls == 1
    assert poller.stats().request_count == 1


def test_debug_loggers_are_per_query_on_a_shared_host(mib_table, tmp_path: Path):
    host = DeviceProfile(host="10.0.0.9", freq_seconds=30)
    source = FakeSource([[pdu(f"{IF_IN}.1", 7), pdu(f"{SYS_UPTIME}.0", 1234)]])
    ifstats = _poller(mib_table, source, profile=host, log_dir=tmp_path)
    system = _poller(
        mib_table,
        source,
        query=_query(name="system", columns=frozenset({"sysUpTime"}), scalars=True, oids=[f"{SYS_UPTIME}.0"]),
        profile=host,
        log_dir=tmp_path,
    )
    ifstats.set_debug(True)
    system.set_debug(True)
    ifstats.poll_once()
    system.poll_once()

    ifstats.set_debug(False)
    ifstats.poll_once()
    assert ifstats.debug_enabled is False
    assert system.debug_enabled is True

    source.cycles = [[pdu(f"{SYS_UPTIME}.0", 5678)]]
    system.poll_once()
    text = (tmp_path / "debug_10-0-0-9.log").read_text(encoding="utf-8")
    assert "10.0.0.9/ifstats" in text
    assert "10.0.0.9/system" in text
    assert "= 5678" in text


def test_debug_log_follows_the_poller_log_dir(mib_table, tmp_path: Path):
    for sub in ("first", "second"):
        poller = _poller(mib_table, FakeSource([[pdu(f"{IF_IN}.1", 42)]]), log_dir=tmp_path / sub)
        poller.set_debug(True)
        poller.poll_once()
        assert "= 42" in (tmp_path / sub / "debug_10-0-0-1.log").read_text(encoding="utf-8")


def test_scalar_query_ignores_port_aliases(mib_table):
    sender = CapturingSender()
    query = _query(
        name="system",
        columns=frozenset({"sysUpTime"}),
        scalars=True,
        oids=[f"{SYS_UPTIME}.0"],
        aliases={"1": "uplink"},
    )
    poller = _poller(mib_table, FakeSource([[pdu(f"{SYS_UPTIME}.0", 99)]]), query=query, sender=sender)
    assert poller.poll_once() == 1
    assert sender.points[0].series == "sysUpTime"


def test_identity_tags_override_configured_and_reply_tags(mib_table):
    sender = CapturingSender()
    source = FakeSource([[pdu(f"{IF_IN}.1", 1, tags={"query": "other", "ifName": "eth0"})]])
    poller = _poller(mib_table, source, sender=sender, static_tags={"host": "alias", "site": "hq"})
    poller.poll_once()
    assert dict(sender.points[0].tags) == {
        "host": "10.0.0.1",
        "query": "ifstats",
        "site": "hq",
        "ifName": "eth0",
    }
