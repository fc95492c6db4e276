import logging

import pytest

from conftest import OIDS_TEXT
from netstats import cli


@pytest.fixture(autouse=True)
def restore_root_handlers():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def _config(tmp_path, pdu_source="conftest:silent_source"):
    (tmp_path / "oids.txt").write_text(OIDS_TEXT, encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""\
general:
  pdu_source: "{pdu_source}"
mibs:
  system:
    columns: [sysUpTime]
    scalars: true
influx:
  "*":
    database: snmp
snmp:
  system:
    host: 10.0.0.1
""",
        encoding="utf-8",
    )
    return path


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("NETSTATS_CONFIG", raising=False)
    args = cli.parse_args([])
    assert args.config_path == "config.yaml"
    assert args.repeat == 0
    assert args.http_port is None
    assert not args.testing


def test_main_reports_startup_failures(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path / "missing.yaml")])
    assert excinfo.value.code == 1
    assert "Failed to initialize netstats" in capsys.readouterr().err


def test_main_rejects_bad_pdu_source(tmp_path, capsys):
    path = _config(tmp_path, pdu_source="netstats_missing:factory")
    with pytest.raises(SystemExit):
        cli.main(["--config", str(path), "--testing"])
    assert "netstats_missing" in capsys.readouterr().err


def test_names_prints_series_per_target(tmp_path, capsys):
    path = _config(tmp_path)
    cli.main(["--config", str(path), "--testing", "--names", "--logs", str(tmp_path / "log")])

    out = capsys.readouterr().out
    assert "SNMP target: 10.0.0.1/system" in out
    assert "sysUpTime" in out
    assert (tmp_path / "log" / "netstats.log").exists()
    assert (tmp_path / "log" / "error.8080.log").exists()


def test_repeat_runs_and_exits(tmp_path):
    path = _config(tmp_path)
    cli.main(["--config", str(path), "--testing", "--repeat", "1", "--http", "0"])
