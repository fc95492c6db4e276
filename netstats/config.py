"""Configuration loading for netstats."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from netstats.errors import ConfigError
from netstats.snmp.mib import MibTable
from netstats.snmp.pdu import DeviceProfile, QueryDefinition
from netstats.tsdb.base import INT64_MAX
from netstats.tsdb.sender import SenderConfig

WILDCARD = "*"
DEFAULT_FREQ_SECONDS = 30.0
DEFAULT_HTTP_PORT = 8080


@dataclass
class GeneralConfig:
    """Process-wide settings."""

    log_dir: Path
    oid_file: Path
    freq: float = DEFAULT_FREQ_SECONDS
    pdu_source: str = ""


@dataclass
class HttpConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_HTTP_PORT


@dataclass
class MibConfig:
    """Query definition before OID resolution."""

    name: str
    columns: List[str]
    scalars: bool = False
    index_regexp: Optional[str] = None
    elapsed: bool = False
    prefix: str = ""


@dataclass
class TargetConfig:
    """One ``snmp`` section: device(s), credentials and what to query."""

    name: str
    hosts: List[str]
    community: str = "public"
    port: int = 161
    version: str = "2c"
    retries: int = 1
    timeout: float = 5.0
    freq: Optional[float] = None
    sender: str = ""
    queries: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    ints_as_float: bool = False
    max_int: int = INT64_MAX
    username: str = ""
    auth_protocol: str = ""
    auth_password: str = field(default="", repr=False)
    priv_protocol: str = ""
    priv_password: str = field(default="", repr=False)

    def profile(self, host: str) -> DeviceProfile:
        return DeviceProfile(
            host=host,
            port=self.port,
            community=self.community,
            version=self.version,
            retries=self.retries,
            timeout_seconds=self.timeout,
            freq_seconds=float(self.freq if self.freq is not None else DEFAULT_FREQ_SECONDS),
            username=self.username,
            auth_protocol=self.auth_protocol,
            auth_password=self.auth_password,
            priv_protocol=self.priv_protocol,
            priv_password=self.priv_password,
        )


@dataclass
class NetstatsConfig:
    general: GeneralConfig
    http: HttpConfig
    mibs: Dict[str, MibConfig]
    influx: Dict[str, SenderConfig]
    snmp: Dict[str, TargetConfig]
    source_path: Optional[Path] = None


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return data


def _resolve_path(value: Optional[str | Path], base: Path, default: Path) -> Path:
    if value is None or value == "":
        path = default
    else:
        path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return section


def _str_map(value: Any, where: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a mapping")
    return {str(k): str(v) for k, v in value.items()}


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def _load_aliases(entry: Dict[str, Any], base: Path, where: str) -> Dict[str, str]:
    aliases = _str_map(entry.get("aliases"), f"{where}.aliases")
    port_file = entry.get("portfile")
    if port_file:
        path = _resolve_path(port_file, base, base)
        if not path.exists():
            raise ConfigError(f"{where}: port file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                parts = line.split("#", 1)[0].split()
                if len(parts) >= 2:
                    aliases.setdefault(parts[0], parts[1])
    return aliases


def _load_mib(name: str, entry: Dict[str, Any]) -> MibConfig:
    columns = _str_list(entry.get("columns", entry.get("column")))
    if not columns:
        raise ConfigError(f"mibs.{name}: at least one column is required")
    return MibConfig(
        name=name,
        columns=columns,
        scalars=bool(entry.get("scalars", entry.get("scalers", False))),
        index_regexp=entry.get("index_regexp") or None,
        elapsed=bool(entry.get("elapsed", False)),
        prefix=str(entry.get("prefix", "")),
    )


def _load_sender(name: str, entry: Dict[str, Any]) -> SenderConfig:
    url = entry.get("url")
    if not url:
        host = entry.get("host")
        url = f"http://{host}:{int(entry.get('port', 8086))}" if host else SenderConfig.url
    database = str(entry.get("database", entry.get("db", "")) or "")
    if not database:
        raise ConfigError(f"influx.{name}: 'database' is required")
    return SenderConfig(
        name=name,
        url=str(url),
        username=str(entry.get("username", entry.get("user", "")) or ""),
        password=str(entry.get("password", "") or ""),
        database=database,
        retention_policy=str(entry.get("retention", "") or ""),
        consistency=str(entry.get("consistency", "") or ""),
        batch_size=int(entry.get("batch_size", 0) or 0),
        queue_size=int(entry.get("queue_size", 0) or 0),
        flush_interval_seconds=float(entry.get("flush_interval_seconds", 0) or 0),
        timeout_seconds=float(entry.get("timeout_seconds", 0) or 0),
        retry_interval_seconds=float(entry.get("retry_interval_seconds", 0) or 0),
    )


def _load_target(name: str, entry: Dict[str, Any], default_freq: float, base: Path) -> TargetConfig:
    hosts = _str_list(entry.get("hosts")) or _str_list(entry.get("host"))
    if not hosts:
        raise ConfigError(f"snmp.{name}: 'host' or 'hosts' is required")
    freq_raw = entry.get("freq")
    freq = default_freq if freq_raw is None else float(freq_raw)
    if freq <= 0:
        raise ConfigError(f"snmp.{name}: polling frequency must be positive, got {freq}")
    version = str(entry.get("version", "2c"))
    if version not in {"1", "2c", "3"}:
        raise ConfigError(f"snmp.{name}: invalid version '{version}'. Allowed: 1, 2c, 3")
    return TargetConfig(
        name=name,
        hosts=hosts,
        community=str(entry.get("community", "public")),
        port=int(entry.get("port", 161)),
        version=version,
        retries=max(0, int(entry.get("retries", 1))),
        timeout=float(entry.get("timeout", 5) or 5),
        freq=freq,
        sender=str(entry.get("sender", entry.get("config", "")) or ""),
        queries=_str_list(entry.get("queries")),
        tags=_str_map(entry.get("tags"), f"snmp.{name}.tags"),
        aliases=_load_aliases(entry, base, f"snmp.{name}"),
        ints_as_float=bool(entry.get("ints_as_float", False)),
        max_int=int(entry.get("max_int", INT64_MAX)),
        username=str(entry.get("username", "")),
        auth_protocol=str(entry.get("auth_protocol", "")),
        auth_password=str(entry.get("auth_password", "")),
        priv_protocol=str(entry.get("priv_protocol", "")),
        priv_password=str(entry.get("priv_password", "")),
    )


def load_config(
    path: Path,
    freq: Optional[float] = None,
    log_dir: Optional[Path] = None,
    oid_file: Optional[Path] = None,
    http_port: Optional[int] = None,
) -> NetstatsConfig:
    """Load and validate the collector configuration.

    Keyword arguments override the file (they come from command line flags).
    """

    raw = _load_yaml(path)
    base = path.parent.resolve()

    general_raw = _section(raw, "general")
    default_freq = float(freq if freq is not None else general_raw.get("freq", DEFAULT_FREQ_SECONDS))
    if default_freq <= 0:
        raise ConfigError(f"general.freq must be positive, got {default_freq}")
    general = GeneralConfig(
        log_dir=_resolve_path(log_dir or general_raw.get("log_dir"), base, Path("log")),
        oid_file=_resolve_path(oid_file or general_raw.get("oid_file"), base, Path("oids.txt")),
        freq=default_freq,
        pdu_source=str(general_raw.get("pdu_source", "") or ""),
    )

    http_raw = _section(raw, "http")
    port = int(http_port if http_port is not None else http_raw.get("port", DEFAULT_HTTP_PORT))
    if port < 0 or port > 65535:
        raise ConfigError("http.port must be between 0 and 65535")
    http = HttpConfig(host=str(http_raw.get("host", "0.0.0.0")), port=port)

    mibs = {name: _load_mib(name, entry or {}) for name, entry in _section(raw, "mibs").items()}
    influx = {name: _load_sender(name, entry or {}) for name, entry in _section(raw, "influx").items()}
    snmp = {
        name: _load_target(name, entry or {}, default_freq, base)
        for name, entry in _section(raw, "snmp").items()
    }
    if not snmp:
        raise ConfigError("no 'snmp' targets configured")

    config = NetstatsConfig(general=general, http=http, mibs=mibs, influx=influx, snmp=snmp, source_path=path)
    for target in snmp.values():
        sender_name_for(config, target)
        mibs_for(config, target)
    target_keys(config)
    return config


def sender_name_for(config: NetstatsConfig, target: TargetConfig) -> str:
    """Influx section for a target: explicit name, else the target's name, else '*'."""

    for candidate in (target.sender or target.name, WILDCARD):
        if candidate in config.influx:
            return candidate
    raise ConfigError(f"no influx config for snmp target: {target.name}")


def mibs_for(config: NetstatsConfig, target: TargetConfig) -> List[MibConfig]:
    if target.queries:
        missing = [q for q in target.queries if q not in config.mibs]
        if missing:
            raise ConfigError(f"snmp.{target.name}: unknown queries: {', '.join(missing)}")
        return [config.mibs[q] for q in target.queries]
    for candidate in (target.name, WILDCARD):
        if candidate in config.mibs:
            return [config.mibs[candidate]]
    raise ConfigError(f"no mib data found for snmp target: {target.name}")


def target_keys(config: NetstatsConfig) -> List[str]:
    """All ``<host>/<query>`` keys; duplicates are a configuration error."""

    seen: Dict[str, str] = {}
    for target in config.snmp.values():
        for mib in mibs_for(config, target):
            for host in target.hosts:
                key = f"{host}/{mib.name}"
                if key in seen:
                    raise ConfigError(f"duplicate target {key} in snmp.{seen[key]} and snmp.{target.name}")
                seen[key] = target.name
    return list(seen)


def build_query(mib: MibConfig, table: MibTable, aliases: Optional[Dict[str, str]] = None) -> QueryDefinition:
    """Resolve a mib section's columns into the OIDs to request."""

    # aliases label table rows; scalar queries ignore them
    aliases = {} if mib.scalars else dict(aliases or {})
    oids: List[str] = []
    for column in mib.columns:
        base = table.oid_for(column)
        if mib.scalars:
            oids.append(f"{base}.0")
        elif aliases:
            oids.extend(f"{base}.{index}" for index in sorted(aliases))
        else:
            oids.append(base)
    return QueryDefinition(
        name=mib.name,
        oids=oids,
        columns=frozenset(mib.columns),
        scalars=mib.scalars,
        index_regexp=mib.index_regexp,
        aliases=aliases,
        elapsed=mib.elapsed,
        prefix=mib.prefix,
    )
