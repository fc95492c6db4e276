"""PDU source contract consumed by target pollers.

The protocol client itself lives outside this package. A source receives a
device profile plus a query definition and yields the replies of one poll
cycle; any transport or protocol failure is raised as ``PduError``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Protocol


@dataclass(frozen=True)
class DeviceProfile:
    """Address, credentials and timing for one monitored device."""

    host: str
    port: int = 161
    community: str = "public"
    version: str = "2c"
    retries: int = 1
    timeout_seconds: float = 5.0
    freq_seconds: float = 30.0
    username: str = ""
    auth_protocol: str = ""
    auth_password: str = field(default="", repr=False)
    priv_protocol: str = ""
    priv_password: str = field(default="", repr=False)


@dataclass(frozen=True)
class QueryDefinition:
    """One logical query against a device.

    ``columns`` is the interest set of object names; ``oids`` are the
    identifiers to request, already resolved through the MIB table.
    ``aliases`` maps an index suffix to the column label used in the series.
    """

    name: str
    oids: List[str]
    columns: FrozenSet[str]
    scalars: bool = False
    index_regexp: Optional[str] = None
    aliases: Dict[str, str] = field(default_factory=dict)
    elapsed: bool = False
    prefix: str = ""

    def index_pattern(self) -> Optional[Pattern[str]]:
        if not self.index_regexp:
            return None
        return re.compile(self.index_regexp)


@dataclass(frozen=True)
class PduValue:
    """One raw reply: object identifier, value and the request time pair."""

    name: str
    value: object
    sent_at: datetime
    received_at: datetime
    tags: Dict[str, str] = field(default_factory=dict)


class PduSource(Protocol):
    """Protocol for device polling clients."""

    def fetch(self, profile: DeviceProfile, query: QueryDefinition) -> Iterable[PduValue]:
        ...
