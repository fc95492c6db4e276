"""Object name to OID lookup table."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from netstats.errors import ConfigError


def _normalize_oid(oid: str) -> str:
    return oid.strip().lstrip(".")


class MibTable:
    """Bidirectional name/OID table loaded from ``name oid`` lines."""

    def __init__(self, entries: Optional[Iterable[Tuple[str, str]]] = None) -> None:
        self._oid_by_name: Dict[str, str] = {}
        self._name_by_oid: Dict[str, str] = {}
        for name, oid in entries or ():
            self.add(name, oid)

    @classmethod
    def from_file(cls, path: Path) -> "MibTable":
        if not path.exists():
            raise ConfigError(f"OID file not found: {path}")
        table = cls()
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.split("#", 1)[0]
                parts = line.split()
                if len(parts) < 2:
                    continue
                table.add(parts[0], parts[1])
        return table

    def add(self, name: str, oid: str) -> None:
        oid = _normalize_oid(oid)
        self._oid_by_name[name] = oid
        self._name_by_oid[oid] = name

    def oid_for(self, name: str) -> str:
        try:
            return self._oid_by_name[name]
        except KeyError:
            raise ConfigError(f"no OID for column: {name}") from None

    def name_for(self, oid: str) -> Optional[str]:
        return self._name_by_oid.get(_normalize_oid(oid))

    def __len__(self) -> int:
        return len(self._oid_by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._oid_by_name
