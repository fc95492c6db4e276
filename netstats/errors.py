"""Exception hierarchy for netstats."""

from __future__ import annotations


class NetstatsError(Exception):
    """Base class for all netstats errors."""


class ConfigError(NetstatsError, ValueError):
    """Invalid or inconsistent configuration; fatal at startup."""


class PointError(NetstatsError, ValueError):
    """A point could not be built for the store's wire format."""


class SenderError(NetstatsError, RuntimeError):
    """A sender could not be constructed (store unreachable or database missing)."""


class PduError(NetstatsError, RuntimeError):
    """A poll cycle failed at the transport or protocol level."""
