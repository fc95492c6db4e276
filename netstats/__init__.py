"""SNMP to time-series collector."""

__version__ = "0.3.0"
