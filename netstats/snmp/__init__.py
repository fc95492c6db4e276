"""SNMP polling: PDU source contract, MIB lookup, target pollers."""
