"""Printer transports for Phomemo Label."""

from phomemo_label.models.printer import PrinterEntry, SerialConnection
from phomemo_label.printers.base import BaseTransport
from phomemo_label.printers.serial import SerialTransport

__all__ = [
    "BaseTransport",
    "SerialTransport",
    "create_transport",
]


def create_transport(entry: PrinterEntry) -> BaseTransport:
    """Factory function to create a transport for a configured printer."""
    transport_classes = {
        "serial": SerialTransport,
    }
    transport_class = transport_classes.get(entry.connection.type)
    if not transport_class:
        raise ValueError(f"Unknown connection type: {entry.connection.type}")
    assert isinstance(entry.connection, SerialConnection)
    return transport_class(entry.name, entry.connection)
