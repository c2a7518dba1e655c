"""Printer configuration models."""

from enum import IntEnum, StrEnum
from typing import Literal

from pydantic import BaseModel, Field

# Phomemo printheads are 203 dpi
DOTS_PER_MM = 203 / 25.4


class DeviceModel(StrEnum):
    """Supported Phomemo printer models."""

    M110 = "M110"
    M120 = "M120"
    M220 = "M220"


class PaperType(IntEnum):
    """Paper type codes understood by the printer."""

    GAPPED = 0x0A  # Label with gaps
    CONTINUOUS = 0x0B
    MARKED = 0x26  # Label with black marks


class Orientation(StrEnum):
    """Orientation of the template on the label."""

    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class SerialConnection(BaseModel):
    """Serial port connection configuration."""

    type: Literal["serial"] = "serial"
    device: str
    baudrate: int = 115200
    bytesize: int = 8
    parity: str = "N"
    stopbits: float = 1
    write_timeout: float | None = None  # None blocks until the device drains


class PrinterConfig(BaseModel):
    """Print settings for one device.

    Ranges are not enforced here. `validate_printer_config` rejects
    out-of-range values with a ConfigError before encoding.
    """

    device_model: str = DeviceModel.M110
    darkness: int = 8  # 0x01 - 0x0f
    speed: int = 3  # 0x01 - 0x05
    paper_type: int = PaperType.GAPPED
    paper_width_mm: float = 40.0
    paper_height_mm: float = 30.0
    orientation: Orientation = Orientation.PORTRAIT


class PrinterEntry(BaseModel):
    """A named printer from config.yaml."""

    name: str
    connection: SerialConnection
    settings: PrinterConfig = Field(default_factory=PrinterConfig)
    enabled: bool = True
