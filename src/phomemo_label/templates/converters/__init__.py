"""Bitmap to printer command converters."""

from phomemo_label.templates.converters.phomemo import (
    DeviceProfile,
    Frame,
    FrameKind,
    PROFILES,
    encode,
    get_profile,
    pack_row,
    validate_printer_config,
)

__all__ = [
    "DeviceProfile",
    "Frame",
    "FrameKind",
    "PROFILES",
    "encode",
    "get_profile",
    "pack_row",
    "validate_printer_config",
]
