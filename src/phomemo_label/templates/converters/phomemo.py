"""Encode 1-bit bitmaps as Phomemo ESC/POS-style command frames.

A print job is a fixed sequence of frames::

    init        1B 40 [model header]
    darkness    1B 4E 04 <d>
    speed       1B 4E 0D <s>
    paper type  1F 11 <t>
    raster      1D 76 30 00 <wL wH> <hL hH> <rows...>   (one or more)
    finalize    1F F0 05 00 1F F0 03 00

Raster rows are packed MSB-first with 1 = burn, padded to whole bytes.
"""

import logging
import struct
from dataclasses import dataclass
from enum import StrEnum

from phomemo_label.errors import ConfigError
from phomemo_label.models.printer import DeviceModel, PaperType, PrinterConfig
from phomemo_label.templates.dither import MonoBitmap

logger = logging.getLogger(__name__)

DARKNESS_RANGE = (0x01, 0x0F)
SPEED_RANGE = (0x01, 0x05)
MAX_RASTER_ROWS = 0xFFFF

INIT = b"\x1b\x40"
DARKNESS_PREFIX = b"\x1b\x4e\x04"
SPEED_PREFIX = b"\x1b\x4e\x0d"
PAPER_TYPE_PREFIX = b"\x1f\x11"
RASTER_PREFIX = b"\x1d\x76\x30\x00"
FINALIZE = b"\x1f\xf0\x05\x00\x1f\xf0\x03\x00"


class FrameKind(StrEnum):
    """Kinds of protocol frames, in transmission order."""

    INIT = "init"
    DARKNESS = "darkness"
    SPEED = "speed"
    PAPER_TYPE = "paper_type"
    RASTER = "raster"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class Frame:
    """One unit of transmission. Frames are written whole and never merged."""

    kind: FrameKind
    header: bytes
    payload: bytes = b""

    def __bytes__(self) -> bytes:
        return self.header + self.payload

    def __len__(self) -> int:
        return len(self.header) + len(self.payload)


@dataclass(frozen=True)
class DeviceProfile:
    """Model-specific limits for the encoder.

    Attributes:
        model: Device model name.
        max_dots: Printhead width in dots.
        requires_chunking: Whether raster data must be split across frames.
        max_frame_bytes: Largest raster payload per frame when chunking.
        header: Extra bytes sent after the init command.
    """

    model: str
    max_dots: int
    requires_chunking: bool = False
    max_frame_bytes: int = 12288
    header: bytes = b""

    @property
    def max_width_mm(self) -> float:
        return self.max_dots / 8


PROFILES: dict[str, DeviceProfile] = {
    DeviceModel.M110: DeviceProfile(DeviceModel.M110, max_dots=384),
    DeviceModel.M120: DeviceProfile(DeviceModel.M120, max_dots=384),
    DeviceModel.M220: DeviceProfile(DeviceModel.M220, max_dots=576, requires_chunking=True),
}


def get_profile(model: str) -> DeviceProfile:
    """Look up the profile for a device model (case-insensitive).

    Raises:
        ConfigError: If the model is unknown.
    """
    profile = PROFILES.get(model.upper())
    if profile is None:
        known = ", ".join(PROFILES)
        raise ConfigError(f"Unknown device model '{model}' (expected one of: {known})")
    return profile


def validate_printer_config(config: PrinterConfig) -> DeviceProfile:
    """Check print settings against the wire ranges and the model's printhead.

    Returns:
        The device profile for the configured model.

    Raises:
        ConfigError: If any setting is out of range.
    """
    profile = get_profile(config.device_model)

    low, high = DARKNESS_RANGE
    if not low <= config.darkness <= high:
        raise ConfigError(f"Darkness must be between {low} and {high}, got {config.darkness}")

    low, high = SPEED_RANGE
    if not low <= config.speed <= high:
        raise ConfigError(f"Speed must be between {low} and {high}, got {config.speed}")

    if config.paper_type not in {p.value for p in PaperType}:
        raise ConfigError(f"Unknown paper type 0x{config.paper_type:02X}")

    if config.paper_width_mm <= 0 or config.paper_height_mm <= 0:
        raise ConfigError(f"Paper size must be positive, got {config.paper_width_mm} x {config.paper_height_mm} mm")

    if config.paper_width_mm > profile.max_width_mm:
        raise ConfigError(
            f"Paper width {config.paper_width_mm} mm exceeds the {profile.model} printhead ({profile.max_width_mm:g} mm)"
        )

    return profile


def pack_row(dots: bytes) -> bytes:
    """Pack one row of 0/1 dots MSB-first, padding the last byte with white."""
    packed = bytearray((len(dots) + 7) // 8)
    for x, dot in enumerate(dots):
        if dot:
            packed[x >> 3] |= 0x80 >> (x & 7)
    return bytes(packed)


def raster_frame(rows: list[bytes], bytes_per_row: int) -> Frame:
    """Build one raster frame from packed rows."""
    header = RASTER_PREFIX + struct.pack("<HH", bytes_per_row, len(rows))
    return Frame(FrameKind.RASTER, header, b"".join(rows))


def encode(bitmap: MonoBitmap, config: PrinterConfig, profile: DeviceProfile | None = None) -> list[Frame]:
    """Encode a bitmap and print settings as a frame sequence.

    Args:
        bitmap: Dithered label image, `width` across the printhead.
        config: Print settings. Validated before anything is encoded.
        profile: Override the profile looked up from `config.device_model`.

    Returns:
        Frames in transmission order.

    Raises:
        ConfigError: If the settings are invalid, or the bitmap is empty or
            wider than the printhead.
    """
    model_profile = validate_printer_config(config)
    profile = profile or model_profile

    if bitmap.width == 0 or bitmap.height == 0:
        raise ConfigError(f"Bitmap is empty ({bitmap.width} x {bitmap.height} dots)")

    if bitmap.width > profile.max_dots:
        raise ConfigError(f"Bitmap is {bitmap.width} dots wide, {profile.model} printhead is {profile.max_dots}")

    bytes_per_row = (bitmap.width + 7) // 8
    if bytes_per_row > 0xFFFF:
        raise ConfigError(f"Bitmap is too wide to encode ({bitmap.width} dots)")

    frames = [
        Frame(FrameKind.INIT, INIT + profile.header),
        Frame(FrameKind.DARKNESS, DARKNESS_PREFIX + bytes([config.darkness])),
        Frame(FrameKind.SPEED, SPEED_PREFIX + bytes([config.speed])),
        Frame(FrameKind.PAPER_TYPE, PAPER_TYPE_PREFIX + bytes([config.paper_type])),
    ]

    rows_per_frame = MAX_RASTER_ROWS
    if profile.requires_chunking:
        rows_per_frame = max(1, min(rows_per_frame, profile.max_frame_bytes // bytes_per_row))

    rows = [pack_row(bitmap.row(y)) for y in range(bitmap.height)]
    for start in range(0, len(rows), rows_per_frame):
        frames.append(raster_frame(rows[start : start + rows_per_frame], bytes_per_row))

    frames.append(Frame(FrameKind.FINALIZE, FINALIZE))

    raster_count = len(frames) - 5
    logger.debug(
        f"Encoded {bitmap.width}x{bitmap.height} bitmap for {profile.model}: "
        f"{len(frames)} frames ({raster_count} raster), {sum(len(f) for f in frames)} bytes"
    )
    return frames
