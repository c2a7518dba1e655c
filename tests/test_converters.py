"""Tests for the Phomemo protocol encoder."""

import pytest

from phomemo_label.errors import ConfigError
from phomemo_label.models.printer import DeviceModel, PaperType, PrinterConfig
from phomemo_label.templates.converters import (
    PROFILES,
    DeviceProfile,
    FrameKind,
    encode,
    get_profile,
    pack_row,
    validate_printer_config,
)
from phomemo_label.templates.dither import MonoBitmap

FRAME_ORDER = [FrameKind.INIT, FrameKind.DARKNESS, FrameKind.SPEED, FrameKind.PAPER_TYPE]


def blank(width: int, height: int) -> MonoBitmap:
    return MonoBitmap(width, height, bytes(width * height))


class TestEncode:
    """Tests for encode."""

    def test_frame_order(self, printer_config: PrinterConfig):
        frames = encode(blank(16, 4), printer_config)

        kinds = [f.kind for f in frames]
        assert kinds[:4] == FRAME_ORDER
        assert kinds[-1] == FrameKind.FINALIZE
        assert set(kinds[4:-1]) == {FrameKind.RASTER}

    def test_command_bytes(self):
        config = PrinterConfig(darkness=0x0C, speed=0x02, paper_type=PaperType.MARKED)
        frames = encode(blank(8, 1), config)

        assert bytes(frames[0]) == b"\x1b\x40"
        assert bytes(frames[1]) == b"\x1b\x4e\x04\x0c"
        assert bytes(frames[2]) == b"\x1b\x4e\x0d\x02"
        assert bytes(frames[3]) == b"\x1f\x11\x26"
        assert bytes(frames[-1]) == b"\x1f\xf0\x05\x00\x1f\xf0\x03\x00"

    def test_single_black_row(self, printer_config: PrinterConfig):
        """An 8x1 black bitmap is one raster frame with payload FF."""
        bitmap = MonoBitmap.from_rows([[1] * 8])

        frames = encode(bitmap, printer_config)
        raster = [f for f in frames if f.kind == FrameKind.RASTER]

        assert len(raster) == 1
        assert raster[0].header == b"\x1d\x76\x30\x00\x01\x00\x01\x00"
        assert raster[0].payload == b"\xff"

    def test_raster_header_little_endian(self, printer_config: PrinterConfig):
        frames = encode(blank(320, 300), printer_config)
        raster = frames[4]
        # 40 bytes per row, 300 rows
        assert raster.header == b"\x1d\x76\x30\x00\x28\x00\x2c\x01"
        assert len(raster.payload) == 40 * 300

    def test_row_padding(self, printer_config: PrinterConfig):
        """Rows are padded to whole bytes with white."""
        bitmap = MonoBitmap.from_rows([[1] * 10, [0] * 9 + [1]])
        raster = encode(bitmap, printer_config)[4]

        assert raster.header[4:6] == b"\x02\x00"
        assert raster.payload == b"\xff\xc0\x00\x40"

    def test_chunking_preserves_rows(self):
        """Models that need chunking split the raster without losing rows."""
        config = PrinterConfig(device_model=DeviceModel.M220)
        profile = get_profile(DeviceModel.M220)
        bytes_per_row = 40
        height = profile.max_frame_bytes // bytes_per_row * 2 + 7
        rows = [[(x + y) % 2 for x in range(320)] for y in range(height)]

        frames = encode(MonoBitmap.from_rows(rows), config)
        raster = [f for f in frames if f.kind == FrameKind.RASTER]

        assert len(raster) == 3
        assert all(len(f.payload) <= profile.max_frame_bytes for f in raster)
        assert b"".join(f.payload for f in raster) == b"".join(pack_row(bytes(r)) for r in rows)
        assert sum(int.from_bytes(f.header[6:8], "little") for f in raster) == height

    def test_custom_profile(self, printer_config: PrinterConfig):
        profile = DeviceProfile("test", max_dots=384, requires_chunking=True, max_frame_bytes=4, header=b"\x00")
        frames = encode(blank(16, 5), printer_config, profile)

        assert bytes(frames[0]) == b"\x1b\x40\x00"
        assert [len(f.payload) for f in frames if f.kind == FrameKind.RASTER] == [4, 4, 2]

    def test_unchunked_model_single_frame(self, printer_config: PrinterConfig):
        frames = encode(blank(320, 240), printer_config)
        assert len([f for f in frames if f.kind == FrameKind.RASTER]) == 1

    def test_bitmap_wider_than_printhead(self, printer_config: PrinterConfig):
        with pytest.raises(ConfigError):
            encode(blank(385, 1), printer_config)

    @pytest.mark.parametrize("width, height", [(8, 0), (0, 8), (0, 0)])
    def test_empty_bitmap_rejected(self, printer_config: PrinterConfig, width: int, height: int):
        """A bitmap with no rows or columns would leave out the raster frame."""
        with pytest.raises(ConfigError, match="empty"):
            encode(blank(width, height), printer_config)

    def test_frame_bytes_are_contiguous(self, printer_config: PrinterConfig):
        frame = encode(MonoBitmap.from_rows([[1] * 8]), printer_config)[4]
        assert bytes(frame) == frame.header + frame.payload
        assert len(frame) == 9


class TestValidatePrinterConfig:
    """Tests for settings validation."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"darkness": 0},
            {"darkness": 16},
            {"speed": 0},
            {"speed": 6},
            {"paper_type": 0x99},
            {"device_model": "M999"},
            {"paper_width_mm": 60},
            {"paper_height_mm": 0},
        ],
    )
    def test_invalid_settings(self, overrides: dict):
        """Invalid settings raise ConfigError and produce no frames."""
        config = PrinterConfig(**overrides)
        with pytest.raises(ConfigError):
            encode(blank(8, 1), config)

    @pytest.mark.parametrize("darkness", [1, 15])
    def test_darkness_bounds(self, darkness: int):
        validate_printer_config(PrinterConfig(darkness=darkness))

    @pytest.mark.parametrize("speed", [1, 5])
    def test_speed_bounds(self, speed: int):
        validate_printer_config(PrinterConfig(speed=speed))

    def test_wide_model_accepts_wide_paper(self):
        profile = validate_printer_config(PrinterConfig(device_model=DeviceModel.M220, paper_width_mm=70))
        assert profile.max_dots == 576


class TestProfiles:
    """Tests for device profiles."""

    def test_known_models(self):
        assert set(PROFILES) == {"M110", "M120", "M220"}

    def test_lookup_is_case_insensitive(self):
        assert get_profile("m110") is PROFILES["M110"]

    def test_unknown_model(self):
        with pytest.raises(ConfigError):
            get_profile("P12")


class TestPackRow:
    """Tests for pack_row."""

    def test_msb_first(self):
        assert pack_row(bytes([1, 0, 0, 0, 0, 0, 0, 0])) == b"\x80"
        assert pack_row(bytes([0, 0, 0, 0, 0, 0, 0, 1])) == b"\x01"

    def test_empty_row(self):
        assert pack_row(b"") == b""
