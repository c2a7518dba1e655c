"""Pytest configuration and fixtures."""

import asyncio
import io

import pytest
from PIL import Image

from phomemo_label.errors import WriteError
from phomemo_label.models.printer import PrinterConfig
from phomemo_label.printers.base import BaseTransport
from phomemo_label.templates.converters import Frame
from phomemo_label.templates.fitter import TextFitter

# Width in pixels of one character at font size 1
CHAR_WIDTH = 0.75


def linear_measure(text: str, font_size: float, font_family: str, font_weight: str) -> float:
    """Deterministic measurer: every character is CHAR_WIDTH x size wide."""
    return len(text) * font_size * CHAR_WIDTH


@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def fitter() -> TextFitter:
    """Text fitter with a font-independent measurer."""
    return TextFitter(measure=linear_measure)


@pytest.fixture
def printer_config() -> PrinterConfig:
    """Default print settings (M110, 40 x 30 mm)."""
    return PrinterConfig()


@pytest.fixture
def label_svg() -> str:
    """A 40 x 30 mm label with a title, a multi-line address and a QR box."""
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="384" height="240" viewBox="0 0 384 240">'
        '<rect x="0" y="0" width="384" height="240" fill="white"/>'
        '<text id="title" x="20" y="40" font-size="32" font-family="sans-serif">Title</text>'
        '<text id="address" x="20" y="90" font-size="20">'
        '<tspan x="20" dy="0">Line one</tspan>'
        '<tspan x="20" dy="24">Line two</tspan>'
        "</text>"
        '<rect id="code" x="260" y="120" width="100" height="100" fill="none" stroke="black"/>'
        "</svg>"
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small opaque red PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (20, 10), (255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


class MockTransport(BaseTransport):
    """In-memory transport that records written frames.

    Args:
        fail_at: Index of the frame whose write raises WriteError.
        delay: Seconds to wait inside each write.
    """

    def __init__(self, name: str = "mock", fail_at: int | None = None, delay: float = 0) -> None:
        super().__init__(name)
        self.fail_at = fail_at
        self.delay = delay
        self.written: list[Frame] = []
        self.connect_calls = 0

    async def connect(self) -> None:
        self.connect_calls += 1
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def write(self, frame: Frame) -> None:
        await asyncio.sleep(self.delay)
        if self.fail_at is not None and self.frames_sent == self.fail_at:
            raise WriteError(f"Printer {self.name}: device went away", self.frames_sent)
        self.written.append(frame)


@pytest.fixture
def transport() -> MockTransport:
    """A recording transport that never fails."""
    return MockTransport()
