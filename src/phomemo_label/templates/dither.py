"""Floyd-Steinberg dithering to a 1-bit printer bitmap."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from PIL import Image

logger = logging.getLogger(__name__)

THRESHOLD = 128

# (dx, dy, weight/16) neighbours that receive quantization error
DIFFUSION = ((1, 0, 7), (-1, 1, 3), (0, 1, 5), (1, 1, 1))


@dataclass(frozen=True)
class MonoBitmap:
    """Row-major 1-bit image, one byte per dot: 1 = black (burn), 0 = white."""

    width: int
    height: int
    bits: bytes

    def __post_init__(self) -> None:
        if len(self.bits) != self.width * self.height:
            raise ValueError(f"Bitmap data is {len(self.bits)} dots, expected {self.width} x {self.height}")

    def row(self, y: int) -> bytes:
        """Get the dots of one row."""
        return self.bits[y * self.width : (y + 1) * self.width]

    def black_count(self) -> int:
        return sum(self.bits)

    def to_image(self) -> Image.Image:
        """Render the bitmap as a black-on-white PIL image (mode "1")."""
        image = Image.new("L", (self.width, self.height))
        image.putdata([0 if bit else 255 for bit in self.bits])
        return image.convert("1")

    @classmethod
    def from_rows(cls, rows: Sequence[Iterable[int]]) -> "MonoBitmap":
        """Build a bitmap from rows of 0/1 values."""
        data = [list(row) for row in rows]
        width = len(data[0]) if data else 0
        if any(len(row) != width for row in data):
            raise ValueError("All rows must have the same width")
        return cls(width, len(data), bytes(1 if v else 0 for row in data for v in row))


def luminance(image: Image.Image) -> list[float]:
    """Get row-major luminance (0.299 R + 0.587 G + 0.114 B) as floats."""
    data = image.convert("RGB").tobytes()
    # Integer weights keep grey input exact: (v, v, v) -> v
    return [(299 * data[i] + 587 * data[i + 1] + 114 * data[i + 2]) / 1000 for i in range(0, len(data), 3)]


def dither(pixels: Image.Image) -> MonoBitmap:
    """Convert a pixel buffer to a 1-bit bitmap with Floyd-Steinberg error diffusion.

    Pixels are processed left to right, top to bottom. Luminance below the
    threshold becomes black. Error that would land outside the buffer is
    dropped, so nothing wraps between rows.

    Args:
        pixels: Image of any mode; converted to RGB first.

    Returns:
        MonoBitmap with the same dimensions.
    """
    width, height = pixels.size
    values = luminance(pixels)
    bits = bytearray(width * height)

    for y in range(height):
        row_start = y * width
        for x in range(width):
            index = row_start + x
            old = values[index]
            if old < THRESHOLD:
                bits[index] = 1
                new = 0.0
            else:
                new = 255.0
            error = old - new
            if not error:
                continue
            for dx, dy, weight in DIFFUSION:
                nx = x + dx
                ny = y + dy
                if 0 <= nx < width and ny < height:
                    values[ny * width + nx] += error * weight / 16

    bitmap = MonoBitmap(width, height, bytes(bits))
    logger.debug(f"Dithered {width}x{height} buffer, {bitmap.black_count()} black dots")
    return bitmap
