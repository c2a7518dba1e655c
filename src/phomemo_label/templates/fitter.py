"""Shrink-to-fit font sizing for template text fields."""

import math
from collections.abc import Callable
from typing import NamedTuple

from phomemo_label.templates.fonts import FontManager, get_font_manager

# (text, font_size, font_family, font_weight) -> rendered width in pixels
TextMeasurer = Callable[[str, float, str, str], float]


class FitResult(NamedTuple):
    """Font size and the lines to render at that size."""

    font_size: float
    lines: list[str]


def font_measurer(font_manager: FontManager | None = None) -> TextMeasurer:
    """Build a measurer that uses Pillow font metrics."""
    manager = font_manager or get_font_manager()

    def measure(text: str, font_size: float, font_family: str, font_weight: str) -> float:
        font = manager.get_css_font(font_family, font_weight, font_size)
        return float(font.getlength(text))

    return measure


def split_lines(text: str) -> list[str]:
    """Split text on explicit line breaks."""
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


class TextFitter:
    """Finds the largest font size, no larger than the declared one, that fits a box.

    Text is never scaled up and never wrapped. If the text does not fit even
    at MIN_FONT_SIZE, MIN_FONT_SIZE is returned and the overflow is accepted.
    """

    MIN_FONT_SIZE = 8
    SCALE_TOLERANCE = 0.5  # Binary search stops when the interval is this narrow

    def __init__(self, measure: TextMeasurer | None = None) -> None:
        self._measure = measure or font_measurer()

    def fit(
        self,
        text: str,
        max_width: float,
        base_font_size: float,
        font_family: str = "sans-serif",
        font_weight: str = "normal",
        multiline: bool = False,
    ) -> FitResult:
        """Fit text into `max_width` pixels.

        Args:
            text: Field value.
            max_width: Available width in pixels.
            base_font_size: Font size declared by the template.
            font_family: CSS font family.
            font_weight: CSS font weight.
            multiline: Split on line breaks; the widest line sets the size.

        Returns:
            FitResult with the font size and lines.
        """
        if not text:
            return FitResult(base_font_size, [])

        lines = split_lines(text) if multiline else [text]

        candidate = max(
            lines,
            key=lambda line: self._measure(line, base_font_size, font_family, font_weight),
        )
        if not candidate:
            return FitResult(base_font_size, lines)

        size = self._fit_line(candidate, max_width, base_font_size, font_family, font_weight)
        return FitResult(size, lines)

    def _fit_line(
        self,
        line: str,
        max_width: float,
        base_font_size: float,
        font_family: str,
        font_weight: str,
    ) -> float:
        """Binary search for the font size of a single line."""
        if self._measure(line, base_font_size, font_family, font_weight) <= max_width:
            return base_font_size

        min_size = float(min(self.MIN_FONT_SIZE, base_font_size))
        max_size = float(base_font_size)

        while max_size - min_size > self.SCALE_TOLERANCE:
            mid_size = (min_size + max_size) / 2
            if self._measure(line, mid_size, font_family, font_weight) > max_width:
                max_size = mid_size
            else:
                min_size = mid_size

        # Round down so rounding can never push the text past the box
        return math.floor(min_size)
