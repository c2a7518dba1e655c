"""Rasterize resolved SVG documents into device-resolution pixel buffers.

Renders the subset of SVG that label templates use with Pillow: shapes,
paths, text and embedded data-URI images. The document is drawn on a
supersampled canvas and resampled to the label size, so the output is
anti-aliased and contains grey values for the ditherer to resolve.
"""

import base64
import binascii
import io
import logging
import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFont

from phomemo_label.errors import RenderError
from phomemo_label.models.printer import DOTS_PER_MM, Orientation
from phomemo_label.models.template import local_name
from phomemo_label.templates.compositor import ResolvedDocument
from phomemo_label.templates.dither import dither
from phomemo_label.templates.fonts import FontManager, get_font_manager
from phomemo_label.templates.svg import (
    Matrix,
    apply,
    get_href,
    get_property,
    is_axis_aligned,
    multiply,
    parse_length,
    parse_numbers,
    parse_transform,
    scale_factor,
)

logger = logging.getLogger(__name__)

# RGB image at device resolution, white background
PixelBuffer = Image.Image

SUPERSAMPLE = 2
CURVE_SEGMENTS = 16
ELLIPSE_SEGMENTS = 64

INHERITED_PROPERTIES = (
    "color",
    "fill",
    "fill-opacity",
    "stroke",
    "stroke-opacity",
    "stroke-width",
    "font-family",
    "font-size",
    "font-weight",
    "text-anchor",
    "dominant-baseline",
    "visibility",
    "image-rendering",
)

INITIAL_STATE = {
    "color": "black",
    "fill": "black",
    "stroke": "none",
    "stroke-width": "1",
    "font-family": "sans-serif",
    "font-size": "16",
    "font-weight": "normal",
    "text-anchor": "start",
    "dominant-baseline": "auto",
    "visibility": "visible",
}

CONTAINER_ELEMENTS = {"svg", "g", "a", "switch"}
NON_RENDERED_ELEMENTS = {
    "defs",
    "title",
    "desc",
    "metadata",
    "style",
    "script",
    "symbol",
    "clipPath",
    "mask",
    "marker",
    "pattern",
    "linearGradient",
    "radialGradient",
    "filter",
}
PIXELATED_RENDERING = {"pixelated", "optimizespeed", "crisp-edges"}

TEXT_ANCHORS = {"start": "l", "middle": "m", "end": "r"}
BASELINES = {
    "middle": "m",
    "central": "m",
    "hanging": "a",
    "text-before-edge": "a",
    "text-top": "a",
    "text-after-edge": "d",
    "text-bottom": "d",
    "ideographic": "d",
}

# Number of arguments per path command
PATH_ARITY = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7, "Z": 0}
_PATH_TOKEN_RE = re.compile(r"([MmLlHhVvCcSsQqTtAaZz])|([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")

Point = tuple[float, float]
Subpath = tuple[list[Point], bool]  # (points, closed)
Color = tuple[int, int, int, int]


@dataclass
class _Surface:
    """Canvas being drawn on, with its draw handle."""

    image: Image.Image
    draw: ImageDraw.ImageDraw


def surface_size(
    width_mm: float,
    height_mm: float,
    orientation: Orientation = Orientation.PORTRAIT,
    dots_per_mm: float = DOTS_PER_MM,
) -> tuple[int, int]:
    """Pixel size of the logical print surface (before landscape rotation)."""
    width_px = int(width_mm * dots_per_mm)
    height_px = int(height_mm * dots_per_mm)
    if orientation == Orientation.LANDSCAPE:
        return height_px, width_px
    return width_px, height_px


def rasterize(
    doc: ResolvedDocument,
    width_mm: float,
    height_mm: float,
    orientation: Orientation = Orientation.PORTRAIT,
    dots_per_mm: float = DOTS_PER_MM,
    font_manager: FontManager | None = None,
) -> PixelBuffer:
    """Render a document to a label-sized pixel buffer.

    In landscape the document fills a surface whose width is the label
    height; the surface is then rotated 90 degrees clockwise so the output
    is always `width_mm` wide, matching the printhead.

    Args:
        doc: Resolved document.
        width_mm: Label width (across the printhead).
        height_mm: Label height (feed direction).
        orientation: Orientation of the document on the label.
        dots_per_mm: Printer resolution.
        font_manager: Font lookup, defaults to the shared manager.

    Returns:
        RGB image of int(width_mm * dots_per_mm) x int(height_mm * dots_per_mm).

    Raises:
        RenderError: If the document cannot be rendered.
    """
    logical_width, logical_height = surface_size(width_mm, height_mm, orientation, dots_per_mm)
    if logical_width <= 0 or logical_height <= 0:
        raise RenderError(f"Label size {width_mm} x {height_mm} mm is empty at {dots_per_mm:.2f} dots/mm")

    image = SvgRenderer(font_manager).render(doc, logical_width, logical_height)

    if orientation == Orientation.LANDSCAPE:
        image = image.transpose(Image.Transpose.ROTATE_270)
    return image


def render_preview(
    doc: ResolvedDocument,
    width_mm: float,
    height_mm: float,
    orientation: Orientation = Orientation.PORTRAIT,
    dots_per_mm: float = DOTS_PER_MM,
    dithered: bool = False,
    font_manager: FontManager | None = None,
) -> bytes:
    """Render the logical (unrotated) label surface as PNG bytes.

    Args:
        dithered: Show the 1-bit output the printer would burn instead of
            the greyscale render.

    Raises:
        RenderError: If the document cannot be rendered.
    """
    width_px, height_px = surface_size(width_mm, height_mm, orientation, dots_per_mm)
    if width_px <= 0 or height_px <= 0:
        raise RenderError(f"Label size {width_mm} x {height_mm} mm is empty at {dots_per_mm:.2f} dots/mm")

    image = SvgRenderer(font_manager).render(doc, width_px, height_px)
    image = dither(image).to_image() if dithered else image.convert("L")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class SvgRenderer:
    """Draws a resolved document with Pillow.

    Geometry honours `transform`. Text and images are positioned through the
    transform but are not rotated or skewed by it.
    """

    def __init__(self, font_manager: FontManager | None = None) -> None:
        self.font_manager = font_manager or get_font_manager()

    def render(self, doc: ResolvedDocument, width_px: int, height_px: int) -> Image.Image:
        """Render the document stretched to exactly width_px x height_px.

        Raises:
            RenderError: If rendering fails.
        """
        try:
            scale = max(width_px / doc.width, height_px / doc.height) * SUPERSAMPLE
            canvas_size = (max(1, math.ceil(doc.width * scale)), max(1, math.ceil(doc.height * scale)))
            canvas = Image.new("RGB", canvas_size, "white")
            surface = _Surface(canvas, ImageDraw.Draw(canvas, "RGBA"))

            matrix: Matrix = (scale, 0.0, 0.0, scale, -doc.min_x * scale, -doc.min_y * scale)
            self._render_node(doc.root, dict(INITIAL_STATE), matrix, 1.0, surface, is_root=True)

            return canvas.resize((width_px, height_px), Image.Resampling.LANCZOS)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to rasterize document: {e}") from e

    def _render_node(
        self,
        element: ET.Element,
        parent_state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
        is_root: bool = False,
    ) -> None:
        name = local_name(element.tag) if isinstance(element.tag, str) else ""
        if not name or name in NON_RENDERED_ELEMENTS:
            return
        if get_property(element, "display") == "none":
            return

        state = self._inherit(element, parent_state)
        matrix = multiply(matrix, parse_transform(element.get("transform")))
        opacity *= _parse_opacity(get_property(element, "opacity"))

        if name in CONTAINER_ELEMENTS:
            if name == "svg" and not is_root:
                x = parse_length(element.get("x"), 0.0) or 0.0
                y = parse_length(element.get("y"), 0.0) or 0.0
                matrix = multiply(matrix, (1.0, 0.0, 0.0, 1.0, x, y))
            for child in element:
                self._render_node(child, state, matrix, opacity, surface)
            return

        if state.get("visibility") in ("hidden", "collapse"):
            return

        if name == "text":
            self._draw_text(element, state, matrix, opacity, surface)
        elif name == "image":
            self._draw_image(element, state, matrix, opacity, surface)
        else:
            subpaths = self._geometry(name, element)
            if subpaths is None:
                logger.debug(f"Skipping unsupported element <{name}>")
                return
            self._fill_and_stroke(subpaths, state, matrix, opacity, surface, fillable=name != "line")

    def _inherit(self, element: ET.Element, parent_state: dict[str, str]) -> dict[str, str]:
        state = dict(parent_state)
        for prop in INHERITED_PROPERTIES:
            value = get_property(element, prop)
            if value is not None and value != "inherit":
                state[prop] = value.strip()
        return state

    # Geometry

    def _geometry(self, name: str, element: ET.Element) -> list[Subpath] | None:
        """Get an element's outline as subpaths in user units, or None if unsupported."""

        def length(attr: str) -> float:
            return parse_length(element.get(attr), 0.0) or 0.0

        if name == "rect":
            return _rect_subpaths(length("x"), length("y"), length("width"), length("height"), element)
        if name == "circle":
            r = length("r")
            return [(_ellipse_points(length("cx"), length("cy"), r, r), True)] if r > 0 else []
        if name == "ellipse":
            rx, ry = length("rx"), length("ry")
            return [(_ellipse_points(length("cx"), length("cy"), rx, ry), True)] if rx > 0 and ry > 0 else []
        if name == "line":
            return [([(length("x1"), length("y1")), (length("x2"), length("y2"))], False)]
        if name in ("polyline", "polygon"):
            numbers = parse_numbers(element.get("points"))
            points = list(zip(numbers[0::2], numbers[1::2], strict=False))
            return [(points, name == "polygon")]
        if name == "path":
            return _path_subpaths(element.get("d") or "")
        return None

    def _fill_and_stroke(
        self,
        subpaths: list[Subpath],
        state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
        fillable: bool = True,
    ) -> None:
        device = [([apply(matrix, x, y) for x, y in points], closed) for points, closed in subpaths]

        fill = self._paint(state.get("fill"), state, opacity * _parse_opacity(state.get("fill-opacity")))
        if fillable and fill is not None:
            polygons = [points for points, _ in device if len(points) >= 3]
            if len(polygons) == 1:
                surface.draw.polygon(polygons[0], fill=fill)
            elif polygons:
                self._fill_even_odd(polygons, fill, surface)

        stroke = self._paint(state.get("stroke"), state, opacity * _parse_opacity(state.get("stroke-opacity")))
        stroke_width = (parse_length(state.get("stroke-width"), 1.0) or 0.0) * scale_factor(matrix)
        if stroke is not None and stroke_width > 0:
            width = max(1, round(stroke_width))
            for points, closed in device:
                if len(points) < 2:
                    continue
                line = points + [points[0]] if closed else points
                surface.draw.line(line, fill=stroke, width=width, joint="curve")

    def _fill_even_odd(self, polygons: list[list[Point]], fill: Color, surface: _Surface) -> None:
        """Fill several subpaths together so overlapping areas become holes."""
        size = surface.image.size
        mask = Image.new("1", size, 0)
        for polygon in polygons:
            layer = Image.new("1", size, 0)
            ImageDraw.Draw(layer).polygon(polygon, fill=1)
            mask = ImageChops.logical_xor(mask, layer)
        alpha = fill[3]
        surface.image.paste(fill[:3], (0, 0, size[0], size[1]), mask.convert("L").point(lambda v: alpha if v else 0))

    def _paint(self, value: str | None, state: dict[str, str], opacity: float) -> Color | None:
        """Resolve a fill/stroke value to an RGBA color, or None for no paint."""
        if value is None or value in ("none", "transparent"):
            return None
        if value == "currentColor":
            value = state.get("color", "black")
        if value.startswith("url("):
            logger.debug(f"Paint servers are not supported ({value}), skipping paint")
            return None
        try:
            rgb = ImageColor.getrgb(value)
        except ValueError:
            logger.debug(f"Unknown color '{value}', skipping paint")
            return None
        alpha = rgb[3] if len(rgb) == 4 else 255
        alpha = round(alpha * max(0.0, min(1.0, opacity)))
        if alpha == 0:
            return None
        return rgb[0], rgb[1], rgb[2], alpha

    # Text

    def _draw_text(
        self,
        element: ET.Element,
        state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
    ) -> None:
        position = [0.0, 0.0]
        self._position(element, position)
        self._draw_text_runs(element, state, matrix, opacity, surface, position)

    def _draw_text_runs(
        self,
        element: ET.Element,
        state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
        position: list[float],
    ) -> None:
        """Draw an element's text and its `<tspan>` children, advancing the pen position."""
        if element.text:
            self._draw_run(element.text, state, matrix, opacity, surface, position)

        for child in element:
            if isinstance(child.tag, str) and local_name(child.tag) == "tspan":
                if get_property(child, "display") != "none":
                    child_state = self._inherit(child, state)
                    self._position(child, position)
                    self._draw_text_runs(child, child_state, matrix, opacity, surface, position)
            if child.tail:
                self._draw_run(child.tail, state, matrix, opacity, surface, position)

    def _position(self, element: ET.Element, position: list[float]) -> None:
        """Apply x/y (absolute) and dx/dy (relative) positioning to the pen."""
        for index, (absolute, relative) in enumerate((("x", "dx"), ("y", "dy"))):
            values = parse_numbers(element.get(absolute))
            if values:
                position[index] = values[0]
            offsets = parse_numbers(element.get(relative))
            if offsets:
                position[index] += offsets[0]

    def _draw_run(
        self,
        text: str,
        state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
        position: list[float],
    ) -> None:
        run = " ".join(text.split())
        if not run or state.get("visibility") in ("hidden", "collapse"):
            return

        scale = scale_factor(matrix)
        font_size = parse_length(state.get("font-size"), 16.0) or 16.0
        font = self.font_manager.get_css_font(state.get("font-family"), state.get("font-weight"), font_size * scale)

        text_anchor = state.get("text-anchor", "start")
        anchor: str | None = TEXT_ANCHORS.get(text_anchor, "l") + BASELINES.get(state.get("dominant-baseline", ""), "s")
        if not isinstance(font, ImageFont.FreeTypeFont):
            anchor = None  # Bitmap fonts only support the default anchor

        fill = self._paint(state.get("fill"), state, opacity * _parse_opacity(state.get("fill-opacity")))
        if fill is not None:
            x, y = apply(matrix, position[0], position[1])
            surface.draw.text((x, y), run, font=font, fill=fill, anchor=anchor)

        advance = font.getlength(run) / scale if scale else 0.0
        if text_anchor == "start":
            position[0] += advance
        elif text_anchor == "middle":
            position[0] += advance / 2

    # Images

    def _draw_image(
        self,
        element: ET.Element,
        state: dict[str, str],
        matrix: Matrix,
        opacity: float,
        surface: _Surface,
    ) -> None:
        href = get_href(element)
        if not href or not href.startswith("data:"):
            logger.debug(f"Skipping <image> without an embedded data URI ({(href or '')[:40]})")
            return

        try:
            image = _load_data_uri(href)
        except (ValueError, OSError) as e:
            raise RenderError(f"Cannot decode embedded image: {e}") from e

        x = parse_length(element.get("x"), 0.0) or 0.0
        y = parse_length(element.get("y"), 0.0) or 0.0
        width = parse_length(element.get("width")) or float(image.width)
        height = parse_length(element.get("height")) or float(image.height)

        if (element.get("preserveAspectRatio") or "").strip() != "none":
            # Default xMidYMid meet
            fit = min(width / image.width, height / image.height)
            x += (width - image.width * fit) / 2
            y += (height - image.height * fit) / 2
            width, height = image.width * fit, image.height * fit

        if not is_axis_aligned(matrix):
            logger.debug("Rotated or skewed <image> is drawn axis-aligned")

        corners = [apply(matrix, px, py) for px, py in ((x, y), (x + width, y), (x, y + height), (x + width, y + height))]
        left = min(c[0] for c in corners)
        top = min(c[1] for c in corners)
        target = (
            max(1, round(max(c[0] for c in corners) - left)),
            max(1, round(max(c[1] for c in corners) - top)),
        )

        rendering = (get_property(element, "image-rendering") or state.get("image-rendering") or "").lower()
        resample = Image.Resampling.NEAREST if rendering in PIXELATED_RENDERING else Image.Resampling.LANCZOS
        image = image.convert("RGBA").resize(target, resample)

        alpha = image.getchannel("A")
        if opacity < 1.0:
            alpha = alpha.point(lambda v: round(v * max(0.0, opacity)))
        surface.image.paste(image.convert("RGB"), (round(left), round(top)), alpha)


def _parse_opacity(value: str | None) -> float:
    if value is None:
        return 1.0
    value = value.strip()
    try:
        if value.endswith("%"):
            return max(0.0, min(1.0, float(value[:-1]) / 100))
        return max(0.0, min(1.0, float(value)))
    except ValueError:
        return 1.0


def _load_data_uri(href: str) -> Image.Image:
    header, _, data = href.partition(",")
    if ";base64" not in header:
        raise ValueError("only base64 data URIs are supported")
    try:
        payload = base64.b64decode(data, validate=False)
    except binascii.Error as e:
        raise ValueError(f"invalid base64 data: {e}") from e
    image = Image.open(io.BytesIO(payload))
    image.load()
    return image


def _ellipse_points(cx: float, cy: float, rx: float, ry: float, segments: int = ELLIPSE_SEGMENTS) -> list[Point]:
    return [
        (cx + rx * math.cos(2 * math.pi * i / segments), cy + ry * math.sin(2 * math.pi * i / segments))
        for i in range(segments)
    ]


def _rect_subpaths(x: float, y: float, width: float, height: float, element: ET.Element) -> list[Subpath]:
    if width <= 0 or height <= 0:
        return []
    rx = parse_length(element.get("rx"))
    ry = parse_length(element.get("ry"))
    if rx is None:
        rx = ry
    if ry is None:
        ry = rx
    rx = min(rx or 0.0, width / 2)
    ry = min(ry or 0.0, height / 2)
    if rx <= 0 or ry <= 0:
        return [([(x, y), (x + width, y), (x + width, y + height), (x, y + height)], True)]

    points: list[Point] = []
    corners = (
        (x + width - rx, y + ry, -90),
        (x + width - rx, y + height - ry, 0),
        (x + rx, y + height - ry, 90),
        (x + rx, y + ry, 180),
    )
    steps = CURVE_SEGMENTS // 2
    for cx, cy, start in corners:
        for i in range(steps + 1):
            angle = math.radians(start + 90 * i / steps)
            points.append((cx + rx * math.cos(angle), cy + ry * math.sin(angle)))
    return [(points, True)]


def _path_commands(d: str) -> list[tuple[str, list[float]]]:
    """Split path data into (command, args) pairs, expanding implicit repeats."""
    commands: list[tuple[str, list[float]]] = []
    command: str | None = None
    args: list[float] = []
    for letter, number in _PATH_TOKEN_RE.findall(d):
        if letter:
            command = letter
            args = []
            if letter in "Zz":
                commands.append((letter, []))
            continue
        if command is None or command in "Zz":
            continue
        args.append(float(number))
        if len(args) == PATH_ARITY[command.upper()]:
            commands.append((command, args))
            args = []
            # Coordinates after a moveto are implicit linetos
            if command == "M":
                command = "L"
            elif command == "m":
                command = "l"
    return commands


def _path_subpaths(d: str) -> list[Subpath]:
    """Flatten path data into polylines.

    Curves are sampled; elliptical arcs are approximated by a straight
    segment to their end point.
    """
    subpaths: list[Subpath] = []
    points: list[Point] = []
    current = (0.0, 0.0)
    start = (0.0, 0.0)
    last_control: Point | None = None
    last_command = ""

    def flush(closed: bool) -> None:
        nonlocal points
        if len(points) > 1:
            subpaths.append((points, closed))
        points = []

    for command, args in _path_commands(d):
        upper = command.upper()
        relative = command.islower()
        ox, oy = current if relative else (0.0, 0.0)

        if upper == "M":
            flush(False)
            current = (ox + args[0], oy + args[1])
            start = current
            points = [current]
        elif upper == "Z":
            flush(True)
            current = start
            points = [current]
        else:
            if not points:
                points = [current]
            if upper == "L":
                current = (ox + args[0], oy + args[1])
                points.append(current)
            elif upper == "H":
                current = ((ox if relative else 0.0) + args[0], current[1])
                points.append(current)
            elif upper == "V":
                current = (current[0], (oy if relative else 0.0) + args[0])
                points.append(current)
            elif upper in ("C", "S"):
                if upper == "C":
                    c1 = (ox + args[0], oy + args[1])
                    c2 = (ox + args[2], oy + args[3])
                    end = (ox + args[4], oy + args[5])
                else:
                    c1 = _reflect(last_control, current) if last_command in "CcSs" else current
                    c2 = (ox + args[0], oy + args[1])
                    end = (ox + args[2], oy + args[3])
                points.extend(_cubic(current, c1, c2, end))
                last_control = c2
                current = end
            elif upper in ("Q", "T"):
                if upper == "Q":
                    control = (ox + args[0], oy + args[1])
                    end = (ox + args[2], oy + args[3])
                else:
                    control = _reflect(last_control, current) if last_command in "QqTt" else current
                    end = (ox + args[0], oy + args[1])
                points.extend(_quadratic(current, control, end))
                last_control = control
                current = end
            elif upper == "A":
                current = (ox + args[5], oy + args[6])
                points.append(current)
        last_command = command

    flush(False)
    return subpaths


def _reflect(control: Point | None, current: Point) -> Point:
    if control is None:
        return current
    return 2 * current[0] - control[0], 2 * current[1] - control[1]


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point) -> list[Point]:
    result = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1 - t
        result.append(
            (
                mt**3 * p0[0] + 3 * mt**2 * t * p1[0] + 3 * mt * t**2 * p2[0] + t**3 * p3[0],
                mt**3 * p0[1] + 3 * mt**2 * t * p1[1] + 3 * mt * t**2 * p2[1] + t**3 * p3[1],
            )
        )
    return result


def _quadratic(p0: Point, p1: Point, p2: Point) -> list[Point]:
    result = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1 - t
        result.append(
            (
                mt**2 * p0[0] + 2 * mt * t * p1[0] + t**2 * p2[0],
                mt**2 * p0[1] + 2 * mt * t * p1[1] + t**2 * p2[1],
            )
        )
    return result
