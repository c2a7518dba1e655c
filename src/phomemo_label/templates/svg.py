"""SVG parsing helpers shared by the compositor and the rasterizer."""

import math
import re
import xml.etree.ElementTree as ET

from phomemo_label.errors import RenderError
from phomemo_label.models.template import SVG_NS, local_name

XLINK_NS = "http://www.w3.org/1999/xlink"

# Document size used when the SVG declares neither width/height nor viewBox
DEFAULT_WIDTH = 384.0
DEFAULT_HEIGHT = 240.0

# User units per unit (SVG user unit = CSS px at 96 dpi)
UNIT_SCALE = {
    "": 1.0,
    "px": 1.0,
    "pt": 96 / 72,
    "pc": 16.0,
    "mm": 96 / 25.4,
    "cm": 96 / 2.54,
    "in": 96.0,
}

# Affine matrix (a, b, c, d, e, f) mapping (x, y) -> (a*x + c*y + e, b*x + d*y + f)
Matrix = tuple[float, float, float, float, float, float]
IDENTITY: Matrix = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

_LENGTH_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-z%]*)\s*$")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)


def parse_document(svg_content: str | bytes) -> ET.Element:
    """Parse SVG markup into an element tree.

    Raises:
        RenderError: If the markup is not well-formed or not an SVG document.
    """
    try:
        root = ET.fromstring(svg_content)
    except ET.ParseError as e:
        raise RenderError(f"Failed to parse SVG: {e}") from e
    if local_name(root.tag) != "svg":
        raise RenderError(f"Root element is <{local_name(root.tag)}>, expected <svg>")
    return root


def svg_tag(name: str, root: ET.Element) -> str:
    """Qualified tag for a new element, matching the document's namespace use."""
    if root.tag.startswith("{"):
        return f"{{{SVG_NS}}}{name}"
    return name


def parse_length(value: str | None, default: float | None = None) -> float | None:
    """Parse an SVG length such as "12", "12px" or "40mm" into user units.

    Percentages and unknown units return the default.
    """
    if value is None:
        return default
    match = _LENGTH_RE.match(value)
    if not match:
        return default
    number, unit = match.groups()
    scale = UNIT_SCALE.get(unit)
    if scale is None:
        return default
    return float(number) * scale


def parse_numbers(value: str | None) -> list[float]:
    """Parse a whitespace/comma separated list of numbers."""
    if not value:
        return []
    return [float(n) for n in _NUMBER_RE.findall(value)]


def parse_style(value: str | None) -> dict[str, str]:
    """Parse an inline `style` attribute into a property dict."""
    result: dict[str, str] = {}
    if not value:
        return result
    for declaration in value.split(";"):
        if ":" not in declaration:
            continue
        name, _, prop = declaration.partition(":")
        name = name.strip().lower()
        prop = prop.replace("!important", "").strip()
        if name and prop:
            result[name] = prop
    return result


def get_property(element: ET.Element, name: str, default: str | None = None) -> str | None:
    """Get a presentation property, with `style` taking precedence over the attribute."""
    style = parse_style(element.get("style"))
    if name in style:
        return style[name]
    return element.get(name, default)


def get_href(element: ET.Element) -> str | None:
    """Get `href` or the legacy `xlink:href`."""
    return element.get("href") or element.get(f"{{{XLINK_NS}}}href")


def document_box(root: ET.Element) -> tuple[float, float, float, float]:
    """Get the user-space box (min_x, min_y, width, height) of a document.

    Uses the viewBox when present, otherwise width/height.

    Raises:
        RenderError: If the box is empty.
    """
    view_box = parse_numbers(root.get("viewBox"))
    if len(view_box) == 4:
        min_x, min_y, width, height = view_box
    else:
        min_x = min_y = 0.0
        width = parse_length(root.get("width"), DEFAULT_WIDTH) or 0.0
        height = parse_length(root.get("height"), DEFAULT_HEIGHT) or 0.0
    if width <= 0 or height <= 0:
        raise RenderError(f"SVG has an empty size ({width} x {height})")
    return min_x, min_y, width, height


def multiply(m1: Matrix, m2: Matrix) -> Matrix:
    """Compose two matrices: the result applies m2 first, then m1."""
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply(m: Matrix, x: float, y: float) -> tuple[float, float]:
    """Transform a point."""
    a, b, c, d, e, f = m
    return a * x + c * y + e, b * x + d * y + f


def scale_factor(m: Matrix) -> float:
    """Uniform scale of a matrix (square root of the determinant)."""
    a, b, c, d, _, _ = m
    return math.sqrt(abs(a * d - b * c))


def is_axis_aligned(m: Matrix) -> bool:
    """True when the matrix has no rotation or skew."""
    return abs(m[1]) < 1e-9 and abs(m[2]) < 1e-9


def parse_transform(value: str | None) -> Matrix:
    """Parse an SVG `transform` attribute into a matrix."""
    result = IDENTITY
    if not value:
        return result
    for name, args_text in _TRANSFORM_RE.findall(value):
        args = parse_numbers(args_text)
        if name == "matrix" and len(args) == 6:
            m: Matrix = (args[0], args[1], args[2], args[3], args[4], args[5])
        elif name == "translate" and args:
            m = (1.0, 0.0, 0.0, 1.0, args[0], args[1] if len(args) > 1 else 0.0)
        elif name == "scale" and args:
            m = (args[0], 0.0, 0.0, args[1] if len(args) > 1 else args[0], 0.0, 0.0)
        elif name == "rotate" and args:
            rad = math.radians(args[0])
            cos, sin = math.cos(rad), math.sin(rad)
            m = (cos, sin, -sin, cos, 0.0, 0.0)
            if len(args) == 3:
                cx, cy = args[1], args[2]
                m = multiply((1.0, 0.0, 0.0, 1.0, cx, cy), multiply(m, (1.0, 0.0, 0.0, 1.0, -cx, -cy)))
        elif name == "skewX" and args:
            m = (1.0, 0.0, math.tan(math.radians(args[0])), 1.0, 0.0, 0.0)
        elif name == "skewY" and args:
            m = (1.0, math.tan(math.radians(args[0])), 0.0, 1.0, 0.0, 0.0)
        else:
            continue
        result = multiply(result, m)
    return result


def format_number(value: float) -> str:
    """Format a number for an SVG attribute without trailing zeros."""
    if value == int(value):
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def set_property(element: ET.Element, name: str, value: str) -> None:
    """Set a presentation attribute, rewriting `style` when it declares the same property."""
    element.set(name, value)
    style = parse_style(element.get("style"))
    if name in style:
        style[name] = value
        element.set("style", "; ".join(f"{key}: {prop}" for key, prop in style.items()))
