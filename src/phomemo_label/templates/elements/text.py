"""Text, multi-line text and date field resolvers."""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from phomemo_label.errors import CompositionError
from phomemo_label.models.template import FieldKind, FieldMetadata, FieldValue, local_name
from phomemo_label.templates.elements.base import BaseFieldResolver, CompositionContext
from phomemo_label.templates.svg import format_number, get_property, parse_length, set_property, svg_tag

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 32.0
LINE_HEIGHT_FACTOR = 1.25

# Attributes of the first original line that new lines do not inherit
_POSITION_ATTRS = {"x", "y", "dy", "id"}


class TextFieldResolver(BaseFieldResolver):
    """Replaces the content of a `<text>` placeholder and shrinks it to fit.

    Single-line fields get their text set directly. Multi-line fields (those
    declared multi-line, or whose `<text>` holds `<tspan>` lines) get one
    `<tspan>` per line, laid out with the template's own line advance.
    """

    def resolve(
        self,
        element: ET.Element,
        field: FieldMetadata,
        value: FieldValue,
        context: CompositionContext,
    ) -> None:
        if local_name(element.tag) != "text":
            raise CompositionError(
                f"Field '{field.id}': text fields need a <text> placeholder, got <{local_name(element.tag)}>",
                field.id,
            )

        text = self.as_text(value, field)
        base_size = parse_length(get_property(element, "font-size"), DEFAULT_FONT_SIZE) or DEFAULT_FONT_SIZE
        family = get_property(element, "font-family") or "sans-serif"
        weight = get_property(element, "font-weight") or "normal"

        tspans = [child for child in element if local_name(child.tag) == "tspan"]
        multiline = field.kind == FieldKind.MULTILINE_TEXT or bool(tspans)

        fit = context.fitter.fit(
            text,
            context.text_box_width,
            base_size,
            font_family=family,
            font_weight=weight,
            multiline=multiline,
        )
        logger.debug(f"Field '{field.id}': font size {base_size} -> {fit.font_size}, {len(fit.lines)} line(s)")

        set_property(element, "font-size", format_number(fit.font_size))

        if not multiline:
            for child in list(element):
                element.remove(child)
            element.text = text
            return

        self._layout_lines(element, tspans, fit.lines, fit.font_size, context)

    def _layout_lines(
        self,
        element: ET.Element,
        tspans: list[ET.Element],
        lines: list[str],
        font_size: float,
        context: CompositionContext,
    ) -> None:
        """Replace the `<tspan>` children with one tspan per line."""
        first = tspans[0] if tspans else None
        uses_dy = first is not None and first.get("dy") is not None

        base_x = first.get("x") if first is not None and first.get("x") is not None else element.get("x")
        inherited = {k: v for k, v in (first.attrib.items() if first is not None else []) if k not in _POSITION_ATTRS}

        advance = font_size * LINE_HEIGHT_FACTOR
        if uses_dy:
            if len(tspans) > 1:
                advance = parse_length(tspans[1].get("dy"), 0.0) or advance
            base_y = 0.0
        else:
            y_source = first if first is not None and first.get("y") is not None else element
            base_y = parse_length(y_source.get("y"), 0.0) or 0.0
            if len(tspans) > 1 and tspans[0].get("y") is not None and tspans[1].get("y") is not None:
                first_y = parse_length(tspans[0].get("y"), 0.0) or 0.0
                second_y = parse_length(tspans[1].get("y"), 0.0) or 0.0
                advance = (second_y - first_y) or advance

        offset = 0.0
        if get_property(element, "dominant-baseline") == "middle" and len(lines) > 1:
            # Move the block up by half its height so it stays centered
            offset = -(len(lines) - 1) * advance / 2

        for tspan in tspans:
            element.remove(tspan)
        element.text = None

        tag = svg_tag("tspan", context.root)
        for index, line in enumerate(lines):
            tspan = ET.SubElement(element, tag, inherited)
            tspan.text = line
            if base_x is not None:
                tspan.set("x", base_x)
            if uses_dy:
                tspan.set("dy", format_number(offset if index == 0 else advance))
            else:
                tspan.set("y", format_number(base_y + offset + index * advance))


class DateFieldResolver(BaseFieldResolver):
    """Formats an ISO date value with the field's date format, then resolves it as text.

    The values "today" and "now" use the current date and time.
    """

    def __init__(self, text_resolver: TextFieldResolver) -> None:
        self._text_resolver = text_resolver

    def resolve(
        self,
        element: ET.Element,
        field: FieldMetadata,
        value: FieldValue,
        context: CompositionContext,
    ) -> None:
        raw = self.as_text(value, field).strip()
        self._text_resolver.resolve(element, field, self.format_date(raw, field), context)

    def format_date(self, raw: str, field: FieldMetadata) -> str:
        """Format a raw date value.

        Raises:
            CompositionError: If the value is not an ISO date or the format is invalid.
        """
        if not raw:
            return ""

        if raw.lower() in ("today", "now"):
            moment = datetime.now()
        else:
            try:
                moment = datetime.fromisoformat(raw)
            except ValueError as e:
                raise CompositionError(f"Field '{field.id}': '{raw}' is not an ISO date", field.id) from e

        try:
            return moment.strftime(field.date_format)
        except ValueError as e:
            raise CompositionError(
                f"Field '{field.id}': invalid date format '{field.date_format}': {e}", field.id
            ) from e
